"""SQLite storage for attempts and per-URL run outcomes."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiosqlite

logger = logging.getLogger(__name__)


class AttemptDatabase:
    """Async SQLite database of credential attempts and run reports.

    Implements the ResultSink interface so it can sit next to the text
    ResultLogger behind a MultiSink.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self):
        """Establish database connection and create tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row
        await self._create_tables()

    async def close(self):
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def __aenter__(self) -> "AttemptDatabase":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _create_tables(self):
        async with self._lock:
            await self._connection.executescript(
                """
                    CREATE TABLE IF NOT EXISTS attempts (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        url TEXT NOT NULL,
                        username TEXT NOT NULL,
                        password TEXT NOT NULL,
                        success INTEGER NOT NULL,
                        timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE TABLE IF NOT EXISTS runs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        url TEXT NOT NULL,
                        status TEXT NOT NULL,
                        reason TEXT,
                        attempts INTEGER DEFAULT 0,
                        username TEXT,
                        screenshot_path TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE INDEX IF NOT EXISTS idx_attempts_url ON attempts(url);
                    CREATE INDEX IF NOT EXISTS idx_runs_url ON runs(url);
                """
            )
            await self._connection.commit()

    async def _record_attempt(self, url: str, username: str, password: str, success: bool) -> None:
        async with self._lock:
            await self._connection.execute(
                "INSERT INTO attempts (url, username, password, success) VALUES (?, ?, ?, ?)",
                (url, username, password, 1 if success else 0),
            )
            await self._connection.commit()

    async def success(self, url: str, username: str, password: str) -> None:
        await self._record_attempt(url, username, password, True)

    async def failure(self, url: str, username: str, password: str) -> None:
        await self._record_attempt(url, username, password, False)

    async def record_run(self, report) -> int:
        """Persist a RunReport. Returns the run ID."""
        credential = report.credential
        async with self._lock:
            cursor = await self._connection.execute(
                """
                INSERT INTO runs (url, status, reason, attempts, username, screenshot_path)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    report.url,
                    str(report.status),
                    report.reason,
                    report.attempts,
                    credential.username if credential else None,
                    report.screenshot_path,
                ),
            )
            await self._connection.commit()
            return cursor.lastrowid

    async def _fetchall_dicts(self, cursor) -> list[dict]:
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def get_attempts(self, url: Optional[str] = None) -> list[dict]:
        if url is None:
            cursor = await self._connection.execute("SELECT * FROM attempts ORDER BY id")
        else:
            cursor = await self._connection.execute(
                "SELECT * FROM attempts WHERE url = ? ORDER BY id", (url,)
            )
        return await self._fetchall_dicts(cursor)

    async def get_runs(self, status: Optional[str] = None) -> list[dict]:
        if status is None:
            cursor = await self._connection.execute("SELECT * FROM runs ORDER BY id")
        else:
            cursor = await self._connection.execute(
                "SELECT * FROM runs WHERE status = ? ORDER BY id", (status,)
            )
        return await self._fetchall_dicts(cursor)

