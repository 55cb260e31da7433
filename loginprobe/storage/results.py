"""Append-only success/failure records."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class ResultSink(Protocol):
    """Narrow persistence interface consumed by the orchestrator."""

    async def success(self, url: str, username: str, password: str) -> None: ...

    async def failure(self, url: str, username: str, password: str) -> None: ...


class ResultLogger:
    """Writes ``url:username:password`` lines to dated text files.

    File names come from strftime patterns, so a long audit rolls over to a
    new file each day with the default ``success_%Y%m%d.txt``.
    """

    def __init__(
        self,
        save_dir: Path,
        success_filename_format: str = "success_%Y%m%d.txt",
        failure_filename_format: str = "failure_%Y%m%d.txt",
        record_format: str = "url:username:password",
        realtime_save: bool = True,
    ):
        self.save_dir = Path(save_dir)
        self.success_filename_format = success_filename_format
        self.failure_filename_format = failure_filename_format
        self.record_format = record_format
        self.realtime_save = realtime_save
        if self.realtime_save:
            self.save_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings) -> "ResultLogger":
        return cls(
            save_dir=settings.save_dir,
            success_filename_format=settings.success_filename_format,
            failure_filename_format=settings.failure_filename_format,
            record_format=settings.format,
            realtime_save=settings.realtime_save,
        )

    def path_for(self, pattern: str, when: Optional[datetime] = None) -> Path:
        return self.save_dir / (when or datetime.now()).strftime(pattern)

    def format_record(self, url: str, username: str, password: str) -> str:
        values = {"url": url, "username": username, "password": password}
        fields = self.record_format.split(":")
        if all(name in values for name in fields):
            return ":".join(values[name] for name in fields)
        return f"{url}:{username}:{password}"

    async def _append(self, pattern: str, line: str) -> Path:
        path = self.path_for(pattern)

        def write() -> None:
            with open(path, "a", encoding="utf-8") as handle:
                handle.write(line + "\n")

        await asyncio.to_thread(write)
        return path

    async def success(self, url: str, username: str, password: str) -> None:
        if not self.realtime_save:
            return
        path = await self._append(self.success_filename_format, self.format_record(url, username, password))
        logger.info("Recorded success for %s in %s", url, path)

    async def failure(self, url: str, username: str, password: str) -> None:
        if not self.realtime_save:
            return
        await self._append(self.failure_filename_format, self.format_record(url, username, password))


class MultiSink:
    """Fans each record out to several sinks in order."""

    def __init__(self, *sinks: ResultSink):
        self.sinks = [sink for sink in sinks if sink is not None]

    async def success(self, url: str, username: str, password: str) -> None:
        for sink in self.sinks:
            await sink.success(url, username, password)

    async def failure(self, url: str, username: str, password: str) -> None:
        for sink in self.sinks:
            await sink.failure(url, username, password)

    async def record_run(self, report) -> None:
        for sink in self.sinks:
            record_run = getattr(sink, "record_run", None)
            if record_run is not None:
                await record_run(report)
