"""List-file reading and filesystem-safe naming helpers."""

from __future__ import annotations

from pathlib import Path

COMMENT_PREFIXES = ("#", "//")


def read_list_file(path: str | Path) -> list[str]:
    """Read one entry per line, skipping blanks and ``#`` / ``//`` comments."""
    entries: list[str] = []
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            entry = line.strip()
            if not entry or entry.startswith(COMMENT_PREFIXES):
                continue
            entries.append(entry)
    return entries


def safe_filename_component(
    value: str,
    *,
    max_length: int | None = None,
    default: str = "unknown",
    lower: bool = False,
) -> str:
    """Convert a string into a filesystem-friendly filename component."""
    raw = (value or "").strip()
    if not raw:
        return default
    if lower:
        raw = raw.lower()
    safe = "".join(c if c.isalnum() or c in "._-" else "_" for c in raw)
    if max_length:
        safe = safe[:max_length]
    return safe
