"""Shared scoring helpers for the page and challenge classifiers."""

from __future__ import annotations

import re
from typing import Iterable


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a score into [low, high]."""
    if value < low:
        return low
    if value > high:
        return high
    return value


def weighted_keyword_score(text: str, table: Iterable[tuple[str, float]]) -> tuple[float, list[str]]:
    """Sum the weights of every keyword found in text (case-insensitive).

    Returns the clamped score and the keywords that matched.
    """
    haystack = (text or "").lower()
    total = 0.0
    matched: list[str] = []
    for keyword, weight in table:
        needle = keyword.lower()
        if needle and needle in haystack:
            total += weight
            matched.append(keyword)
    return clamp(total), matched


def pattern_score(text: str, patterns: Iterable[str], points: float) -> tuple[float, list[str]]:
    """Add ``points`` for each regex pattern matching text, clamped to [0, 1]."""
    total = 0.0
    matched: list[str] = []
    for pattern in patterns:
        try:
            hit = re.search(pattern, text or "", re.IGNORECASE)
        except re.error:
            continue
        if hit:
            total += points
            matched.append(pattern)
    return clamp(total), matched


def keyword_density(text: str, keywords: list[str]) -> float:
    """Fraction of keywords present in text."""
    if not keywords:
        return 0.0
    haystack = (text or "").lower()
    matches = sum(1 for keyword in keywords if keyword and keyword.lower() in haystack)
    return matches / len(keywords)


def keyword_confidence(text: str, keywords: list[str]) -> float:
    """Confidence derived from keyword density: 0.2 + 0.8 * density, or 0 with no match."""
    density = keyword_density(text, keywords)
    if density <= 0:
        return 0.0
    return clamp(0.2 + 0.8 * density)


def contains_any(text: str, keywords: Iterable[str]) -> list[str]:
    """Return the keywords present in text (case-insensitive)."""
    haystack = (text or "").lower()
    return [keyword for keyword in keywords if keyword and keyword.lower() in haystack]
