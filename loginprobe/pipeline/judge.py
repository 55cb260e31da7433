"""Success/failure judgment after a credential submission."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..analyzer.scoring import contains_any


@dataclass
class Judgment:
    """Verdict for one submission, with the rule that decided it."""

    success: bool
    rule: str
    reason: str
    matched: list[str] = field(default_factory=list)


def judge_attempt(
    before_url: str,
    after_url: str,
    body_text: str,
    success_keywords: Iterable[str],
    failure_keywords: Iterable[str],
) -> Judgment:
    """Decide whether a submission logged in.

    Rules, first match wins:
      1. a failure keyword in the body is a failure, whatever else holds;
      2. a changed URL plus a success keyword is a success;
      3. an unchanged URL is a failure;
      4. a changed URL with no keyword at all is a success.

    Rule 4 is optimistic and can report false positives on sites that
    redirect failed logins.
    """
    failures = contains_any(body_text, failure_keywords)
    if failures:
        return Judgment(False, "failure_keyword", f"failure keyword present: {failures[0]}", failures)

    url_changed = (after_url or "") != (before_url or "")
    if url_changed:
        successes = contains_any(body_text, success_keywords)
        if successes:
            return Judgment(True, "success_keyword", f"redirected and found: {successes[0]}", successes)
        return Judgment(True, "url_changed", f"redirected to {after_url} with no keyword evidence")

    return Judgment(False, "url_unchanged", "URL unchanged after submit")
