"""Analyzer data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..constants import HANDLING_STRATEGIES, NON_INTERACTIVE_CHALLENGES, ChallengeType, RunStatus


@dataclass(frozen=True)
class ChallengeInfo:
    """Typed result of challenge classification."""

    type: ChallengeType = ChallengeType.NONE
    matched_selector: Optional[str] = None
    source_image_url: Optional[str] = None
    description: str = ""
    confidence: float = 0.0

    @property
    def is_present(self) -> bool:
        return self.type != ChallengeType.NONE

    def is_interactive(self) -> bool:
        """True unless the challenge can be handled without interaction (OCR)."""
        return self.type not in NON_INTERACTIVE_CHALLENGES

    def handling_strategy(self) -> str:
        return HANDLING_STRATEGIES[self.type]

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "matched_selector": self.matched_selector,
            "source_image_url": self.source_image_url,
            "description": self.description,
            "confidence": round(self.confidence, 3),
            "interactive": self.is_interactive(),
            "handling_strategy": self.handling_strategy(),
        }


NO_CHALLENGE = ChallengeInfo(description="No challenge detected")


@dataclass(frozen=True)
class FormElements:
    """Resolved selectors for the login form (empty string = not found)."""

    username_selector: str = ""
    password_selector: str = ""
    submit_selector: str = ""
    checkbox_selector: Optional[str] = None
    captcha_input_selector: Optional[str] = None
    challenge: Optional[ChallengeInfo] = None

    def missing_required(self) -> list[str]:
        """Names of required roles that did not resolve, in form order."""
        missing = []
        if not self.username_selector:
            missing.append("username")
        if not self.password_selector:
            missing.append("password")
        if not self.submit_selector:
            missing.append("submit")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_required()

    def to_dict(self) -> dict:
        return {
            "username_selector": self.username_selector,
            "password_selector": self.password_selector,
            "submit_selector": self.submit_selector,
            "checkbox_selector": self.checkbox_selector,
            "captcha_input_selector": self.captcha_input_selector,
            "challenge": self.challenge.to_dict() if self.challenge else None,
        }


@dataclass
class PageClassification:
    """Weighted login-page verdict for a single page read."""

    title: str
    url: str
    body_text: str
    confidence: float
    is_login_page: bool

    title_score: float = 0.0
    url_score: float = 0.0
    content_score: float = 0.0
    form_score: float = 0.0
    features: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "url": self.url,
            "confidence": round(self.confidence, 3),
            "is_login_page": self.is_login_page,
            "title_score": round(self.title_score, 3),
            "url_score": round(self.url_score, 3),
            "content_score": round(self.content_score, 3),
            "form_score": round(self.form_score, 3),
            "features": list(self.features),
        }


@dataclass
class PageAnalysis:
    """Read-only analysis of a page: classification, form and challenge."""

    classification: PageClassification
    form: FormElements
    challenge: ChallengeInfo
    elapsed: float = 0.0

    def to_dict(self) -> dict:
        return {
            "classification": self.classification.to_dict(),
            "form": self.form.to_dict(),
            "challenge": self.challenge.to_dict(),
            "elapsed": round(self.elapsed, 3),
        }


@dataclass(frozen=True)
class Credential:
    username: str
    password: str

    def __str__(self) -> str:
        return f"{self.username}:{self.password}"


@dataclass
class AttemptResult:
    """Outcome of submitting a single credential pair."""

    success: bool
    credential: Credential
    resulting_url: str = ""
    error_message: Optional[str] = None
    screenshot: Optional[bytes] = None


@dataclass
class RunReport:
    """Final report for one target URL."""

    url: str
    status: RunStatus
    reason: str = ""
    attempts: int = 0
    final_attempt: Optional[AttemptResult] = None
    screenshot_path: Optional[str] = None
    analysis: Optional[PageAnalysis] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def credential(self) -> Optional[Credential]:
        if self.succeeded and self.final_attempt:
            return self.final_attempt.credential
        return None
