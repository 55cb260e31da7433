"""Centralized constants for LoginProbe.

This module contains enums and fixed thresholds used across the classifier
and orchestrator modules so the policy tables live in one place.
"""

from enum import Enum


# Login-page decision threshold over the weighted confidence.
LOGIN_CONFIDENCE_THRESHOLD = 0.6

# Weights of the four login-page sub-scores (sum to 1.0).
TITLE_WEIGHT = 0.3
URL_WEIGHT = 0.2
CONTENT_WEIGHT = 0.25
FORM_WEIGHT = 0.25

# Per-role contribution to the form-presence sub-score.
FORM_USERNAME_POINTS = 0.4
FORM_PASSWORD_POINTS = 0.4
FORM_SUBMIT_POINTS = 0.2


class ChallengeType(str, Enum):
    """Kind of anti-automation challenge found on a page."""

    NONE = "none"
    TEXT_CODE = "text_code"
    IMAGE_CODE = "image_code"
    SLIDER = "slider"
    CLICK_SEQUENCE = "click_sequence"
    RECAPTCHA = "recaptcha"
    HCAPTCHA = "hcaptcha"
    BEHAVIORAL = "behavioral"
    UNKNOWN = "unknown"

    @classmethod
    def from_string(cls, value: str | None) -> "ChallengeType":
        """Convert a string to a challenge type (empty is NONE, unrecognized is UNKNOWN)."""
        if not value:
            return cls.NONE
        try:
            return cls(value.lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def display_name(self) -> str:
        return CHALLENGE_DISPLAY_NAMES[self]

    def __str__(self) -> str:
        return self.value


CHALLENGE_DISPLAY_NAMES = {
    ChallengeType.NONE: "no challenge",
    ChallengeType.TEXT_CODE: "text verification code",
    ChallengeType.IMAGE_CODE: "image verification code",
    ChallengeType.SLIDER: "slider challenge",
    ChallengeType.CLICK_SEQUENCE: "click-sequence challenge",
    ChallengeType.RECAPTCHA: "Google reCAPTCHA",
    ChallengeType.HCAPTCHA: "hCaptcha",
    ChallengeType.BEHAVIORAL: "behavioral check",
    ChallengeType.UNKNOWN: "unknown challenge",
}

# OCR-automatable challenges; everything else needs interaction.
NON_INTERACTIVE_CHALLENGES = frozenset({ChallengeType.TEXT_CODE, ChallengeType.IMAGE_CODE})

HANDLING_STRATEGIES = {
    ChallengeType.NONE: "No handling required",
    ChallengeType.TEXT_CODE: "Can be handled automatically with OCR",
    ChallengeType.IMAGE_CODE: "Can be handled automatically with OCR",
    ChallengeType.SLIDER: "Requires a simulated drag interaction",
    ChallengeType.CLICK_SEQUENCE: "Requires simulated clicks on the requested positions",
    ChallengeType.RECAPTCHA: "Requires manual interaction or a third-party service",
    ChallengeType.HCAPTCHA: "Requires manual interaction or a third-party service",
    ChallengeType.BEHAVIORAL: "Requires behavioral pattern analysis",
    ChallengeType.UNKNOWN: "Requires further analysis or manual handling",
}


class RunStatus(str, Enum):
    """Final outcome of processing a single target URL."""

    SUCCEEDED = "succeeded"  # A credential pair was accepted
    EXHAUSTED = "exhausted"  # Every pair tried, none accepted
    ABORTED = "aborted"  # Navigation failed, not a login page, or missing fields
    SKIPPED = "skipped"  # Challenge present and policy says skip
    CANCELLED = "cancelled"  # Interrupted between attempts

    def __str__(self) -> str:
        return self.value


class OrchestratorState(str, Enum):
    """States of the per-URL attempt state machine."""

    NAVIGATING = "navigating"
    CLASSIFYING = "classifying"
    RESOLVING = "resolving"
    CHALLENGE_CHECK = "challenge_check"
    ATTEMPTING = "attempting"
    JUDGING = "judging"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"
