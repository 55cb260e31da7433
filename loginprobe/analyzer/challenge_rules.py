"""Per-type challenge detectors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol

from ..constants import ChallengeType
from .models import ChallengeInfo
from .scoring import keyword_confidence

if TYPE_CHECKING:
    from ..config import ChallengeRuleSettings
    from .controller import PageController


@dataclass
class ChallengeContext:
    """Shared context passed to each challenge detector."""

    controller: "PageController"
    body_text: str
    probe_timeout: float = 1.0


class ChallengeRule(Protocol):
    """Interface for challenge detectors."""

    name: str
    challenge_type: ChallengeType

    async def detect(self, context: ChallengeContext) -> Optional[ChallengeInfo]:  # pragma: no cover - interface
        ...


class SelectorKeywordRule:
    """Selector allowlist first, keyword density over the body text second."""

    name = "selector_keyword"
    challenge_type = ChallengeType.UNKNOWN

    def __init__(self, settings: "ChallengeRuleSettings"):
        self.settings = settings

    @property
    def selectors(self) -> list[str]:
        return self.settings.selectors

    async def match_selector(self, context: ChallengeContext) -> Optional[str]:
        for selector in self.selectors:
            if await context.controller.exists(selector, timeout=context.probe_timeout):
                return selector
        return None

    def _describe(self, detail: str) -> str:
        base = self.settings.description or self.challenge_type.display_name
        return f"{base} ({detail})"

    async def detect(self, context: ChallengeContext) -> Optional[ChallengeInfo]:
        selector = await self.match_selector(context)
        if selector:
            return await self.from_selector(context, selector)

        threshold = self.settings.keyword_threshold
        if threshold is None or not self.settings.keywords:
            return None
        confidence = keyword_confidence(context.body_text, self.settings.keywords)
        if confidence > threshold:
            return ChallengeInfo(
                type=self.challenge_type,
                description=self._describe(f"keyword confidence {confidence:.2f}"),
                confidence=confidence,
            )
        return None

    async def from_selector(self, context: ChallengeContext, selector: str) -> ChallengeInfo:
        return ChallengeInfo(
            type=self.challenge_type,
            matched_selector=selector,
            description=self._describe(f"matched {selector}"),
            confidence=self.settings.selector_confidence,
        )


class RecaptchaRule(SelectorKeywordRule):
    name = "recaptcha"
    challenge_type = ChallengeType.RECAPTCHA


class HcaptchaRule(SelectorKeywordRule):
    name = "hcaptcha"
    challenge_type = ChallengeType.HCAPTCHA


class SliderRule(SelectorKeywordRule):
    name = "slider"
    challenge_type = ChallengeType.SLIDER


class ImageCodeRule(SelectorKeywordRule):
    name = "image_code"
    challenge_type = ChallengeType.IMAGE_CODE

    async def from_selector(self, context: ChallengeContext, selector: str) -> ChallengeInfo:
        src = await context.controller.get_attribute(selector, "src")
        return ChallengeInfo(
            type=self.challenge_type,
            matched_selector=selector,
            source_image_url=src or None,
            description=self._describe(f"matched {selector}"),
            confidence=self.settings.selector_confidence,
        )


class TextCodeRule(SelectorKeywordRule):
    """Typed verification code; selectors are the form's captcha inputs."""

    name = "text_code"
    challenge_type = ChallengeType.TEXT_CODE

    def __init__(self, settings: "ChallengeRuleSettings", captcha_selectors: list[str]):
        super().__init__(settings)
        self.captcha_selectors = list(captcha_selectors)

    @property
    def selectors(self) -> list[str]:
        return self.captcha_selectors + [s for s in self.settings.selectors if s not in self.captcha_selectors]


class ClickSequenceRule(SelectorKeywordRule):
    name = "click_sequence"
    challenge_type = ChallengeType.CLICK_SEQUENCE


class BehavioralRule(SelectorKeywordRule):
    name = "behavioral"
    challenge_type = ChallengeType.BEHAVIORAL


def build_default_rules(
    rules: dict[str, "ChallengeRuleSettings"], captcha_selectors: list[str]
) -> list[SelectorKeywordRule]:
    """Detectors in priority order; the first match wins."""
    return [
        RecaptchaRule(rules["recaptcha"]),
        HcaptchaRule(rules["hcaptcha"]),
        SliderRule(rules["slider"]),
        ImageCodeRule(rules["image_code"]),
        TextCodeRule(rules["text_code"], captcha_selectors),
        ClickSequenceRule(rules["click_sequence"]),
        BehavioralRule(rules["behavioral"]),
    ]
