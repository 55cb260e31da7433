"""Anti-automation challenge classification."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from ..constants import ChallengeType
from .challenge_rules import ChallengeContext, ChallengeRule, build_default_rules
from .models import NO_CHALLENGE, ChallengeInfo
from .scoring import contains_any

if TYPE_CHECKING:
    from ..config import ChallengeSettings
    from .controller import PageController

logger = logging.getLogger(__name__)


class ChallengeClassifier:
    """Two-phase challenge detection.

    Phase 1 is a cheap pre-check: existence probes over a broad selector
    list plus a body keyword scan. Most pages have no challenge, so a miss
    returns NONE straight away. Phase 2 runs the per-type detectors in
    priority order, each under its own budget, and the first match wins.
    A detector that errors or runs out of time counts as no match. A
    positive pre-check that no detector can place is UNKNOWN, as is an
    error in the pre-check itself.
    """

    def __init__(
        self,
        settings: "ChallengeSettings",
        captcha_selectors: list[str],
        probe_timeout: float = 1.0,
        rules: Optional[list[ChallengeRule]] = None,
    ):
        self.settings = settings
        self.probe_timeout = probe_timeout
        self.rules = rules if rules is not None else build_default_rules(settings.rules, captcha_selectors)

    async def detect(self, controller: "PageController") -> ChallengeInfo:
        if not self.settings.enabled:
            return NO_CHALLENGE

        try:
            info = await asyncio.wait_for(self._detect(controller), timeout=self.settings.timeout)
        except asyncio.TimeoutError:
            logger.warning("Challenge detection exceeded %.1fs budget", self.settings.timeout)
            info = ChallengeInfo(type=ChallengeType.UNKNOWN, description="Challenge detection timed out")
        except Exception as exc:
            logger.warning("Challenge detection failed: %s", exc)
            info = ChallengeInfo(type=ChallengeType.UNKNOWN, description=f"Challenge detection failed: {exc}")

        if info.is_present:
            self._report(info)
        return info

    async def _detect(self, controller: "PageController") -> ChallengeInfo:
        try:
            body_text = await asyncio.wait_for(
                self._precheck(controller), timeout=self.settings.precheck_timeout
            )
        except asyncio.TimeoutError:
            logger.debug("Challenge pre-check timed out; treating page as unchallenged")
            return NO_CHALLENGE

        if body_text is None:
            return NO_CHALLENGE

        context = ChallengeContext(
            controller=controller,
            body_text=body_text,
            probe_timeout=self.probe_timeout,
        )
        for rule in self.rules:
            try:
                info = await asyncio.wait_for(rule.detect(context), timeout=self.settings.detector_timeout)
            except asyncio.TimeoutError:
                logger.debug("Challenge detector %s ran out of time", rule.name)
                continue
            except Exception as exc:
                logger.debug("Challenge detector %s failed: %s", rule.name, exc)
                continue
            if info is not None:
                return info

        return ChallengeInfo(
            type=ChallengeType.UNKNOWN,
            description="Challenge markers present but type could not be determined",
        )

    async def _precheck(self, controller: "PageController") -> Optional[str]:
        """Return the body text when any challenge marker is present, else None."""
        _, _, body_text = await controller.read_title_url_body()

        for selector in self.settings.precheck_selectors:
            if await controller.exists(selector, timeout=self.probe_timeout):
                logger.debug("Challenge pre-check hit selector %s", selector)
                return body_text

        hits = contains_any(body_text, self.settings.precheck_keywords)
        if hits:
            logger.debug("Challenge pre-check hit keywords %s", hits)
            return body_text
        return None

    def _report(self, info: ChallengeInfo) -> None:
        logger.info(
            "Challenge detected: %s (confidence %.2f)", info.type.display_name, info.confidence
        )
        if self.settings.verbose_output:
            logger.info("  Description: %s", info.description)
            logger.info("  Interactive: %s", "yes" if info.is_interactive() else "no")
            logger.info("  Handling: %s", info.handling_strategy())
