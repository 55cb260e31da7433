"""Read-only page analysis: classification, form resolution and challenge check."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from .challenge import ChallengeClassifier
from .form_resolver import FormResolver
from .models import NO_CHALLENGE, PageAnalysis
from .page_classifier import PageClassifier

if TYPE_CHECKING:
    from ..config import Config
    from .controller import PageController

logger = logging.getLogger(__name__)


class PageAnalyzer:
    """Runs the three classifiers against the page currently loaded."""

    def __init__(
        self,
        classifier: PageClassifier,
        resolver: FormResolver,
    ):
        self.classifier = classifier
        self.resolver = resolver

    @classmethod
    def from_config(cls, config: "Config") -> "PageAnalyzer":
        challenges = ChallengeClassifier(
            config.challenge,
            captcha_selectors=config.form.captcha_selectors,
            probe_timeout=config.browser.probe_timeout,
        )
        return cls(
            classifier=PageClassifier(config.detection, config.form),
            resolver=FormResolver(config.form, challenges),
        )

    async def analyze_page(self, controller: "PageController") -> PageAnalysis:
        """Classify the current page and resolve its form; never submits anything."""
        started = time.monotonic()
        classification = await self.classifier.classify_page(controller)
        form = await self.resolver.resolve(controller)
        analysis = PageAnalysis(
            classification=classification,
            form=form,
            challenge=form.challenge or NO_CHALLENGE,
            elapsed=time.monotonic() - started,
        )
        logger.debug("Page analysis finished in %.2fs", analysis.elapsed)
        return analysis
