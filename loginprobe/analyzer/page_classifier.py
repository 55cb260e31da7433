"""Login-page classification from title, URL, body text and form presence."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..constants import (
    CONTENT_WEIGHT,
    FORM_PASSWORD_POINTS,
    FORM_SUBMIT_POINTS,
    FORM_USERNAME_POINTS,
    FORM_WEIGHT,
    LOGIN_CONFIDENCE_THRESHOLD,
    TITLE_WEIGHT,
    URL_WEIGHT,
)
from .models import PageClassification
from .scoring import clamp, pattern_score, weighted_keyword_score

if TYPE_CHECKING:
    from ..config import FormSettings, LoginDetectionSettings
    from .controller import PageController

logger = logging.getLogger(__name__)


class PageClassifier:
    """Scores how likely a page is to be a login page.

    The confidence is a weighted sum of four sub-scores, each clamped to
    [0, 1] first: title keywords (30%), URL path patterns (20%), body
    content keywords (25%) and presence of the username/password/submit
    fields (25%). A page is a login page when the confidence reaches 0.6.
    """

    def __init__(self, detection: "LoginDetectionSettings", form: "FormSettings"):
        self.detection = detection
        self.form = form
        # Title and URL tables only ever add evidence.
        self._title_table = [(kw, max(0.0, weight)) for kw, weight in detection.title_keywords]
        self._url_points = max(0.0, detection.url_pattern_points)

    def title_score(self, title: str) -> tuple[float, list[str]]:
        return weighted_keyword_score(title, self._title_table)

    def url_score(self, url: str) -> tuple[float, list[str]]:
        return pattern_score(url, self.detection.url_patterns, self._url_points)

    def content_score(self, body_text: str) -> tuple[float, list[str]]:
        return weighted_keyword_score(body_text, self.detection.content_keywords)

    def classify(
        self,
        title: str,
        url: str,
        body_text: str,
        form_presence_score: float,
    ) -> PageClassification:
        """Combine the four signals into a PageClassification."""
        title_score, title_hits = self.title_score(title)
        url_score, url_hits = self.url_score(url)
        content_score, content_hits = self.content_score(body_text)
        form_score = clamp(form_presence_score)

        confidence = clamp(
            TITLE_WEIGHT * title_score
            + URL_WEIGHT * url_score
            + CONTENT_WEIGHT * content_score
            + FORM_WEIGHT * form_score
        )

        features = (
            [f"title:{hit}" for hit in title_hits]
            + [f"url:{hit}" for hit in url_hits]
            + [f"content:{hit}" for hit in content_hits]
        )
        if form_score > 0:
            features.append(f"form:{form_score:.1f}")

        return PageClassification(
            title=title,
            url=url,
            body_text=body_text,
            confidence=confidence,
            is_login_page=confidence >= LOGIN_CONFIDENCE_THRESHOLD,
            title_score=title_score,
            url_score=url_score,
            content_score=content_score,
            form_score=form_score,
            features=features,
        )

    async def form_presence_score(self, controller: "PageController") -> float:
        score = 0.0
        if await controller.find_first_existing(self.form.username_selectors):
            score += FORM_USERNAME_POINTS
        if await controller.find_first_existing(self.form.password_selectors):
            score += FORM_PASSWORD_POINTS
        if await controller.find_first_existing(self.form.submit_selectors):
            score += FORM_SUBMIT_POINTS
        return clamp(score)

    async def classify_page(self, controller: "PageController") -> PageClassification:
        """Read the current page once and classify it.

        Raises PageReadError when the page cannot be read.
        """
        title, url, body_text = await controller.read_title_url_body()
        form_score = await self.form_presence_score(controller)
        result = self.classify(title, url, body_text, form_score)
        logger.info(
            "Login page confidence %.2f for %s (title=%.2f url=%.2f content=%.2f form=%.2f)",
            result.confidence,
            url,
            result.title_score,
            result.url_score,
            result.content_score,
            result.form_score,
        )
        return result
