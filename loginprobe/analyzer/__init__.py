"""Analyzer modules for LoginProbe."""

from .challenge import ChallengeClassifier
from .controller import PageController, PlaywrightController
from .form_resolver import FormResolver
from .page_analyzer import PageAnalyzer
from .page_classifier import PageClassifier

__all__ = [
    "ChallengeClassifier",
    "FormResolver",
    "PageAnalyzer",
    "PageClassifier",
    "PageController",
    "PlaywrightController",
]
