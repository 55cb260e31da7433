"""Storage modules for LoginProbe."""

from .database import AttemptDatabase
from .evidence import EvidenceStore
from .results import MultiSink, ResultLogger, ResultSink

__all__ = ["AttemptDatabase", "EvidenceStore", "MultiSink", "ResultLogger", "ResultSink"]
