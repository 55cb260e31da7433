"""LoginProbe: authorized weak-credential auditing for web login pages."""

__version__ = "0.1.0"
