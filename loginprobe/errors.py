"""Exception types for LoginProbe."""


class LoginProbeError(Exception):
    """Base exception for LoginProbe errors."""

    pass


class ConfigurationError(LoginProbeError):
    """Configuration file missing or invalid."""

    pass


class ControllerError(LoginProbeError):
    """A browser operation failed or timed out."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"{operation} failed: {message}")


class PageReadError(LoginProbeError):
    """The page title, URL or body could not be read."""

    pass


class FieldVerificationError(LoginProbeError):
    """A form field did not hold the intended value after filling."""

    def __init__(self, selector: str, expected: str, actual: str):
        self.selector = selector
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Value mismatch for {selector}: expected {expected!r}, got {actual!r}"
        )
