"""Exception hierarchy for the DataConnect browser runner.

Every error raised by the runner derives from ``RunnerError`` so the
supervisor can tell runner failures apart from arbitrary connector bugs.
Some of these never leave their module: ``CaptureParseError`` is dropped by
the network capture registry and ``HttpFetchError`` is folded into a failed
``HttpFetchResult``.
"""

from typing import Optional


class RunnerError(Exception):
    """Base class for all runner errors."""


class ConfigurationError(RunnerError):
    """Runner settings could not be loaded or validated."""


class BrowserUnavailable(RunnerError):
    """No browser executable could be resolved."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "No browser available. The parent process should download Chromium before starting the connector."
        )


class BrowserClosedError(RunnerError):
    """A browser-dependent Page API call was made without a live browser."""

    def __init__(self, operation: Optional[str] = None):
        message = (
            "Browser is closed. Use page.http_fetch() for HTTP requests "
            "or page.show_browser() to reopen."
        )
        if operation:
            message = f"{message} (operation: {operation})"
        super().__init__(message)
        self.operation = operation


class CaptureParseError(RunnerError):
    """A captured response body was not valid JSON."""


class ConnectorLoadError(RunnerError):
    """A connector file could not be loaded or has no entry point."""


class ConnectorRuntimeError(RunnerError):
    """Connector code raised while running.

    The message is the original exception's message so the parent sees
    exactly what the connector reported.
    """

    def __init__(self, original: BaseException):
        super().__init__(str(original) or original.__class__.__name__)
        self.original = original


class HttpFetchError(RunnerError):
    """Transport-level failure inside ``http_fetch``."""
