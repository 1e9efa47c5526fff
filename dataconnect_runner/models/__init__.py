"""Data models for the DataConnect browser runner."""

from .protocol import (
    RunStatus,
    RunCommand,
    StopCommand,
    QuitCommand,
    TestCommand,
    UnknownCommandError,
    parse_command,
    CollectingStatus,
    RunnerEvent,
    ReadyEvent,
    LogEvent,
    StatusEvent,
    DataEvent,
    NetworkCapturedEvent,
    ResultEvent,
    ErrorEvent,
    TestResultEvent,
)
from .run import (
    BrowserSource,
    ResolvedBrowser,
    RunPhase,
    FinishReason,
    RunOutcome,
    CaptureRegistration,
    CapturedResponse,
    CookieSet,
)

__all__ = [
    # Protocol
    "RunStatus",
    "RunCommand",
    "StopCommand",
    "QuitCommand",
    "TestCommand",
    "UnknownCommandError",
    "parse_command",
    "CollectingStatus",
    "RunnerEvent",
    "ReadyEvent",
    "LogEvent",
    "StatusEvent",
    "DataEvent",
    "NetworkCapturedEvent",
    "ResultEvent",
    "ErrorEvent",
    "TestResultEvent",

    # Run state
    "BrowserSource",
    "ResolvedBrowser",
    "RunPhase",
    "FinishReason",
    "RunOutcome",
    "CaptureRegistration",
    "CapturedResponse",
    "CookieSet",
]
