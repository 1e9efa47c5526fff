"""Wire models for the JSON-lines protocol spoken with the parent process.

Field names on the wire are camelCase (``runId``, ``connectorPath``) and the
status vocabulary is fixed; the parent process matches on both, so these
models are the single place where they are spelled out.
"""

import json
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from typing_extensions import Annotated


class RunStatus(str, Enum):
    """Simple status values carried by ``status`` events."""
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    ERROR = "ERROR"
    COMPLETE = "COMPLETE"
    WAITING_FOR_USER = "WAITING_FOR_USER"


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)


# Commands (stdin)

class RunCommand(WireModel):
    type: Literal["run"] = "run"
    run_id: str = Field(alias="runId")
    connector_path: str = Field(alias="connectorPath")
    url: str
    headless: bool = True

    @field_validator("headless", mode="before")
    @classmethod
    def default_headless(cls, v):
        # Anything but an explicit false means headless.
        return v is not False


class StopCommand(WireModel):
    type: Literal["stop"] = "stop"
    run_id: str = Field(alias="runId")


class QuitCommand(WireModel):
    type: Literal["quit"] = "quit"


class TestCommand(WireModel):
    __test__ = False
    type: Literal["test"] = "test"


Command = Annotated[
    Union[RunCommand, StopCommand, QuitCommand, TestCommand],
    Field(discriminator="type"),
]

COMMAND_TYPES = ("run", "stop", "quit", "test")

_command_adapter = TypeAdapter(Command)


class UnknownCommandError(ValueError):
    """A well-formed JSON line with an unsupported ``type``."""

    def __init__(self, command_type: Any):
        super().__init__(f"Unknown command: {command_type}")
        self.command_type = command_type


def parse_command(line: str) -> Union[RunCommand, StopCommand, QuitCommand, TestCommand]:
    """Parse one stdin line into a command model.

    Raises:
        json.JSONDecodeError: If the line is not JSON
        UnknownCommandError: If the command type is not supported
        pydantic.ValidationError: If required fields are missing
    """
    payload = json.loads(line)
    if not isinstance(payload, dict):
        raise UnknownCommandError(type(payload).__name__)
    if payload.get("type") not in COMMAND_TYPES:
        raise UnknownCommandError(payload.get("type"))
    return _command_adapter.validate_python(payload)


# Events (stdout)

class CollectingStatus(WireModel):
    """Structured progress status emitted by ``set_progress``."""
    type: Literal["COLLECTING"] = "COLLECTING"
    message: Optional[Any] = None
    phase: Optional[Any] = None
    count: Optional[Any] = None


class RunnerEvent(WireModel):
    """Base class for stdout events."""
    type: str

    def to_line(self) -> str:
        """Serialize the event as a single JSON line (without newline)."""
        return json.dumps(self.model_dump(by_alias=True), default=str, separators=(",", ":"))


class ReadyEvent(RunnerEvent):
    type: Literal["ready"] = "ready"


class LogEvent(RunnerEvent):
    type: Literal["log"] = "log"
    run_id: str = Field(alias="runId")
    message: str


class StatusEvent(RunnerEvent):
    type: Literal["status"] = "status"
    run_id: str = Field(alias="runId")
    status: Union[RunStatus, Dict[str, Any]]


class DataEvent(RunnerEvent):
    type: Literal["data"] = "data"
    run_id: str = Field(alias="runId")
    key: str
    value: Any = None


class NetworkCapturedEvent(RunnerEvent):
    type: Literal["network-captured"] = "network-captured"
    run_id: str = Field(alias="runId")
    key: str
    url: str


class ResultEvent(RunnerEvent):
    type: Literal["result"] = "result"
    run_id: str = Field(alias="runId")
    data: Any = None


class ErrorEvent(RunnerEvent):
    type: Literal["error"] = "error"
    run_id: str = Field(alias="runId")
    message: str


class TestResultEvent(RunnerEvent):
    __test__ = False
    type: Literal["test-result"] = "test-result"
    data: Dict[str, Any] = Field(default_factory=dict)
