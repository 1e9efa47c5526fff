"""Event serialization to the parent process.

Events are written as one JSON object per line on stdout. Nothing else may
write to stdout while the runner is serving; diagnostics go to the stderr
logger.
"""

import logging
import sys
from typing import Any, Dict, List, Optional, TextIO, Union

from ..models.protocol import (
    CollectingStatus,
    DataEvent,
    ErrorEvent,
    LogEvent,
    NetworkCapturedEvent,
    ReadyEvent,
    ResultEvent,
    RunnerEvent,
    RunStatus,
    StatusEvent,
    TestResultEvent,
)

logger = logging.getLogger(__name__)


class EventEmitter:
    """Writes protocol events to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None, record: bool = False):
        """Initialize emitter.

        Args:
            stream: Output stream, defaults to ``sys.stdout`` at write time
            record: Keep emitted events in ``self.events`` (used by tests)
        """
        self._stream = stream
        self.record = record
        self.events: List[RunnerEvent] = []

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def emit(self, event: RunnerEvent) -> None:
        if self.record:
            self.events.append(event)
        line = event.to_line()
        try:
            self.stream.write(line + "\n")
            self.stream.flush()
        except (BrokenPipeError, ValueError) as e:
            # Parent went away; nothing left to report to.
            logger.error(f"Failed to write event {event.type}: {e}")

    def ready(self) -> None:
        self.emit(ReadyEvent())

    def log(self, run_id: str, message: Any) -> None:
        self.emit(LogEvent(run_id=run_id, message=message if isinstance(message, str) else str(message)))

    def status(self, run_id: str, status: Union[RunStatus, CollectingStatus]) -> None:
        if isinstance(status, CollectingStatus):
            payload: Union[RunStatus, Dict[str, Any]] = status.model_dump(exclude_none=True)
        else:
            payload = status
        self.emit(StatusEvent(run_id=run_id, status=payload))

    def data(self, run_id: str, key: str, value: Any) -> None:
        self.emit(DataEvent(run_id=run_id, key=key, value=value))

    def network_captured(self, run_id: str, key: str, url: str) -> None:
        self.emit(NetworkCapturedEvent(run_id=run_id, key=key, url=url))

    def result(self, run_id: str, data: Any) -> None:
        self.emit(ResultEvent(run_id=run_id, data=data))

    def error(self, run_id: str, message: str) -> None:
        self.emit(ErrorEvent(run_id=run_id, message=message))

    def test_result(self, data: Dict[str, Any]) -> None:
        self.emit(TestResultEvent(data=data))
