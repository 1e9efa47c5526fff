"""Unit tests for the event emitter."""

import io
from unittest.mock import MagicMock

from dataconnect_runner.models.protocol import CollectingStatus, RunStatus
from dataconnect_runner.runner.events import EventEmitter
from runner_fakes import emitted


class TestEventEmitter:
    """Tests for EventEmitter class."""

    def test_one_json_object_per_line(self, emitter):
        emitter.ready()
        emitter.status("r1", RunStatus.RUNNING)
        emitter.result("r1", {"conversations": [{"id": "c1", "title": "Hi\nthere"}]})

        lines = emitter.stream.getvalue().splitlines()
        assert len(lines) == 3
        assert emitted(emitter)[2]["data"]["conversations"][0]["title"] == "Hi\nthere"
        assert [event.type for event in emitter.events] == ["ready", "status", "result"]

    def test_log_coerces_non_strings(self, emitter):
        emitter.log("r1", {"step": 2})

        assert emitted(emitter) == [{"type": "log", "runId": "r1", "message": "{'step': 2}"}]

    def test_collecting_status_is_an_object(self, emitter):
        emitter.status("r1", CollectingStatus(message="Fetching", count=3))

        assert emitted(emitter) == [{
            "type": "status",
            "runId": "r1",
            "status": {"type": "COLLECTING", "message": "Fetching", "count": 3},
        }]

    def test_network_captured_and_error(self, emitter):
        emitter.network_captured("r1", "me", "https://chatgpt.com/backend-api/me")
        emitter.error("r1", "Login failed")

        assert emitted(emitter) == [
            {"type": "network-captured", "runId": "r1", "key": "me", "url": "https://chatgpt.com/backend-api/me"},
            {"type": "error", "runId": "r1", "message": "Login failed"},
        ]

    def test_unserializable_values_fall_back_to_str(self, emitter):
        class Opaque:
            def __str__(self):
                return "opaque"

        emitter.data("r1", "thing", Opaque())

        assert emitted(emitter)[0]["value"] == "opaque"

    def test_broken_pipe_is_logged_not_raised(self):
        stream = MagicMock()
        stream.write.side_effect = BrokenPipeError()
        emitter = EventEmitter(stream=stream)

        emitter.ready()

        stream.flush.assert_not_called()

    def test_records_only_when_asked(self):
        emitter = EventEmitter(stream=io.StringIO())
        emitter.ready()

        assert emitter.events == []
