"""Unit tests for wire models and command parsing."""

import json

import pytest
from pydantic import ValidationError

from dataconnect_runner.models import (
    CollectingStatus,
    ErrorEvent,
    LogEvent,
    NetworkCapturedEvent,
    QuitCommand,
    ReadyEvent,
    ResultEvent,
    RunCommand,
    RunStatus,
    StatusEvent,
    StopCommand,
    TestCommand,
    TestResultEvent,
    UnknownCommandError,
    parse_command,
)


class TestParseCommand:
    """Tests for parse_command."""

    def test_run_command(self):
        command = parse_command(json.dumps({
            "type": "run",
            "runId": "r1",
            "connectorPath": "/c/chatgpt.py",
            "url": "https://chatgpt.com",
        }))

        assert isinstance(command, RunCommand)
        assert command.run_id == "r1"
        assert command.connector_path == "/c/chatgpt.py"
        assert command.url == "https://chatgpt.com"
        assert command.headless is True

    def test_run_command_headless_only_false_when_explicit(self):
        base = {"type": "run", "runId": "r1", "connectorPath": "c.py", "url": "https://x"}

        assert parse_command(json.dumps({**base, "headless": False})).headless is False
        assert parse_command(json.dumps({**base, "headless": None})).headless is True
        assert parse_command(json.dumps({**base, "headless": True})).headless is True

    def test_stop_quit_test_commands(self):
        assert isinstance(parse_command('{"type": "stop", "runId": "r1"}'), StopCommand)
        assert isinstance(parse_command('{"type": "quit"}'), QuitCommand)
        assert isinstance(parse_command('{"type": "test"}'), TestCommand)

    def test_unknown_command_type(self):
        with pytest.raises(UnknownCommandError) as exc_info:
            parse_command('{"type": "dance"}')
        assert exc_info.value.command_type == "dance"

    def test_non_object_line(self):
        with pytest.raises(UnknownCommandError):
            parse_command('[1, 2]')

    def test_malformed_json(self):
        with pytest.raises(ValueError):
            parse_command('{"type": ')

    def test_missing_required_field(self):
        with pytest.raises(ValidationError):
            parse_command('{"type": "stop"}')


class TestEventSerialization:
    """Tests for event wire format."""

    def test_ready(self):
        assert ReadyEvent().to_line() == '{"type":"ready"}'

    def test_status_uses_camel_case_and_vocabulary(self):
        line = StatusEvent(run_id="r1", status=RunStatus.WAITING_FOR_USER).to_line()
        assert json.loads(line) == {"type": "status", "runId": "r1", "status": "WAITING_FOR_USER"}

    def test_collecting_status(self):
        status = CollectingStatus(phase={"step": 1, "total": 3}, message="Fetching", count=12)
        line = StatusEvent(run_id="r1", status=status.model_dump(exclude_none=True)).to_line()

        assert json.loads(line)["status"] == {
            "type": "COLLECTING",
            "message": "Fetching",
            "phase": {"step": 1, "total": 3},
            "count": 12,
        }

    def test_other_events(self):
        assert json.loads(LogEvent(run_id="r1", message="hi").to_line()) == {
            "type": "log", "runId": "r1", "message": "hi"
        }
        assert json.loads(NetworkCapturedEvent(run_id="r1", key="k", url="https://x/api").to_line()) == {
            "type": "network-captured", "runId": "r1", "key": "k", "url": "https://x/api"
        }
        assert json.loads(ResultEvent(run_id="r1", data={"conversations": []}).to_line()) == {
            "type": "result", "runId": "r1", "data": {"conversations": []}
        }
        assert json.loads(ErrorEvent(run_id="r1", message="Login failed").to_line()) == {
            "type": "error", "runId": "r1", "message": "Login failed"
        }
        assert json.loads(TestResultEvent(data={"cpus": 4}).to_line()) == {
            "type": "test-result", "data": {"cpus": 4}
        }

    def test_line_is_single_line(self):
        line = ResultEvent(run_id="r1", data={"text": "a\nb"}).to_line()
        assert "\n" not in line
        assert json.loads(line)["data"]["text"] == "a\nb"
