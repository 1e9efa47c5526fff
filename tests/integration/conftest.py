"""Shared fixtures for protocol integration tests."""

import asyncio
import json
from typing import Any, Dict

import pytest

from dataconnect_runner.runner.protocol import ProtocolServer
from dataconnect_runner.runner.supervisor import RunSupervisor
from runner_fakes import FakeResolver


class CommandFeed:
    """Writes command lines into the reader the server consumes."""

    def __init__(self):
        self.reader = asyncio.StreamReader()

    def send(self, command: Dict[str, Any]) -> None:
        self.reader.feed_data((json.dumps(command) + "\n").encode("utf-8"))

    def send_raw(self, line: str) -> None:
        self.reader.feed_data((line + "\n").encode("utf-8"))

    def close(self) -> None:
        self.reader.feed_eof()


@pytest.fixture
async def feed():
    # StreamReader binds to the running loop.
    return CommandFeed()


@pytest.fixture
def server(settings, emitter, fake_launcher):
    """Protocol server over a supervisor with fake browsers."""
    supervisor = RunSupervisor(settings, emitter, launcher=fake_launcher, resolver=FakeResolver())
    return ProtocolServer(supervisor, emitter, settings)


@pytest.fixture
def run_command(write_connector):
    """Factory for ``run`` command payloads."""

    def _make(name: str, source: str, run_id: str = "run-1", url: str = "https://chatgpt.com/", headless=True):
        path = write_connector(name, source)
        return {
            "type": "run",
            "runId": run_id,
            "connectorPath": str(path),
            "url": url,
            "headless": headless,
        }

    return _make
