"""Shared test fixtures and configuration for DataConnect runner tests."""

import io
import sys
import textwrap
from pathlib import Path

import pytest

# Add project root and this directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from dataconnect_runner.config import RunnerSettings
from dataconnect_runner.runner.events import EventEmitter
from dataconnect_runner.runner.supervisor import RunSupervisor
from runner_fakes import FakeLauncher, FakeResolver


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: end-to-end protocol tests with fake browsers")
    config.addinivalue_line("markers", "slow: tests that take noticeably longer")


@pytest.fixture
def settings(tmp_path):
    """Runner settings rooted in a temporary directory."""
    return RunnerSettings(
        data_dir=tmp_path / "data",
        system_profile_root=tmp_path / "chrome",
        completion_linger_ms=0,
        prompt_interval_ms=10,
        log_level="DEBUG",
    )


@pytest.fixture
def emitter():
    """Emitter writing to an in-memory stream."""
    return EventEmitter(stream=io.StringIO(), record=True)


@pytest.fixture
def fake_launcher():
    return FakeLauncher(cookies=[
        {"name": "session", "value": "abc", "domain": ".example.com", "path": "/"},
        {"name": "other", "value": "zzz", "domain": "other.org", "path": "/"},
    ])


@pytest.fixture
def supervisor(settings, emitter, fake_launcher):
    """Supervisor wired to fake browser components."""
    return RunSupervisor(settings, emitter, launcher=fake_launcher, resolver=FakeResolver())


@pytest.fixture
def write_connector(tmp_path):
    """Factory writing a connector module into the temp directory."""
    connectors_dir = tmp_path / "connectors"
    connectors_dir.mkdir()

    def _write(name: str, source: str) -> Path:
        path = connectors_dir / f"{name}.py"
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return path

    return _write
