"""Unit tests for the persistent-context browser launcher."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dataconnect_runner.capture.launcher import BrowserLauncher, LaunchConfig
from dataconnect_runner.config import DEFAULT_LAUNCH_ARGS, RunnerSettings
from dataconnect_runner.models.run import BrowserSource, ResolvedBrowser


class TestLaunchConfig:
    """Tests for LaunchConfig class."""

    def test_default_config(self):
        config = LaunchConfig()

        assert config.viewport == {"width": 1280, "height": 800}
        assert config.user_agent is None
        assert config.args == []
        assert config.extra_options == {}

    def test_from_settings(self, tmp_path):
        settings = RunnerSettings(data_dir=tmp_path, viewport_width=1024, viewport_height=700, user_agent="UA")
        config = LaunchConfig.from_settings(settings)

        assert config.viewport == {"width": 1024, "height": 700}
        assert config.user_agent == "UA"
        assert config.args == DEFAULT_LAUNCH_ARGS

    def test_launch_options_for_cached_browser(self):
        config = LaunchConfig(user_agent="UA", args=["--foo"], slow_mo=50)
        browser = ResolvedBrowser(path=Path("/opt/chromium/chrome"), source=BrowserSource.CACHED)

        options = config.to_launch_options(headless=True, browser=browser)

        assert options["headless"] is True
        assert options["args"] == ["--foo"]
        assert options["user_agent"] == "UA"
        assert options["executable_path"] == "/opt/chromium/chrome"
        assert options["slow_mo"] == 50
        assert "ignore_default_args" not in options

    def test_system_browser_keeps_real_keychain(self):
        browser = ResolvedBrowser(path=Path("/usr/bin/google-chrome"), source=BrowserSource.SYSTEM)

        options = LaunchConfig().to_launch_options(headless=False, browser=browser)

        assert options["headless"] is False
        assert options["ignore_default_args"] == ["--use-mock-keychain"]

    def test_launch_options_args_are_copied(self):
        config = LaunchConfig(args=["--foo"])
        options = config.to_launch_options(headless=True)
        options["args"].append("--bar")

        assert config.args == ["--foo"]


class TestBrowserLauncher:
    """Tests for BrowserLauncher class."""

    @pytest.fixture
    def mock_playwright(self):
        playwright = MagicMock()
        playwright.chromium.launch_persistent_context = AsyncMock(return_value=MagicMock(name="context"))
        playwright.stop = AsyncMock()
        return playwright

    @pytest.mark.asyncio
    async def test_launch_persistent_context(self, mock_playwright, tmp_path):
        launcher = BrowserLauncher(LaunchConfig(args=["--foo"]))
        profile_dir = tmp_path / "profiles" / "chatgpt"

        with patch("dataconnect_runner.capture.launcher.async_playwright") as mock_async_playwright:
            mock_async_playwright.return_value.start = AsyncMock(return_value=mock_playwright)
            context = await launcher.launch(profile_dir, headless=False)

        assert context is mock_playwright.chromium.launch_persistent_context.return_value
        assert profile_dir.is_dir()
        args, kwargs = mock_playwright.chromium.launch_persistent_context.call_args
        assert args == (str(profile_dir),)
        assert kwargs["headless"] is False
        assert kwargs["args"] == ["--foo"]
        assert launcher.is_running
        assert launcher.launch_count == 1

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, mock_playwright):
        launcher = BrowserLauncher(LaunchConfig())

        with patch("dataconnect_runner.capture.launcher.async_playwright") as mock_async_playwright:
            mock_async_playwright.return_value.start = AsyncMock(return_value=mock_playwright)
            await launcher.start()
            await launcher.start()

        assert mock_async_playwright.call_count == 1

    @pytest.mark.asyncio
    async def test_stop(self, mock_playwright):
        launcher = BrowserLauncher(LaunchConfig())
        launcher.playwright = mock_playwright

        await launcher.stop()

        mock_playwright.stop.assert_called_once()
        assert not launcher.is_running

    @pytest.mark.asyncio
    async def test_stop_error_is_logged(self, mock_playwright):
        launcher = BrowserLauncher(LaunchConfig())
        mock_playwright.stop.side_effect = RuntimeError("driver gone")
        launcher.playwright = mock_playwright

        await launcher.stop()

        assert launcher.playwright is None
