"""Browser launcher for persistent Playwright contexts.

This module provides the BrowserLauncher class that owns the Playwright
driver and launches persistent (profile-backed) Chromium contexts. Every mode
switch in a run goes through ``launch()``, so the same profile directory is
reopened headed or headless without losing session state.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from playwright.async_api import BrowserContext, Playwright, async_playwright

from ..config import RunnerSettings
from ..models.run import ResolvedBrowser

logger = logging.getLogger(__name__)


class LaunchConfig:
    """Launch options shared by every persistent context of the runner."""

    def __init__(
        self,
        viewport: Optional[Dict[str, int]] = None,
        user_agent: Optional[str] = None,
        args: Optional[List[str]] = None,
        **kwargs
    ):
        """Initialize launch configuration.

        Args:
            viewport: Viewport size dict with 'width' and 'height'
            user_agent: Custom User-Agent string
            args: Extra Chromium command-line arguments
            **kwargs: Additional launch_persistent_context options
        """
        self.viewport = viewport or {"width": 1280, "height": 800}
        self.user_agent = user_agent
        self.args = list(args or [])
        self.extra_options = kwargs

    @classmethod
    def from_settings(cls, settings: RunnerSettings) -> "LaunchConfig":
        return cls(
            viewport=settings.viewport,
            user_agent=settings.user_agent,
            args=settings.launch_args,
        )

    def to_launch_options(self, headless: bool, browser: Optional[ResolvedBrowser] = None) -> Dict[str, Any]:
        """Convert to ``launch_persistent_context`` keyword arguments.

        Args:
            headless: Launch without a visible window
            browser: Resolved executable; system Chrome also keeps the real
                OS keychain so imported cookies can be decrypted

        Returns:
            Keyword arguments for Playwright
        """
        options: Dict[str, Any] = {
            "headless": headless,
            "args": list(self.args),
            "viewport": self.viewport,
        }

        if self.user_agent:
            options["user_agent"] = self.user_agent

        if browser is not None:
            options["executable_path"] = str(browser.path)
            if browser.is_system:
                options["ignore_default_args"] = ["--use-mock-keychain"]

        options.update(self.extra_options)
        return options


class BrowserLauncher:
    """Launches persistent browser contexts on demand."""

    def __init__(self, config: LaunchConfig):
        self.config = config
        self.playwright: Optional[Playwright] = None
        self._launch_count = 0

    async def start(self) -> None:
        """Start the Playwright driver."""
        if self.playwright is not None:
            return

        logger.debug("Starting Playwright driver")
        self.playwright = await async_playwright().start()

    async def stop(self) -> None:
        """Stop the Playwright driver."""
        if self.playwright is None:
            return

        try:
            await self.playwright.stop()
        except Exception as e:
            logger.error(f"Error stopping Playwright driver: {e}")
        finally:
            self.playwright = None

    async def launch(
        self,
        profile_dir: Path,
        headless: bool,
        browser: Optional[ResolvedBrowser] = None,
    ) -> BrowserContext:
        """Launch a persistent context on a profile directory.

        Args:
            profile_dir: Browser user-data directory (created if missing)
            headless: Launch without a visible window
            browser: Executable to launch; Playwright's default when None

        Returns:
            The new persistent browser context
        """
        await self.start()

        profile_dir.mkdir(parents=True, exist_ok=True)
        options = self.config.to_launch_options(headless, browser)

        mode = "headless" if headless else "headed"
        logger.info(f"Launching {mode} browser with profile: {profile_dir}")
        context = await self.playwright.chromium.launch_persistent_context(str(profile_dir), **options)
        self._launch_count += 1
        logger.info("Browser launched successfully")
        return context

    @property
    def is_running(self) -> bool:
        return self.playwright is not None

    @property
    def launch_count(self) -> int:
        return self._launch_count

    def __repr__(self) -> str:
        return f"BrowserLauncher(running={self.is_running}, launches={self.launch_count})"
