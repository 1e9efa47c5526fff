"""Browser executable resolution.

The runner prefers the user's installed Chrome (small install, and it can
decrypt the user's own cookies), then falls back to a Chromium build that the
parent process previously fetched into the browser cache directory. It never
downloads anything itself.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..config import RunnerSettings
from ..errors import BrowserUnavailable
from ..models.run import BrowserSource, ResolvedBrowser

logger = logging.getLogger(__name__)


# Primary system Chrome location per platform.
SYSTEM_CHROME_PATHS: Dict[str, str] = {
    "darwin": "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "win32": r"C:\Program Files\Google\Chrome\Application\chrome.exe",
    "linux": "/usr/bin/google-chrome",
}

# Executable locations inside a fetched chromium-<revision> directory.
CACHED_EXECUTABLES: Dict[str, List[Tuple[str, ...]]] = {
    "darwin": [
        ("chrome-mac-arm64", "Google Chrome for Testing.app", "Contents", "MacOS", "Google Chrome for Testing"),
        ("chrome-mac", "Google Chrome for Testing.app", "Contents", "MacOS", "Google Chrome for Testing"),
        ("chrome-mac-arm64", "Chromium.app", "Contents", "MacOS", "Chromium"),
        ("chrome-mac", "Chromium.app", "Contents", "MacOS", "Chromium"),
    ],
    "win32": [
        ("chrome-win", "chrome.exe"),
        ("chrome-win64", "chrome.exe"),
    ],
    "linux": [
        ("chrome-linux", "chrome"),
        ("chrome-linux64", "chrome"),
    ],
}


def _platform_key(platform: str) -> str:
    return "linux" if platform.startswith("linux") else platform


def _revision_key(name: str) -> Tuple[int, str]:
    suffix = name.rsplit("-", 1)[-1]
    return (int(suffix) if suffix.isdigit() else -1, name)


class BrowserResolver:
    """Resolves the browser executable a run should launch."""

    def __init__(
        self,
        settings: RunnerSettings,
        platform: str = sys.platform,
        exists: Callable[[str], bool] = os.path.exists,
    ):
        """Initialize resolver.

        Args:
            settings: Runner settings (cache dir, simulation flag, LOCALAPPDATA)
            platform: ``sys.platform`` value to resolve for
            exists: Path existence check, replaceable in tests
        """
        self.settings = settings
        self.platform = _platform_key(platform)
        self._exists = exists

    def resolve(self) -> ResolvedBrowser:
        """Resolve a browser executable.

        Returns:
            The resolved browser and where it came from

        Raises:
            BrowserUnavailable: If neither a system nor a cached browser exists
        """
        if self.settings.simulate_no_chrome:
            logger.info("DATACONNECT_SIMULATE_NO_CHROME is set, skipping system Chrome detection")
        else:
            system = self.find_system_browser()
            if system is not None:
                return system

        cached = self.find_cached_browser()
        if cached is not None:
            return cached

        raise BrowserUnavailable()

    def system_candidates(self) -> List[Tuple[str, BrowserSource]]:
        """System browser paths to probe, in order."""
        candidates: List[Tuple[str, BrowserSource]] = []
        primary = SYSTEM_CHROME_PATHS.get(self.platform)
        if primary:
            candidates.append((primary, BrowserSource.SYSTEM))

        if self.platform == "win32":
            candidates.append(
                (r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe", BrowserSource.SYSTEM)
            )
            if self.settings.local_app_data:
                candidates.append((
                    str(Path(self.settings.local_app_data) / "Google" / "Chrome" / "Application" / "chrome.exe"),
                    BrowserSource.SYSTEM,
                ))
            candidates.append(
                (r"C:\Program Files (x86)\Microsoft\Edge\Application\msedge.exe", BrowserSource.SYSTEM_ALTERNATE)
            )
        elif self.platform == "linux":
            candidates.append(("/usr/bin/google-chrome-stable", BrowserSource.SYSTEM))

        return candidates

    def find_system_browser(self) -> Optional[ResolvedBrowser]:
        """Probe well-known system install locations."""
        for path, source in self.system_candidates():
            logger.debug(f"Checking system browser at: {path}")
            if self._exists(path):
                logger.info(f"Found system browser: {path}")
                return ResolvedBrowser(path=Path(path), source=source)
        logger.info("System Chrome not found")
        return None

    def find_cached_browser(self) -> Optional[ResolvedBrowser]:
        """Look for a previously fetched Chromium in the browser cache."""
        cache_dir = self.settings.browser_cache_dir
        logger.debug(f"Checking for Chromium in: {cache_dir}")
        if not cache_dir.is_dir():
            logger.info(f"Browser cache dir does not exist: {cache_dir}")
            return None

        chromium_dirs = sorted(
            (entry for entry in cache_dir.iterdir()
             if entry.is_dir() and entry.name.startswith("chromium-") and "headless" not in entry.name),
            key=lambda entry: _revision_key(entry.name),
            reverse=True,
        )

        for chromium_dir in chromium_dirs:
            for parts in CACHED_EXECUTABLES.get(self.platform, []):
                executable = chromium_dir.joinpath(*parts)
                if self._exists(str(executable)):
                    logger.info(f"Using cached Chromium: {executable}")
                    return ResolvedBrowser(path=executable, source=BrowserSource.CACHED)

        return None
