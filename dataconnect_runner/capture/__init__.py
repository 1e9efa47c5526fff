"""Browser capture layer for the DataConnect runner.

Main Components:
- Browser Resolver: finds system Chrome or a cached Chromium build
- Profile Manager: per-connector profiles and one-time cookie import
- Browser Launcher: persistent Playwright contexts
- Network Capture Registry: connector-defined response captures
- HTTP Fetcher: cookie-authenticated requests without a browser
- Page API: the capability object handed to connectors
"""

__all__ = [
    "BrowserResolver",
    "ProfileManager",
    "BrowserLauncher",
    "LaunchConfig",
    "NetworkCaptureRegistry",
    "HttpFetcher",
    "HttpFetchResult",
    "PageApi",
]

from .browser_resolver import BrowserResolver
from .profile import ProfileManager
from .launcher import BrowserLauncher, LaunchConfig
from .network_capture import NetworkCaptureRegistry
from .http_fetch import HttpFetcher, HttpFetchResult
from .page_api import PageApi
