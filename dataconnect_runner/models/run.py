"""Pydantic models for run state, captures and cookies.

These are the plain-data pieces of a run. Live Playwright objects never
appear here; they are held by ``runner.state``.
"""

import time
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class BrowserSource(str, Enum):
    """Where a resolved browser executable came from."""
    SYSTEM = "system"
    SYSTEM_ALTERNATE = "system_alternate"
    CACHED = "cached"


class ResolvedBrowser(BaseModel):
    """Browser executable chosen for a run."""

    path: Path = Field(description="Absolute path to the browser executable")
    source: BrowserSource = Field(description="How the executable was found")

    @property
    def is_system(self) -> bool:
        """True for the user's own Chrome, whose cookie store we can import."""
        return self.source == BrowserSource.SYSTEM


class RunPhase(str, Enum):
    """Lifecycle phase of a run."""
    STARTING = "starting"
    HEADED = "headed"
    HEADLESS = "headless"
    SWITCHING = "switching"
    CLOSED = "closed"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (RunPhase.COMPLETED, RunPhase.STOPPED, RunPhase.ERROR)

    @property
    def has_browser(self) -> bool:
        return self in (RunPhase.HEADED, RunPhase.HEADLESS)


class FinishReason(str, Enum):
    """Why a run finished."""
    COMPLETED = "completed"
    ERROR = "error"
    STOPPED_BY_USER = "stopped_by_user"
    STOPPED_BY_COMMAND = "stopped_by_command"
    QUIT = "quit"


class RunOutcome(BaseModel):
    """Final result of a run, delivered through the run's outcome future."""

    run_id: str
    reason: FinishReason
    exit_code: int = 0
    error: Optional[str] = None


class CaptureRegistration(BaseModel):
    """Interest in responses whose URL (and optionally request body) match."""

    key: str = Field(min_length=1)
    url_pattern: str = Field(default="")
    body_pattern: str = Field(default="")

    @field_validator("url_pattern", "body_pattern", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or ""

    @property
    def body_alternatives(self) -> List[str]:
        return [p for p in self.body_pattern.split("|") if p]

    def matches(self, url: str, request_body: Optional[str]) -> bool:
        """Check a response URL and its request body against this registration.

        Args:
            url: Response URL
            request_body: Post body of the originating request, if any

        Returns:
            True when the URL contains ``url_pattern`` and, if a body pattern
            is set, the request body contains at least one alternative
        """
        if self.url_pattern and self.url_pattern not in url:
            return False
        if self.body_pattern:
            body = request_body or ""
            return any(p in body for p in self.body_alternatives)
        return True


class CapturedResponse(BaseModel):
    """Most recent JSON body captured for a registration key."""

    url: str
    data: Any = None
    timestamp: int = Field(
        default_factory=lambda: int(time.time() * 1000),
        description="Capture time in epoch milliseconds"
    )


class CookieSet(BaseModel):
    """Cookies snapshotted from a browser context before it was closed."""

    cookies: List[Dict[str, Any]] = Field(default_factory=list)
    captured_at: datetime = Field(default_factory=datetime.utcnow)

    def __len__(self) -> int:
        return len(self.cookies)

    @staticmethod
    def domain_matches(host: str, cookie_domain: str) -> bool:
        """Exact or suffix match of a host against a cookie domain."""
        domain = cookie_domain[1:] if cookie_domain.startswith(".") else cookie_domain
        if not domain or not host:
            return False
        host = host.lower()
        domain = domain.lower()
        return host == domain or host.endswith("." + domain)

    def for_url(self, url: str) -> List[Dict[str, Any]]:
        """Cookies whose domain matches the URL's host."""
        host = urlparse(url).hostname or ""
        return [c for c in self.cookies if self.domain_matches(host, c.get("domain", ""))]

    def header_for(self, url: str) -> Optional[str]:
        """Build a ``Cookie`` header value for a URL, or None if nothing matches."""
        matching = self.for_url(url)
        if not matching:
            return None
        return "; ".join(f"{c.get('name', '')}={c.get('value', '')}" for c in matching)
