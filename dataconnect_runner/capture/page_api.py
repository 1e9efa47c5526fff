"""Capability API handed to connector scripts.

A connector receives exactly one ``PageApi`` object and does all of its work
through it: navigation and script evaluation on the live page, network
captures, progress and data reporting, switching between headed, headless
and browser-less operation, and cookie-authenticated HTTP requests once the
browser is closed.

The API always acts on the run's *current* browser session, so it stays
valid across ``show_browser()`` / ``go_headless()`` relaunches.
"""

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Union

from playwright.async_api import Page

from ..config import RunnerSettings
from ..errors import BrowserClosedError
from ..models.protocol import CollectingStatus, RunStatus
from ..models.run import CapturedResponse
from .http_fetch import HttpFetcher, HttpFetchResult

if TYPE_CHECKING:
    from ..runner.events import EventEmitter
    from ..runner.state import RunState
    from ..runner.supervisor import RunSupervisor

logger = logging.getLogger(__name__)


CheckFn = Callable[[], Union[Any, Awaitable[Any]]]

# set_data keys that are also surfaced as log lines.
LOGGED_DATA_KEYS = ("status", "error")


class PageApi:
    """The fixed set of operations available to a connector."""

    def __init__(
        self,
        run: "RunState",
        supervisor: "RunSupervisor",
        emitter: "EventEmitter",
        settings: RunnerSettings,
        fetcher: Optional[HttpFetcher] = None,
    ):
        self._run = run
        self._supervisor = supervisor
        self._emitter = emitter
        self._settings = settings
        self._fetcher = fetcher or HttpFetcher(default_timeout_ms=settings.http_timeout_ms)

    @property
    def run_id(self) -> str:
        return self._run.run_id

    def _require_page(self, operation: str) -> Page:
        session = self._run.session
        if not self._run.phase.has_browser or session is None or session.closed:
            raise BrowserClosedError(operation)
        return session.page

    # Browser operations

    async def goto(self, url: str) -> None:
        """Navigate the live page and wait for DOMContentLoaded."""
        page = self._require_page("goto")
        logger.info(f"page.goto called with: {url}")
        self._emitter.log(self.run_id, f"Navigating to: {url}")
        try:
            await page.goto(url, wait_until="domcontentloaded")
        except Exception as e:
            logger.error(f"page.goto error: {e}")
            raise

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Evaluate a JavaScript expression or function in the page."""
        page = self._require_page("evaluate")
        if arg is None:
            return await page.evaluate(script)
        return await page.evaluate(script, arg)

    async def sleep(self, ms: float) -> None:
        await asyncio.sleep(max(ms, 0) / 1000.0)

    # Reporting

    async def set_data(self, key: str, value: Any) -> None:
        """Forward a key/value pair to the parent as a ``data`` event.

        ``status`` and ``error`` values are also written to the log stream.
        """
        if key in LOGGED_DATA_KEYS:
            self._emitter.log(self.run_id, value)
            logger.info(f"[{key}] {value}")
        self._emitter.data(self.run_id, key, value)

    async def set_progress(
        self,
        phase: Any = None,
        message: Any = None,
        count: Any = None,
    ) -> None:
        """Emit a structured COLLECTING status for the progress UI."""
        self._emitter.status(self.run_id, CollectingStatus(phase=phase, message=message, count=count))
        if message:
            logger.info(f"[progress] {message}")

    async def prompt_user(
        self,
        message: str,
        check_fn: CheckFn,
        interval_ms: Optional[int] = None,
    ) -> None:
        """Ask the user to act in the browser and wait until ``check_fn`` is truthy.

        Polls forever; there is no timeout. The loop ends early only when the
        run is stopped, which cancels the connector task.

        Args:
            message: Instruction shown to the user
            check_fn: Sync or async callable; exceptions count as "not yet"
            interval_ms: Poll interval, defaults to the configured interval
        """
        interval_ms = interval_ms or self._settings.prompt_interval_ms
        self._emitter.log(self.run_id, message)
        self._emitter.status(self.run_id, RunStatus.WAITING_FOR_USER)

        while True:
            await asyncio.sleep(interval_ms / 1000.0)
            try:
                result = check_fn()
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.debug(f"prompt_user check failed, still waiting: {e}")
                continue
            if result:
                self._emitter.log(self.run_id, "User action completed")
                return

    # Network captures

    async def capture_network(self, key: str, url_pattern: str = "", body_pattern: str = "") -> None:
        """Register interest in responses whose URL contains ``url_pattern``.

        ``body_pattern`` is a ``|``-separated list of substrings; when set, the
        originating request body must contain at least one of them.
        """
        self._run.captures.register(key, url_pattern, body_pattern)

    async def get_captured_response(self, key: str) -> Optional[CapturedResponse]:
        return self._run.captures.get(key)

    async def clear_network_captures(self) -> None:
        self._run.captures.clear()

    def has_captured_response(self, key: str) -> bool:
        return self._run.captures.has(key)

    # Mode switches

    async def close_browser(self) -> None:
        """Close the browser and continue in HTTP-only mode."""
        await self._supervisor.close_browser(self._run)

    async def show_browser(self, url: Optional[str] = None) -> None:
        """Reopen the browser headed, e.g. so the user can log in again."""
        await self._supervisor.show_browser(self._run, url)

    async def go_headless(self, url: Optional[str] = None) -> None:
        """Relaunch the browser headless on the same profile."""
        await self._supervisor.go_headless(self._run, url)

    # HTTP

    async def http_fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        timeout_ms: Optional[int] = None,
    ) -> HttpFetchResult:
        """Direct HTTP request carrying the cookies of the closed browser.

        Never raises; check ``result.ok`` and ``result.error``.
        """
        return await self._fetcher.fetch(
            url,
            method=method,
            headers=headers,
            body=body,
            timeout_ms=timeout_ms,
            cookies=self._run.cookies,
        )

    def __repr__(self) -> str:
        return f"PageApi(run_id={self.run_id}, phase={self._run.phase.value})"
