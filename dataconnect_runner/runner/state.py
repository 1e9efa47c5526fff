"""Run and browser-session state owned by the supervisor.

A run moves through ``RunPhase`` values; every change goes through
``RunState.transition`` which refuses to leave a terminal phase. Browser
sessions are never reused: each launch creates a new ``BrowserSession`` with
the next generation number, so close notifications from a replaced session
can be recognized and ignored.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from playwright.async_api import BrowserContext, Page

from ..capture.network_capture import NetworkCaptureRegistry
from ..models.run import CookieSet, FinishReason, ResolvedBrowser, RunOutcome, RunPhase

logger = logging.getLogger(__name__)


class BrowserSession:
    """One live persistent context and its single page."""

    def __init__(self, context: BrowserContext, page: Optional[Page], generation: int, headless: bool):
        self.context = context
        self.page = page
        self.generation = generation
        self.headless = headless
        self.closed = False
        self.closing = False

    @property
    def lost(self) -> bool:
        """The browser went away without the runner closing it."""
        return self.closed and not self.closing

    def mark_closed(self) -> None:
        self.closed = True

    async def close(self) -> None:
        """Close the context; marks the close as runner-initiated first."""
        self.closing = True
        if self.closed:
            return
        try:
            await self.context.close()
        except Exception as e:
            logger.warning(f"Error closing browser context: {e}")
        self.closed = True

    def __repr__(self) -> str:
        mode = "headless" if self.headless else "headed"
        return f"BrowserSession(generation={self.generation}, mode={mode}, closed={self.closed})"


class RunState:
    """Everything the supervisor knows about one run."""

    def __init__(self, run_id: str, connector_path: str, url: str, headless: bool = True):
        self.run_id = run_id
        self.connector_path = connector_path
        self.url = url
        self.requested_headless = headless

        self.phase = RunPhase.STARTING
        self.finish_reason: Optional[FinishReason] = None
        self.session: Optional[BrowserSession] = None
        self.generation = 0

        self.browser: Optional[ResolvedBrowser] = None
        self.profile_dir: Optional[Path] = None
        self.cookies: Optional[CookieSet] = None
        self.captures = NetworkCaptureRegistry()

        self.task: Optional[asyncio.Task] = None
        self._outcome: Optional[asyncio.Future] = None

    @property
    def outcome(self) -> asyncio.Future:
        """Future resolved with the ``RunOutcome`` when the run finishes."""
        if self._outcome is None:
            self._outcome = asyncio.get_running_loop().create_future()
        return self._outcome

    def transition(self, phase: RunPhase) -> bool:
        """Move to a new phase unless the run already finished.

        Returns:
            True if the phase changed
        """
        if self.phase.is_terminal:
            logger.debug(f"Run {self.run_id} is {self.phase.value}, ignoring transition to {phase.value}")
            return False
        logger.debug(f"Run {self.run_id}: {self.phase.value} -> {phase.value}")
        self.phase = phase
        return True

    def next_generation(self) -> int:
        self.generation += 1
        return self.generation

    def finish(self, outcome: RunOutcome) -> None:
        self.finish_reason = outcome.reason
        if not self.outcome.done():
            self.outcome.set_result(outcome)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def completed(self) -> bool:
        return self.phase == RunPhase.COMPLETED

    @property
    def browser_closed(self) -> bool:
        return self.session is None or self.session.closed

    @property
    def closed_by_connector(self) -> bool:
        return self.phase in (RunPhase.CLOSED, RunPhase.SWITCHING)

    @property
    def externally_closed(self) -> bool:
        return self.finish_reason == FinishReason.STOPPED_BY_USER

    @property
    def headless(self) -> bool:
        if self.session is not None:
            return self.session.headless
        return self.requested_headless

    def __repr__(self) -> str:
        return f"RunState(run_id={self.run_id}, phase={self.phase.value}, generation={self.generation})"
