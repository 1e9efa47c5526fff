"""Run supervisor: lifecycle, mode switches and disconnect arbitration.

The supervisor owns a table of runs and drives each one from launch to a
terminal phase. Every terminal decision (completed, failed, stopped by the
user closing the window, stopped by command) is made by a single actor task
that consumes one ordered event queue, so two competing signals for the same
run can never both produce a terminal event.

Browser close notifications carry the generation of the session that
closed. The actor ignores a notification when the run is already terminal,
when the runner closed that session itself, or when the session has since
been replaced by a relaunch.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Union

from ..capture.browser_resolver import BrowserResolver
from ..capture.http_fetch import HttpFetcher
from ..capture.launcher import BrowserLauncher, LaunchConfig
from ..capture.page_api import PageApi
from ..capture.profile import ProfileManager
from ..config import RunnerSettings
from ..errors import BrowserClosedError
from ..models.protocol import RunCommand, RunStatus
from ..models.run import CookieSet, FinishReason, RunOutcome, RunPhase
from .events import EventEmitter
from .harness import ConnectorHarness
from .state import BrowserSession, RunState

logger = logging.getLogger(__name__)


@dataclass
class ConnectorFinished:
    run_id: str
    result: Any = None


@dataclass
class ConnectorFailed:
    run_id: str
    error: BaseException


@dataclass
class BrowserDisconnected:
    run_id: str
    generation: int


@dataclass
class StopRequested:
    run_id: str
    reason: FinishReason = FinishReason.STOPPED_BY_COMMAND


SupervisorEvent = Union[ConnectorFinished, ConnectorFailed, BrowserDisconnected, StopRequested]
CompletionCallback = Callable[[RunOutcome], None]


class RunSupervisor:
    """Owns every run of this process and their browser sessions."""

    def __init__(
        self,
        settings: RunnerSettings,
        emitter: EventEmitter,
        launcher: Optional[BrowserLauncher] = None,
        resolver: Optional[BrowserResolver] = None,
        profiles: Optional[ProfileManager] = None,
        harness: Optional[ConnectorHarness] = None,
        fetcher: Optional[HttpFetcher] = None,
    ):
        """Initialize supervisor.

        Args:
            settings: Runner settings
            emitter: Protocol event writer
            launcher: Browser launcher, built from settings when None
            resolver: Browser resolver, built from settings when None
            profiles: Profile manager, built from settings when None
            harness: Connector harness
            fetcher: HTTP fetcher shared by all Page API instances
        """
        self.settings = settings
        self.emitter = emitter
        self.launcher = launcher or BrowserLauncher(LaunchConfig.from_settings(settings))
        self.resolver = resolver or BrowserResolver(settings)
        self.profiles = profiles or ProfileManager(settings)
        self.harness = harness or ConnectorHarness()
        self.fetcher = fetcher or HttpFetcher(default_timeout_ms=settings.http_timeout_ms)

        self.runs: Dict[str, RunState] = {}
        self._events: Optional[asyncio.Queue] = None
        self._actor_task: Optional[asyncio.Task] = None
        self._finalizers: Set[asyncio.Task] = set()
        self._completion_callbacks: List[CompletionCallback] = []

    async def start(self) -> None:
        """Start the actor task."""
        if self._actor_task is None:
            self._events = asyncio.Queue()
            self._actor_task = asyncio.create_task(self._actor_loop())
            logger.info("Started run supervisor")

    async def close(self) -> None:
        """Close remaining browsers, stop the actor and the Playwright driver."""
        if self._finalizers:
            await asyncio.gather(*list(self._finalizers), return_exceptions=True)

        for run in self.runs.values():
            if run.task is not None and not run.task.done():
                run.task.cancel()
            if run.session is not None and not run.session.closed:
                await run.session.close()

        if self._actor_task is not None:
            self._actor_task.cancel()
            try:
                await self._actor_task
            except asyncio.CancelledError:
                pass
            self._actor_task = None

        await self.launcher.stop()
        logger.info("Stopped run supervisor")

    def add_completion_callback(self, callback: CompletionCallback) -> None:
        """Add callback called with the ``RunOutcome`` of every finished run."""
        self._completion_callbacks.append(callback)

    def get_run(self, run_id: str) -> Optional[RunState]:
        return self.runs.get(run_id)

    @property
    def active_runs(self) -> List[RunState]:
        return [run for run in self.runs.values() if not run.is_terminal]

    # Commands

    def start_run(self, command: RunCommand) -> RunState:
        """Create a run and start executing it in the background.

        Returns:
            The new run, or the existing one if that run id is still active
        """
        if self._actor_task is None:
            raise RuntimeError("RunSupervisor.start() must be awaited before starting runs")

        existing = self.runs.get(command.run_id)
        if existing is not None and not existing.is_terminal:
            logger.warning(f"Run {command.run_id} is already active, ignoring duplicate run command")
            return existing

        run = RunState(command.run_id, command.connector_path, command.url, headless=command.headless)
        run.outcome  # bind the future to the running loop
        run.captures.add_callback(
            lambda key, captured: self._on_capture(run, key, captured.url)
        )
        self.runs[run.run_id] = run
        run.task = asyncio.create_task(self._execute(run))
        return run

    def request_stop(self, run_id: str, reason: FinishReason = FinishReason.STOPPED_BY_COMMAND) -> bool:
        """Ask the actor to stop a run.

        Returns:
            False if there is no active run with that id
        """
        run = self.runs.get(run_id)
        if run is None or run.is_terminal:
            logger.debug(f"Stop for unknown or finished run {run_id} ignored")
            return False

        logger.info(f"Stopping run {run_id}")
        self._post(StopRequested(run_id, reason))
        return True

    async def shutdown(self) -> None:
        """Stop every active run and wait until all of them have finished."""
        live = self.active_runs
        for run in live:
            self.request_stop(run.run_id, FinishReason.QUIT)
        if live:
            await asyncio.gather(*(run.outcome for run in live))
        if self._finalizers:
            await asyncio.gather(*list(self._finalizers), return_exceptions=True)

    async def wait_for_runs(self) -> None:
        """Wait for every run started so far to finish."""
        pending = [run.outcome for run in self.runs.values()]
        if pending:
            await asyncio.gather(*pending)

    # Run execution

    def _api(self, run: RunState) -> PageApi:
        return PageApi(run, self, self.emitter, self.settings, fetcher=self.fetcher)

    async def _execute(self, run: RunState) -> None:
        logger.info(
            f"Starting run {run.run_id} with connector {run.connector_path} "
            f"(headless: {run.requested_headless})"
        )
        try:
            entry = self.harness.load(run.connector_path)

            run.browser = self.resolver.resolve()
            logger.info(f"Using browser: {run.browser.path} ({run.browser.source.value})")

            run.profile_dir = self.profiles.profile_dir_for(run.connector_path)
            await self.profiles.prepare(run.profile_dir, run.browser, self.launcher)

            session = await self._launch(run, run.requested_headless)
            run.transition(RunPhase.HEADLESS if session.headless else RunPhase.HEADED)

            logger.info(f"Navigating to initial URL: {run.url}")
            await session.page.goto(run.url, wait_until="domcontentloaded")
            logger.info("Initial navigation complete")
            self.emitter.status(run.run_id, RunStatus.RUNNING)

            result = await self.harness.invoke(entry, self._api(run))
        except asyncio.CancelledError:
            logger.info(f"Run {run.run_id} cancelled")
            raise
        except Exception as e:
            self._post(ConnectorFailed(run.run_id, e))
            return

        self._post(ConnectorFinished(run.run_id, result))

    async def _launch(self, run: RunState, headless: bool) -> BrowserSession:
        """Launch a new session for a run and make it current."""
        generation = run.next_generation()
        launch = asyncio.ensure_future(
            self.launcher.launch(run.profile_dir, headless=headless, browser=run.browser)
        )
        try:
            context = await asyncio.shield(launch)
        except asyncio.CancelledError:
            # Whenever the launch finishes, nobody owns its context.
            launch.add_done_callback(lambda f: self._close_orphan(run, f))
            raise

        session = BrowserSession(context, None, generation, headless)
        run.session = session
        context.on("close", lambda _: self._on_context_closed(run, session))
        session.page = context.pages[0] if context.pages else await context.new_page()
        run.captures.attach(session.page)
        logger.debug(f"Run {run.run_id} now on {session!r}")
        return session

    def _close_orphan(self, run: RunState, launch: asyncio.Future) -> None:
        if launch.cancelled() or launch.exception() is not None:
            return
        logger.info(f"Run {run.run_id} was stopped during launch, closing new browser")
        context = launch.result()
        task = asyncio.ensure_future(context.close())
        self._finalizers.add(task)
        task.add_done_callback(self._finalizers.discard)

    def _on_context_closed(self, run: RunState, session: BrowserSession) -> None:
        session.mark_closed()
        self._post(BrowserDisconnected(run.run_id, session.generation))

    def _on_capture(self, run: RunState, key: str, url: str) -> None:
        if not run.is_terminal:
            self.emitter.network_captured(run.run_id, key, url)

    # Mode switches, called through the Page API

    async def close_browser(self, run: RunState) -> None:
        """Snapshot cookies, then close the browser and enter HTTP-only mode."""
        session = run.session
        if run.phase == RunPhase.CLOSED or session is None or session.closed:
            logger.info("Browser already closed")
            return

        logger.info("Closing browser (connector requested close_browser)")
        try:
            cookies = await session.context.cookies()
            run.cookies = CookieSet(cookies=list(cookies))
            logger.info(f"Extracted {len(run.cookies)} cookies for background HTTP requests")
        except Exception as e:
            logger.warning(f"Could not extract cookies: {e}")
            run.cookies = CookieSet()

        if not run.transition(RunPhase.CLOSED):
            return
        await session.close()

        self.emitter.log(run.run_id, "Browser closed, continuing in background...")
        logger.info("Browser closed, run continues for background work")

    async def show_browser(self, run: RunState, url: Optional[str] = None) -> None:
        """Relaunch the run's browser headed."""
        logger.info("show_browser requested")
        await self._relaunch(run, headless=False, url=url)
        self.emitter.log(run.run_id, "Browser opened for user interaction")
        logger.info("Headed browser opened")

    async def go_headless(self, run: RunState, url: Optional[str] = None) -> None:
        """Relaunch the run's browser headless and warm it up on a URL."""
        if run.phase == RunPhase.HEADLESS and not run.browser_closed:
            logger.info("Already in headless mode")
            return

        logger.info("Switching to headless mode")
        await self._relaunch(run, headless=True, url=url or self.settings.warmup_url)
        self.emitter.log(run.run_id, "Switched to headless mode for background data collection")
        logger.info("Switched to headless mode")

    async def _relaunch(self, run: RunState, headless: bool, url: Optional[str]) -> None:
        operation = "go_headless" if headless else "show_browser"
        if not run.transition(RunPhase.SWITCHING):
            raise BrowserClosedError(operation)

        old = run.session
        if old is not None and not old.closed:
            await old.close()

        try:
            session = await self._launch(run, headless)
        except asyncio.CancelledError:
            raise
        except Exception:
            run.transition(RunPhase.CLOSED)
            raise

        run.transition(RunPhase.HEADLESS if headless else RunPhase.HEADED)
        if url:
            await session.page.goto(url, wait_until="domcontentloaded")

    # Actor

    def _post(self, event: SupervisorEvent) -> None:
        self._events.put_nowait(event)

    async def _actor_loop(self) -> None:
        logger.debug("Supervisor actor started")
        while True:
            try:
                event = await self._events.get()
            except asyncio.CancelledError:
                break

            try:
                self._handle(event)
            except Exception as e:
                logger.error(f"Error handling supervisor event {event!r}: {e}")
            finally:
                self._events.task_done()

        logger.debug("Supervisor actor stopped")

    def _handle(self, event: SupervisorEvent) -> None:
        run = self.runs.get(event.run_id)
        if run is None:
            logger.debug(f"Event for unknown run ignored: {event!r}")
            return

        if isinstance(event, ConnectorFinished):
            self._handle_finished(run, event)
        elif isinstance(event, ConnectorFailed):
            self._handle_failed(run, event)
        elif isinstance(event, BrowserDisconnected):
            self._handle_disconnected(run, event)
        elif isinstance(event, StopRequested):
            self._handle_stop(run, event)

    def _handle_finished(self, run: RunState, event: ConnectorFinished) -> None:
        if not run.transition(RunPhase.COMPLETED):
            return

        self.emitter.result(run.run_id, event.result)
        self.emitter.status(run.run_id, RunStatus.COMPLETE)
        logger.info(f"Connector for run {run.run_id} completed successfully")
        self._finish(
            run,
            RunOutcome(run_id=run.run_id, reason=FinishReason.COMPLETED, exit_code=0),
            linger_ms=self.settings.completion_linger_ms,
        )

    def _handle_failed(self, run: RunState, event: ConnectorFailed) -> None:
        if run.is_terminal:
            return

        session = run.session
        if session is not None and session.lost:
            # The page operation failed because the user closed the window.
            self._stop(run, FinishReason.STOPPED_BY_USER)
            return

        message = str(event.error) or event.error.__class__.__name__
        logger.error(f"Error in run {run.run_id}: {message}")
        run.transition(RunPhase.ERROR)
        self.emitter.error(run.run_id, message)
        self.emitter.status(run.run_id, RunStatus.ERROR)
        self._finish(
            run,
            RunOutcome(run_id=run.run_id, reason=FinishReason.ERROR, exit_code=1, error=message),
        )

    def _handle_disconnected(self, run: RunState, event: BrowserDisconnected) -> None:
        if run.is_terminal:
            logger.debug(f"Browser closed after run {run.run_id} finished")
            return

        session = run.session
        if session is None or session.generation != event.generation:
            logger.debug(f"Ignoring close of replaced browser session {event.generation}")
            return
        if session.closing:
            logger.debug(f"Ignoring runner-initiated close of session {event.generation}")
            return

        logger.info(f"Browser disconnected for run {run.run_id} (user closed window)")
        self._stop(run, FinishReason.STOPPED_BY_USER)

    def _handle_stop(self, run: RunState, event: StopRequested) -> None:
        if run.is_terminal:
            return
        self._stop(run, event.reason)

    def _stop(self, run: RunState, reason: FinishReason) -> None:
        run.transition(RunPhase.STOPPED)
        self.emitter.status(run.run_id, RunStatus.STOPPED)
        if run.task is not None and not run.task.done():
            run.task.cancel()
        self._finish(run, RunOutcome(run_id=run.run_id, reason=reason, exit_code=0))

    def _finish(self, run: RunState, outcome: RunOutcome, linger_ms: int = 0) -> None:
        task = asyncio.create_task(self._finalize(run, outcome, linger_ms))
        self._finalizers.add(task)
        task.add_done_callback(self._finalizers.discard)

    async def _finalize(self, run: RunState, outcome: RunOutcome, linger_ms: int) -> None:
        try:
            session = run.session
            if session is not None and not session.closed:
                if linger_ms > 0:
                    await asyncio.sleep(linger_ms / 1000.0)
                await session.close()
        finally:
            run.finish(outcome)
            logger.info(f"Run {run.run_id} finished: {outcome.reason.value} (exit code {outcome.exit_code})")
            for callback in self._completion_callbacks:
                try:
                    callback(outcome)
                except Exception as e:
                    logger.error(f"Error in run completion callback: {e}")

    def __repr__(self) -> str:
        return f"RunSupervisor(runs={len(self.runs)}, active={len(self.active_runs)})"
