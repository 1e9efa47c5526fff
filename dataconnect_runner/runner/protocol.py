"""JSON-lines command server on stdin/stdout.

Commands are read one per line and dispatched strictly in order. A ``run``
command is handed to the supervisor without waiting for the run to finish,
so later ``stop`` or ``quit`` lines are still read while it executes.

Process exit is a policy layered on top of run outcomes: with
``exit_on_run_finished`` (the default) the server returns as soon as any run
finishes, using that run's exit code.
"""

import asyncio
import logging
import platform
import socket
import sys
import time
from typing import Any, Dict, Optional

import psutil

from ..config import RunnerSettings
from ..models.protocol import (
    QuitCommand,
    RunCommand,
    StopCommand,
    TestCommand,
    UnknownCommandError,
    parse_command,
)
from ..models.run import RunOutcome
from .events import EventEmitter
from .supervisor import RunSupervisor

logger = logging.getLogger(__name__)


def system_info() -> Dict[str, Any]:
    """Environment summary returned by the ``test`` command."""
    memory_gb = round(psutil.virtual_memory().total / 1024 / 1024 / 1024)
    uptime_minutes = round((time.time() - psutil.boot_time()) / 60)
    return {
        "python": platform.python_version(),
        "platform": sys.platform,
        "arch": platform.machine(),
        "hostname": socket.gethostname(),
        "cpus": psutil.cpu_count(),
        "memory": f"{memory_gb} GB",
        "uptime": f"{uptime_minutes} minutes",
    }


async def stdin_reader() -> asyncio.StreamReader:
    """Wrap the process stdin in an asyncio stream reader."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader


class ProtocolServer:
    """Reads commands, drives the supervisor and decides when to exit."""

    def __init__(self, supervisor: RunSupervisor, emitter: EventEmitter, settings: RunnerSettings):
        self.supervisor = supervisor
        self.emitter = emitter
        self.settings = settings
        self._exit: Optional[asyncio.Future] = None

    def _request_exit(self, code: int) -> None:
        if self._exit is not None and not self._exit.done():
            self._exit.set_result(code)

    def _on_run_finished(self, outcome: RunOutcome) -> None:
        if self.settings.exit_on_run_finished:
            self._request_exit(outcome.exit_code)

    async def serve(self, reader: Optional[asyncio.StreamReader] = None) -> int:
        """Run the protocol until quit, a finished run, or end of input.

        Args:
            reader: Command stream, defaults to the process stdin

        Returns:
            Process exit code
        """
        self._exit = asyncio.get_running_loop().create_future()
        await self.supervisor.start()
        self.supervisor.add_completion_callback(self._on_run_finished)

        if reader is None:
            reader = await stdin_reader()

        logger.info("Browser runner started")
        self.emitter.ready()

        read_task = asyncio.create_task(self._read_loop(reader))
        try:
            await asyncio.wait({read_task, self._exit}, return_when=asyncio.FIRST_COMPLETED)

            if not self._exit.done():
                # End of input: let active runs finish first.
                read_task.result()
                await self.supervisor.wait_for_runs()
            exit_code = self._exit.result() if self._exit.done() else 0
        finally:
            if not read_task.done():
                read_task.cancel()
                try:
                    await read_task
                except asyncio.CancelledError:
                    pass
            await self.supervisor.close()

        logger.info(f"Browser runner exiting with code {exit_code}")
        return exit_code

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        while True:
            line_bytes = await reader.readline()
            if not line_bytes:
                logger.info("stdin closed")
                return

            line = line_bytes.decode("utf-8", errors="replace").strip()
            if not line:
                continue

            if not await self.dispatch_line(line):
                return

    async def dispatch_line(self, line: str) -> bool:
        """Parse and execute one command line.

        Returns:
            False when the server should stop reading commands
        """
        try:
            command = parse_command(line)
        except UnknownCommandError as e:
            logger.warning(str(e))
            return True
        except ValueError as e:
            logger.error(f"Error parsing command: {e}")
            return True

        if isinstance(command, RunCommand):
            self.supervisor.start_run(command)
        elif isinstance(command, StopCommand):
            self.supervisor.request_stop(command.run_id)
        elif isinstance(command, QuitCommand):
            logger.info("Quitting...")
            await self.supervisor.shutdown()
            self._request_exit(0)
            return False
        elif isinstance(command, TestCommand):
            self.emitter.test_result(system_info())

        return True
