#!/usr/bin/env python3
"""Main CLI entry point for the DataConnect browser runner using Typer.

``serve`` is the sidecar mode used by the parent process and is also what
runs when no command is given. ``run`` executes a single connector directly,
which is handy while developing connectors.
"""

import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from typing_extensions import Annotated

from .. import __version__
from ..capture.browser_resolver import BrowserResolver
from ..config import RunnerSettings, load_settings
from ..errors import BrowserUnavailable, ConfigurationError
from ..models.protocol import RunCommand
from ..runner.events import EventEmitter
from ..runner.protocol import ProtocolServer
from ..runner.supervisor import RunSupervisor

logger = logging.getLogger(__name__)

LOG_FORMAT = "[runner] %(levelname)s %(name)s: %(message)s"


# Create the main Typer app
app = typer.Typer(
    name="dataconnect-runner",
    help="DataConnect browser runner - connector execution sidecar",
    add_completion=False,
)


ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Runner configuration file (YAML or JSON)")
]
DataDirOption = Annotated[
    Optional[Path],
    typer.Option("--data-dir", help="Base directory for browser profiles and cached browsers")
]
LogLevelOption = Annotated[
    Optional[str],
    typer.Option("--log-level", help="Log level for stderr diagnostics")
]


def configure_logging(level: str) -> None:
    """Send all diagnostics to stderr; stdout carries protocol events only."""
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        force=True,
    )


def build_settings(config: Optional[Path], overrides: Dict[str, Any]) -> RunnerSettings:
    try:
        settings = load_settings(config_file=config, cli_overrides=overrides)
    except ConfigurationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)

    configure_logging(settings.log_level)
    logger.debug(f"Settings loaded from: {', '.join(settings.loaded_from)}")
    return settings


async def _serve(settings: RunnerSettings) -> int:
    emitter = EventEmitter()
    supervisor = RunSupervisor(settings, emitter)
    server = ProtocolServer(supervisor, emitter, settings)
    return await server.serve()


async def _run_once(settings: RunnerSettings, connector: Path, url: str, headed: bool) -> int:
    emitter = EventEmitter()
    supervisor = RunSupervisor(settings, emitter)
    await supervisor.start()
    try:
        command = RunCommand(
            run_id=f"cli-{uuid.uuid4().hex[:8]}",
            connector_path=str(connector),
            url=url,
            headless=not headed,
        )
        run = supervisor.start_run(command)
        outcome = await run.outcome
        return outcome.exit_code
    finally:
        await supervisor.close()


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """
    DataConnect browser runner.

    Runs connector scripts in persistent browser profiles and reports to a
    parent process over JSON lines on stdin/stdout.
    """
    if ctx.invoked_subcommand is None:
        settings = build_settings(None, {})
        raise typer.Exit(code=asyncio.run(_serve(settings)))


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"DataConnect browser runner v{__version__}")


@app.command()
def serve(
    config: ConfigOption = None,
    data_dir: DataDirOption = None,
    log_level: LogLevelOption = None,
    keep_alive: Annotated[
        bool,
        typer.Option("--keep-alive", help="Keep serving after a run finishes")
    ] = False,
):
    """Serve the JSON-lines protocol on stdin/stdout."""
    overrides: Dict[str, Any] = {"data_dir": data_dir, "log_level": log_level}
    if keep_alive:
        overrides["exit_on_run_finished"] = False
    settings = build_settings(config, overrides)

    exit_code = asyncio.run(_serve(settings))
    raise typer.Exit(code=exit_code)


@app.command()
def run(
    connector: Annotated[
        Path,
        typer.Argument(help="Connector file defining run(page)")
    ],
    url: Annotated[
        str,
        typer.Argument(help="Initial URL to open")
    ],
    headed: Annotated[
        bool,
        typer.Option("--headed", help="Show the browser window")
    ] = False,
    config: ConfigOption = None,
    data_dir: DataDirOption = None,
    log_level: LogLevelOption = None,
):
    """Run one connector directly, writing protocol events to stdout."""
    if not connector.is_file():
        typer.echo(f"Connector not found: {connector}", err=True)
        raise typer.Exit(code=2)

    settings = build_settings(config, {"data_dir": data_dir, "log_level": log_level})
    exit_code = asyncio.run(_run_once(settings, connector.resolve(), url, headed))
    raise typer.Exit(code=exit_code)


@app.command(name="resolve-browser")
def resolve_browser(
    config: ConfigOption = None,
    data_dir: DataDirOption = None,
):
    """Print the browser executable a run would use."""
    settings = build_settings(config, {"data_dir": data_dir})
    try:
        browser = BrowserResolver(settings).resolve()
    except BrowserUnavailable as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)

    typer.echo(f"{browser.path} ({browser.source.value})")


if __name__ == "__main__":
    app()
