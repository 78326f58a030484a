"""CLI entry point for panewatch.

Commands:
- panewatch init: Write a default .panewatch/config.yaml
- panewatch monitor: Supervise the panes of a tmux session
- panewatch clear: Clear idle panes once and exit
- panewatch status: Show inferred pane statuses without acting on them
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from datetime import datetime
from pathlib import Path

import click
import pydantic
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from panewatch import __version__
from panewatch.cli_ui.status_table import StatusTableRenderer
from panewatch.core.cancellation import CancellationToken
from panewatch.core.config import (
    DEFAULT_CONFIG_YAML,
    ConfigError,
    MonitorConfig,
    default_config_path,
    load_config,
)
from panewatch.core.models import TerminationReason
from panewatch.core.scheduler import MonitoringCycleScheduler, SchedulerError
from panewatch.core.utils import format_duration, parse_start_time
from panewatch.tmux import LibtmuxBackend

console = Console()
logger = logging.getLogger(__name__)

# Reasons that end a run normally
CLEAN_EXITS = {
    TerminationReason.COMPLETED,
    TerminationReason.CANCELLED,
    TerminationReason.RUNTIME_EXCEEDED,
}


def get_repo_path() -> Path:
    """Get the project path (current directory)."""
    return Path.cwd()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config(config_path: str | None, session: str | None) -> MonitorConfig:
    """Load config from --config or .panewatch/config.yaml, then apply --session."""
    path = Path(config_path) if config_path else default_config_path(get_repo_path())
    try:
        config = load_config(path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    if session:
        config = config.model_copy(update={"session_name": session})
    return config


def _apply_overrides(config: MonitorConfig, overrides: dict[str, object]) -> MonitorConfig:
    """Rebuild the config with CLI overrides, validating them like file values."""
    try:
        return MonitorConfig.model_validate({**config.model_dump(), **overrides})
    except pydantic.ValidationError as e:
        error = e.errors()[0]
        field = error["loc"][0] if error["loc"] else "config"
        raise click.BadParameter(f"{field}: {error['msg']}") from e


def _install_signal_handlers(token: CancellationToken) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, token.cancel, f"received {sig.name}")
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; Ctrl+C falls back to KeyboardInterrupt
            logger.debug(f"Cannot install handler for {sig.name}")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    default=lambda: os.environ.get("PANEWATCH_LOG_LEVEL", "INFO"),
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity (env: PANEWATCH_LOG_LEVEL)",
)
def main(log_level: str) -> None:
    """panewatch - unattended tmux pane supervisor.

    Watches assistant sessions running in tmux panes, keeps them alive,
    clears idle ones and reports status to the active pane.
    """
    _configure_logging(log_level)


@main.command()
def init() -> None:
    """Write a default configuration file."""
    config_path = default_config_path(get_repo_path())

    if config_path.exists():
        console.print("[yellow]Project already initialized[/yellow]")
        return

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG_YAML)
    console.print(f"[green]Created {config_path}[/green]")


@main.command()
@click.option("--session", "-s", help="tmux session to monitor")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config.yaml")
@click.option("--once", is_flag=True, help="Run a single cycle and exit")
@click.option("--continuous", is_flag=True, help="Keep going after discovery failures")
@click.option("--time", "start_time", help="Start at HH:MM (next occurrence)")
@click.option("--max-runtime", type=float, help="Stop after this many seconds")
@click.option("--no-titles", is_flag=True, help="Do not write statuses into pane titles")
@click.option(
    "--instruction",
    "-i",
    "instruction_file",
    help="Instruction file path to send to the active pane at start",
)
def monitor(
    session: str | None,
    config_path: str | None,
    once: bool,
    continuous: bool,
    start_time: str | None,
    max_runtime: float | None,
    no_titles: bool,
    instruction_file: str | None,
) -> None:
    """Monitor the panes of a tmux session."""
    if once and continuous:
        raise click.UsageError("--once and --continuous are mutually exclusive")

    config = _load_config(config_path, session)
    overrides: dict[str, object] = {}
    if max_runtime is not None:
        overrides["max_runtime_seconds"] = max_runtime
    if no_titles:
        overrides["stamp_titles"] = False
    if overrides:
        config = _apply_overrides(config, overrides)

    start_at: datetime | None = None
    if start_time:
        try:
            start_at = parse_start_time(start_time)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--time") from e

    mode = "one-time" if once else "continuous" if continuous else "standard"
    console.print(
        f"[bold]Monitoring session '{config.session_name}'[/bold] "
        f"({mode}, max runtime {format_duration(config.max_runtime_seconds)})"
    )
    if start_at:
        console.print(f"Scheduled start: {start_at:%Y-%m-%d %H:%M}")

    async def run() -> TerminationReason:
        token = CancellationToken()
        _install_signal_handlers(token)
        scheduler = MonitoringCycleScheduler(
            LibtmuxBackend(),
            config=config,
            token=token,
            start_at=start_at,
            instruction_file=instruction_file,
        )
        if once:
            return await scheduler.one_time_monitor()
        if continuous:
            return await scheduler.start_continuous_monitoring()
        return await scheduler.monitor()

    reason = asyncio.run(run())

    if reason in CLEAN_EXITS:
        console.print(f"[green]Monitoring stopped: {reason.value}[/green]")
    else:
        console.print(f"[red]Monitoring stopped: {reason.value}[/red]")
        sys.exit(1)


@main.command()
@click.option("--session", "-s", help="tmux session to clear")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config.yaml")
@click.option(
    "--all", "clear_all", is_flag=True, help="Clear every worker pane regardless of status"
)
def clear(session: str | None, config_path: str | None, clear_all: bool) -> None:
    """Send /clear to idle and done panes once, then exit."""
    config = _load_config(config_path, session)

    async def run():
        token = CancellationToken()
        _install_signal_handlers(token)
        scheduler = MonitoringCycleScheduler(LibtmuxBackend(), config=config, token=token)
        return await scheduler.clear_idle_panes(everything=clear_all)

    try:
        outcomes = asyncio.run(run())
    except SchedulerError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    failed = [outcome for outcome in outcomes if not outcome.confirmed]
    cleared = len(outcomes) - len(failed)
    console.print(f"[green]Cleared {cleared} panes[/green] in session '{config.session_name}'")
    for outcome in failed:
        console.print(f"[yellow]{outcome.pane_id}:[/yellow] {escape(outcome.error or 'cancelled')}")

    if failed:
        sys.exit(1)


@main.command()
@click.option("--session", "-s", help="tmux session to inspect")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config.yaml")
def status(session: str | None, config_path: str | None) -> None:
    """Show inferred pane statuses without sending any keys."""
    config = _load_config(config_path, session)
    scheduler = MonitoringCycleScheduler(LibtmuxBackend(), config=config)

    try:
        operator, workers = asyncio.run(scheduler.discover())
    except SchedulerError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    statuses = {}
    rules = {}
    for pane in workers:
        alive = not pane.is_dead
        statuses[pane.id] = scheduler.inference.determine_status(pane.command, pane.title, alive)
        rules[pane.id] = scheduler.inference.explain(pane.command, pane.title, alive)
        scheduler.state.tracker.update_status(pane.id, statuses[pane.id])
    scheduler.state.operator_pane = operator
    scheduler.state.worker_panes = workers

    renderer = StatusTableRenderer(console)
    console.print(
        renderer.render_status_table(config.session_name, [operator, *workers], statuses, rules)
    )
    console.print(renderer.render_stats(scheduler.get_diagnostics()))


if __name__ == "__main__":
    main()
