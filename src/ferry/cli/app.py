"""
Root Typer application for the ferry CLI.

Commands:
    ferry run PATH...       run every operation found under PATH once, or
                            every ``--period`` seconds until interrupted
    ferry validate PATH...  load and validate definitions without connecting
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
from pathlib import Path

import typer
from typer import Typer

from ferry import __version__
from ferry.cli.utils import (
    EXIT_CONFIG_ERROR,
    EXIT_OK,
    EXIT_PIPELINE_FAILED,
    console,
    fail,
    print_definitions,
    print_pass,
)
from ferry.core.errors import ConfigError, ValidationError
from ferry.core.logging import configure_logging, get_logger
from ferry.core.settings import get_settings
from ferry.framework.loader import load_definitions, load_pipelines
from ferry.scheduling.scheduler import PassResult, PipelineScheduler

logger = get_logger(__name__)

PATHS_HELP = (
    "Definition files (.yaml, .yml, .json, .py) or directories. Directories are walked "
    "recursively; names starting with . or _ are skipped, so helper modules can live "
    "next to definitions."
)

app = Typer(
    name="ferry",
    help="ferry: move and reshape records between data stores.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ferry {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """ferry CLI: run and validate pipeline definitions."""


# ── Commands ─────────────────────────────────────────────────────────────


async def _serve(scheduler: PipelineScheduler) -> PassResult:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, scheduler.stop)
    try:
        return await scheduler.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)


@app.command("run")
def run_command(
    paths: list[Path] = typer.Argument(..., help=PATHS_HELP),
    debug: bool = typer.Option(False, "--debug", "-d", help="Debug logging for every operation."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log per-record throughput."),
    period: float | None = typer.Option(
        None, "--period", "-p", min=0.001, help="Re-run every SECONDS (start to start)."
    ),
    concurrency: int | None = typer.Option(None, "--concurrency", "-c", min=1, help="Pipelines at once."),
    json_logs: bool | None = typer.Option(None, "--json-logs/--console-logs", help="Log format."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Do not print pass summaries."),
) -> None:
    """Run operations once, or on a period."""
    settings = get_settings(
        debug=debug or None,
        verbose=verbose or None,
        period_seconds=period,
        max_concurrency=concurrency,
    )
    configure_logging(
        level=settings.effective_log_level,
        json_format=settings.json_logs if json_logs is None else json_logs,
    )

    try:
        executors = load_pipelines(
            paths,
            debug=settings.debug or None,
            verbose=settings.verbose or None,
            parity_poll_seconds=settings.parity_poll_seconds,
        )
    except (ValidationError, ConfigError) as e:
        logger.error("cli.config_error", **e.to_dict())
        fail(e, code=EXIT_CONFIG_ERROR)

    scheduler = PipelineScheduler(
        executors,
        max_concurrency=settings.max_concurrency,
        period=settings.period_seconds,
        min_delay=settings.min_delay_seconds,
        on_pass_complete=None if quiet else print_pass,
    )
    last = asyncio.run(_serve(scheduler))

    if settings.period_seconds is None and not last.ok:
        raise typer.Exit(code=EXIT_PIPELINE_FAILED)
    raise typer.Exit(code=EXIT_OK)


@app.command("validate")
def validate_command(
    paths: list[Path] = typer.Argument(..., help=PATHS_HELP),
    json_out: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
) -> None:
    """Load and validate definitions without connecting to any store."""
    configure_logging(level="WARNING", json_format=False)
    try:
        definitions = load_definitions(paths)
    except (ValidationError, ConfigError) as e:
        fail(e, code=EXIT_CONFIG_ERROR)
    print_definitions(definitions, as_json=json_out)
    if not json_out:
        console.print(f"[green]{len(definitions)} operation(s) valid.[/green]")
