"""
CLI utility helpers: consoles and output formatting.
"""

from __future__ import annotations

import json
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from ferry.core.errors import FerryError
from ferry.framework.definition import OperationDefinition
from ferry.scheduling.scheduler import PassResult

console = Console()
err_console = Console(stderr=True)

# Exit codes of ``ferry run``
EXIT_OK = 0
EXIT_PIPELINE_FAILED = 1
EXIT_CONFIG_ERROR = 2


def fail(error: FerryError, *, code: int = EXIT_CONFIG_ERROR) -> None:
    """Print a ferry error and exit."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    for line in getattr(error, "errors", []):
        err_console.print(f"  [red]-[/red] {line}")
    raise typer.Exit(code=code)


def print_definitions(definitions: list[OperationDefinition], *, as_json: bool = False) -> None:
    """Render loaded operations."""
    if as_json:
        console.print_json(json.dumps([d.summary() for d in definitions], default=str))
        return
    if not definitions:
        console.print("[dim]No operations found.[/dim]")
        return

    table = Table(title="Operations", show_lines=False, pad_edge=False)
    for col in ("name", "active", "stores", "extract", "load", "interval", "source"):
        table.add_column(col, overflow="fold")
    for definition in definitions:
        summary = definition.summary()
        table.add_row(
            summary["name"],
            "yes" if summary["active"] else "[yellow]no[/yellow]",
            ", ".join(f"{alias} ({kind})" for alias, kind in summary["stores"].items()),
            ", ".join(summary["extract"]),
            ", ".join(summary["load"]),
            ", ".join(str(size) for size in summary["interval"]) or "-",
            summary["source"] or "-",
        )
    console.print(table)


def print_pass(result: PassResult) -> None:
    """Render one pass summary."""
    table = Table(title=f"Pass {result.number}", show_lines=False, pad_edge=False)
    for col in ("operation", "status", "phase", "duration", "sources", "error"):
        table.add_column(col, overflow="fold")
    for run in result.runs:
        data: dict[str, Any] = run.to_dict()
        status = data["status"]
        style = {"completed": "green", "failed": "red", "skipped": "yellow"}.get(status, "white")
        duration = data["duration_seconds"]
        table.add_row(
            data["operation"],
            f"[{style}]{status}[/{style}]",
            data["phase"] or "-",
            f"{duration:.2f}s" if duration is not None else "-",
            ", ".join(f"{label}: {c['writes']}/{c['reads']}" for label, c in data["sources"].items()) or "-",
            data["error"] or "",
        )
    console.print(table)
    for error in result.close_errors:
        err_console.print(f"[bold red]Close failed[/bold red]: {error.message}")
