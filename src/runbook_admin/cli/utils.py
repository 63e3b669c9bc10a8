"""
CLI utility helpers — settings, registry wiring and output formatting.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

import typer
from rich.console import Console
from rich.table import Table

from runbook_admin.core.config import RunbookAdminSettings, get_settings
from runbook_admin.core.errors import ConfigError
from runbook_admin.execution.models import ExecutionResult, ExecutionStatus
from runbook_admin.execution.registry import ExecutionRegistry, create_registry

console = Console()
err_console = Console(stderr=True)

_STATUS_STYLE = {
    ExecutionStatus.RUNNING: "yellow",
    ExecutionStatus.SUCCESS: "green",
    ExecutionStatus.FAILED: "red",
}


# ── Wiring ───────────────────────────────────────────────────────────────


def load_settings() -> RunbookAdminSettings:
    """Settings or a clean exit with the validation message."""
    try:
        return get_settings()
    except ConfigError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
        raise typer.Exit(code=2) from exc


def make_registry() -> ExecutionRegistry:
    return create_registry(load_settings())


def parse_variables(pairs: Sequence[str]) -> dict[str, str]:
    """``["key=value", ...]`` to a dict, preserving order."""
    variables: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            err_console.print(f"[red]Error: --var expects key=value, got {pair!r}[/red]")
            raise typer.Exit(code=2)
        variables[key] = value
    return variables


# ── Output helpers ───────────────────────────────────────────────────────


def _status_text(status: ExecutionStatus) -> str:
    style = _STATUS_STYLE.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def output_execution(result: ExecutionResult, *, as_json: bool = False) -> None:
    """Render one execution record."""
    if as_json:
        console.print_json(json.dumps(result.to_dict(), default=str))
        return

    table = Table(title=f"Execution: {result.id}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("runbook", result.runbook_path)
    table.add_row("runbook_id", result.runbook_id)
    table.add_row("status", _status_text(result.status))
    table.add_row("exit_code", str(result.exit_code))
    table.add_row("started", result.start_time.isoformat())
    table.add_row("duration", f"{result.duration} ms")
    if result.variables:
        table.add_row("variables", ", ".join(f"{k}={v}" for k, v in result.variables.items()))
    console.print(table)

    for line in result.output:
        console.print(line, markup=False, highlight=False)
    if result.error:
        err_console.print(result.error, markup=False, highlight=False, style="red")


def output_history(results: Sequence[ExecutionResult], *, as_json: bool = False) -> None:
    """Render a list of execution records, newest first."""
    if as_json:
        console.print_json(json.dumps([r.to_dict() for r in results], default=str))
        return

    if not results:
        console.print("[dim]No executions recorded.[/dim]")
        return

    table = Table(title=f"Executions ({len(results)})")
    table.add_column("ID", style="cyan")
    table.add_column("Runbook")
    table.add_column("Status")
    table.add_column("Exit", justify="right")
    table.add_column("Started")
    table.add_column("Duration", justify="right")
    for r in results:
        table.add_row(
            r.id,
            r.runbook_path,
            _status_text(r.status),
            str(r.exit_code),
            r.start_time.strftime("%Y-%m-%d %H:%M:%S"),
            f"{r.duration} ms",
        )
    console.print(table)
