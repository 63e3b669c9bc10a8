"""
Root Typer application for the runbook-admin CLI.
"""

from __future__ import annotations

import asyncio

import typer
from typer import Typer

from runbook_admin.cli.utils import (
    console,
    err_console,
    load_settings,
    make_registry,
    output_execution,
    output_history,
    parse_variables,
)
from runbook_admin.core.logging import configure_logging, resolve_json_format
from runbook_admin.execution.models import ExecutionOptions, ExecutionStatus

app = Typer(
    name="runbook-admin",
    help="runbook-admin — run runn runbooks and inspect their execution history.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("runbook-admin")
        except PackageNotFoundError:
            from runbook_admin import __version__ as v
        typer.echo(f"runbook-admin {v}")
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
    """runbook-admin CLI — execute runbooks and manage history."""
    settings = load_settings()
    configure_logging(
        level=settings.log_level,
        json_format=resolve_json_format(settings.log_format),
    )


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def run(
    runbook_path: str = typer.Argument(..., help="Runbook file to execute"),
    var: list[str] = typer.Option([], "--var", "-v", help="Variable as key=value (repeatable)"),
    arg: list[str] = typer.Option([], "--arg", "-a", help="Extra runn flag (repeatable)"),
    timeout_ms: int | None = typer.Option(None, "--timeout-ms", "-t", min=1),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Execute a runbook and wait for it to finish."""
    variables = parse_variables(var)
    options = ExecutionOptions(args=list(arg), timeout_ms=timeout_ms)

    async def _run():
        registry = make_registry()
        execution_id = await registry.start_execution(runbook_path, variables, options)
        try:
            return await registry.wait_for(execution_id)
        except asyncio.CancelledError:
            await registry.shutdown()
            raise

    result = asyncio.run(_run())
    if result is None:
        err_console.print("[bold red]Error[/bold red]: execution record missing")
        raise typer.Exit(code=1)

    output_execution(result, as_json=json_out)
    if result.status is not ExecutionStatus.SUCCESS:
        raise typer.Exit(code=1)


@app.command()
def check() -> None:
    """Check whether the runn executable is available."""
    available = asyncio.run(make_registry().check_external_tool_available())
    if available:
        console.print("[green]runn is available[/green]")
        return
    err_console.print("[bold red]runn is not installed or not available in PATH[/bold red]")
    raise typer.Exit(code=1)


@app.command()
def history(
    limit: int = typer.Option(50, "--limit", "-n", min=1),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List recorded executions, newest first."""
    results = asyncio.run(make_registry().get_all_executions())
    output_history(results[:limit], as_json=json_out)


@app.command()
def show(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one recorded execution with its output."""
    results = asyncio.run(make_registry().get_all_executions())
    for result in results:
        if result.id == execution_id:
            output_execution(result, as_json=json_out)
            return
    err_console.print(f"[bold red]Error[/bold red]: execution {execution_id} not found")
    raise typer.Exit(code=1)


@app.command()
def clear() -> None:
    """Clear execution history (running executions are kept)."""
    counts = asyncio.run(make_registry().clear_history())
    console.print(
        f"Cleared {counts.cleared} executions, kept {counts.preserved} running executions"
    )
