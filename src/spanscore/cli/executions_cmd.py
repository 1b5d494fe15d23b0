"""spanscore executions -- inspect and cancel stored executions."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from spanscore.cli.common import console
from spanscore.cli.output import output_json, render_execution, render_execution_list
from spanscore.errors import SpanscoreError
from spanscore.execution.candidates import InMemorySpanSource
from spanscore.models.config import find_project_root, load_project_config
from spanscore.models.execution import ExecutionQuery, ExecutionStatus, ExecutionTrigger
from spanscore.service import EvaluatorService

executions_app = typer.Typer(help="Inspect evaluator executions.", no_args_is_help=True)


def _service() -> EvaluatorService:
    root = find_project_root()
    return EvaluatorService.from_project(root, InMemorySpanSource(), load_project_config(root))


@executions_app.command("list")
def list_executions(
    evaluator_id: str = typer.Argument(..., help="Evaluator id"),
    status: Optional[ExecutionStatus] = typer.Option(None, "--status", help="Filter by status"),
    trigger: Optional[ExecutionTrigger] = typer.Option(
        None, "--trigger", help="Filter by trigger type"
    ),
    page: int = typer.Option(1, "--page", min=1),
    limit: int = typer.Option(20, "--limit", min=1, max=100),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
) -> None:
    """List an evaluator's executions, newest first."""
    query = ExecutionQuery(status=status, trigger_type=trigger, page=page, limit=limit)
    result = _service().list_executions(evaluator_id, query)
    if format_json:
        output_json(result)
        return
    out = Console()
    if not result.items:
        out.print("No executions found.")
        return
    render_execution_list(result.items, out)
    out.print(f"[dim]page {result.page}, {len(result.items)} of {result.total}[/dim]")


@executions_app.command("show")
def show_execution(
    execution_id: str = typer.Argument(..., help="Execution id"),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
) -> None:
    """Show one execution with its per-span outcomes."""
    try:
        detail = _service().get_execution_detail(execution_id)
    except SpanscoreError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)
    if format_json:
        output_json(detail)
    else:
        render_execution(detail, Console())


@executions_app.command("cancel")
def cancel_execution(
    execution_id: str = typer.Argument(..., help="Execution id"),
) -> None:
    """Cancel a pending or running execution."""
    try:
        cancelled = _service().cancel_execution(execution_id)
    except SpanscoreError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {cancelled.id} {cancelled.status.value}")
