"""spanscore run -- register an evaluator, trigger it and follow the execution.

The evaluator is created (or updated, matched by name) in the project's
JSON store and activated. A manual execution is triggered, a worker
drives it, and the CLI polls until it reaches a terminal state.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from spanscore.cli.common import console, load_draft, load_spans
from spanscore.cli.output import create_poll_progress, output_json, render_execution
from spanscore.errors import SpanscoreError
from spanscore.execution.candidates import SpanSource
from spanscore.execution.polling import ExecutionPoller
from spanscore.execution.worker import ExecutionWorker
from spanscore.models.config import ProjectConfig, find_project_root, load_project_config
from spanscore.models.evaluator import Evaluator, EvaluatorDraft
from spanscore.models.execution import Execution, ExecutionStatus, TriggerScope
from spanscore.service import EvaluatorService

# Terminal status -> exit code
EXIT_CODES: dict[str, int] = {
    "completed": 0,
    "failed": 1,
    "cancelled": 2,
}


def run(
    evaluator_path: str = typer.Argument(..., help="Path to evaluator YAML file"),
    spans: Optional[str] = typer.Option(None, "--spans", help="JSON/YAML file of spans"),
    span_id: Optional[list[str]] = typer.Option(None, "--span-id", help="Score specific span(s)"),
    trace_id: Optional[str] = typer.Option(None, "--trace-id", help="Score one trace"),
    sample_limit: Optional[int] = typer.Option(
        None, "--sample-limit", help="Maximum candidate spans"
    ),
    poll_interval: Optional[float] = typer.Option(
        None, "--poll-interval", help="Seconds between status checks"
    ),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
) -> None:
    """Trigger a manual execution of an evaluator and wait for it."""
    filepath = Path(evaluator_path)
    draft = load_draft(filepath)
    source = load_spans(Path(spans) if spans else None)
    project_root = find_project_root(filepath)
    config = load_project_config(project_root)

    try:
        scope = TriggerScope(
            span_ids=span_id or [],
            trace_id=trace_id,
            sample_limit=sample_limit,
        )
    except ValidationError as exc:
        console.print(f"[bold red]Invalid scope:[/bold red] {exc.errors()[0]['msg']}")
        raise typer.Exit(code=1)

    try:
        final_status = asyncio.run(
            _run_async(
                project_root,
                config,
                draft,
                source,
                scope,
                poll_interval=poll_interval or config.worker.poll_interval_seconds,
                format_json=format_json,
            )
        )
    except SpanscoreError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    exit_code = EXIT_CODES.get(final_status.value, 1)
    if exit_code:
        raise typer.Exit(code=exit_code)


def _register(service: EvaluatorService, project_id: str, draft: EvaluatorDraft) -> Evaluator:
    for existing in service.list_evaluators(project_id):
        if existing.name == draft.name:
            changes = draft.model_dump(exclude={"status"})
            evaluator = service.update_evaluator(existing.id, changes)
            break
    else:
        evaluator = service.create_evaluator(project_id, draft)
    return service.activate_evaluator(evaluator.id)


async def _run_async(
    project_root: Path,
    config: ProjectConfig,
    draft: EvaluatorDraft,
    source: SpanSource,
    scope: TriggerScope,
    *,
    poll_interval: float,
    format_json: bool,
) -> ExecutionStatus:
    service = EvaluatorService.from_project(project_root, source, config)
    evaluator = _register(service, config.project_id, draft)
    response = service.trigger_evaluator(evaluator.id, scope)
    if not format_json:
        console.print(f"[dim]{response.message}: {response.execution_id}[/dim]")

    worker = ExecutionWorker(service.manager)
    worker.start()

    def fetch() -> list[Execution]:
        return [service.get_execution(response.execution_id)]

    progress = None if format_json else create_poll_progress(console)
    try:
        if progress is None:
            await ExecutionPoller(fetch, interval=poll_interval).run()
        else:
            with progress:
                task = progress.add_task("Waiting for execution", total=None)

                def on_update(executions: list[Execution]) -> None:
                    progress.update(task, description=f"Execution {executions[0].status.value}")

                await ExecutionPoller(fetch, on_update, interval=poll_interval).run()
    finally:
        await worker.stop()

    detail = service.get_execution_detail(response.execution_id)
    if format_json:
        output_json(detail)
    else:
        render_execution(detail, Console())
    return detail.status
