"""Rich terminal output for dry runs and executions.

Key/value headline tables, per-span tables and plain JSON output for CI.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from pydantic import BaseModel
from rich import box
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

if TYPE_CHECKING:
    from spanscore.models.execution import Execution, ExecutionDetail, ScoreResult
    from spanscore.models.preview import TestEvaluatorResponse


# status value -> Rich markup style
_STATUS_STYLES: dict[str, str] = {
    "pending": "dim",
    "running": "bold blue",
    "completed": "bold green",
    "success": "green",
    "failed": "bold red",
    "cancelled": "yellow",
    "skipped": "dim",
    "filtered": "dim",
}


def styled(status: str) -> str:
    style = _STATUS_STYLES.get(status, "")
    return f"[{style}]{status}[/{style}]" if style else status


def format_scores(results: list[ScoreResult]) -> str:
    parts = []
    for result in results:
        value = result.value
        shown = f"{value:.2f}" if isinstance(value, float) else str(value)
        parts.append(f"{result.score_name}={shown}")
    return ", ".join(parts) or "-"


def _truncate(text: str | None, limit: int = 80) -> str:
    if not text:
        return ""
    return text[:limit] + "..." if len(text) > limit else text


def create_poll_progress(console: Console) -> Progress | None:
    """Spinner shown while polling; None when not attached to a terminal."""
    if not console.is_terminal:
        return None
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def render_test_result(response: TestEvaluatorResponse, console: Console) -> None:
    """Headline summary plus one row per sampled span."""
    preview = response.preview
    summary = response.summary

    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Evaluator", f"{preview.name} ({preview.scorer_type.value})")
    table.add_row("Filter", preview.filter_description)
    if preview.variable_names:
        table.add_row("Variables", ", ".join(preview.variable_names))
    if preview.prompt_preview:
        table.add_row("Prompt", preview.prompt_preview)
    table.add_row(
        "Spans",
        f"{summary.total_spans} sampled, {summary.matched_spans} matched, "
        f"{summary.evaluated_spans} evaluated",
    )
    table.add_row(
        "Outcomes",
        f"{summary.success_count} success, {summary.failure_count} failed, "
        f"{summary.skipped_count} skipped, {summary.filtered_count} filtered",
    )
    if summary.average_score is not None:
        table.add_row("Average score", f"{summary.average_score:.3f}")
    if summary.average_latency_ms is not None:
        table.add_row("Average latency", f"{summary.average_latency_ms:.1f}ms")

    console.print()
    console.print(table)

    if not response.executions:
        return
    spans = Table(box=box.SIMPLE_HEAD)
    spans.add_column("Span")
    spans.add_column("Name")
    spans.add_column("Status")
    spans.add_column("Scores")
    spans.add_column("Error")
    for item in response.executions:
        spans.add_row(
            item.span_id,
            item.span_name,
            styled(item.status.value),
            format_scores(item.score_results),
            _truncate(item.error_message),
        )
    console.print(spans)


def render_execution(detail: ExecutionDetail, console: Console) -> None:
    """Execution headline plus its per-span outcomes."""
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Execution", detail.id)
    table.add_row("Evaluator", f"{detail.evaluator_snapshot.name} ({detail.evaluator_id})")
    table.add_row("Status", styled(detail.status.value))
    table.add_row("Trigger", detail.trigger_type.value)
    table.add_row(
        "Spans",
        f"{detail.spans_matched} matched, {detail.spans_scored} scored, "
        f"{detail.errors_count} errors",
    )
    if detail.duration_ms is not None:
        table.add_row("Duration", f"{detail.duration_ms}ms")
    if detail.error_message:
        table.add_row("Error", f"[red]{detail.error_message}[/red]")

    console.print()
    console.print(table)

    if not detail.spans:
        return
    spans = Table(box=box.SIMPLE_HEAD)
    spans.add_column("Span")
    spans.add_column("Status")
    spans.add_column("Scores")
    spans.add_column("Latency", justify="right")
    spans.add_column("Error")
    for span in detail.spans:
        spans.add_row(
            span.span_id,
            styled(span.status.value),
            format_scores(span.score_results),
            f"{span.latency_ms:.1f}ms" if span.latency_ms is not None else "",
            _truncate(span.error_message),
        )
    console.print(spans)


def render_execution_list(executions: list[Execution], console: Console) -> None:
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("Execution")
    table.add_column("Status")
    table.add_column("Trigger")
    table.add_column("Matched", justify="right")
    table.add_column("Scored", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Created")
    for execution in executions:
        table.add_row(
            execution.id,
            styled(execution.status.value),
            execution.trigger_type.value,
            str(execution.spans_matched),
            str(execution.spans_scored),
            str(execution.errors_count),
            execution.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


def output_json(model: BaseModel) -> None:
    """Write a model as pure JSON to stdout, for machine parsing."""
    sys.stdout.write(model.model_dump_json(indent=2))
    sys.stdout.write("\n")
