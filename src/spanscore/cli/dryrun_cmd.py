"""spanscore test -- dry-run an evaluator file against sample spans.

Nothing is stored: the evaluator is not registered and no execution is
created.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from spanscore.cli.common import console, load_draft, load_spans
from spanscore.cli.output import output_json, render_test_result
from spanscore.execution.dry_run import run_test
from spanscore.execution.retry import RetryPolicy
from spanscore.models.config import find_project_root, load_project_config
from spanscore.models.evaluator import Evaluator
from spanscore.models.preview import TestSampleSpec


def dry_run(
    evaluator_path: str = typer.Argument(..., help="Path to evaluator YAML file"),
    spans: Optional[str] = typer.Option(None, "--spans", help="JSON/YAML file of spans"),
    limit: int = typer.Option(5, "--limit", help="Maximum spans to sample (1-20)"),
    trace_id: Optional[str] = typer.Option(None, "--trace-id", help="Sample one trace"),
    span_id: Optional[list[str]] = typer.Option(None, "--span-id", help="Sample specific span(s)"),
    time_range: str = typer.Option("24h", "--time-range", help="1h, 24h, 7d or 30d"),
    sample_output: Optional[str] = typer.Option(
        None, "--sample-output", help="Score this text as a synthetic span instead"
    ),
    format_json: bool = typer.Option(False, "--json", help="Output pure JSON to stdout"),
) -> None:
    """Dry-run an evaluator and show what it would score."""
    filepath = Path(evaluator_path)
    draft = load_draft(filepath)
    source = load_spans(Path(spans) if spans else None)
    config = load_project_config(find_project_root(filepath))

    raw: dict = {"limit": limit, "time_range": time_range}
    if span_id:
        raw["span_ids"] = span_id
    if trace_id:
        raw["trace_id"] = trace_id
    if sample_output:
        raw["sample_input"] = {"output": sample_output}
    try:
        sample = TestSampleSpec.model_validate(raw)
    except ValidationError as exc:
        err = exc.errors()[0]
        where = ".".join(str(part) for part in err["loc"]) or "sample"
        console.print(f"[bold red]Invalid sample:[/bold red] {where}: {err['msg']}")
        raise typer.Exit(code=1)

    evaluator = Evaluator.model_validate({**draft.model_dump(), "project_id": config.project_id})
    worker = config.worker
    response = asyncio.run(
        run_test(
            evaluator,
            source,
            sample,
            credentials=config.credentials,
            retry_policy=RetryPolicy(
                max_retries=worker.max_retries,
                base_delay=worker.retry_base_delay,
                max_delay=worker.retry_max_delay,
            ),
            max_parallel=worker.max_parallel_spans,
        )
    )

    if format_json:
        output_json(response)
    else:
        render_test_result(response, Console())
    if response.summary.failure_count:
        raise typer.Exit(code=1)
