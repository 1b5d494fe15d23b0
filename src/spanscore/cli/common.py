"""Helpers shared by the CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from spanscore.execution.candidates import InMemorySpanSource
from spanscore.loader.errors import ErrorFormatter
from spanscore.loader.validator import validate_evaluator_file
from spanscore.models.evaluator import EvaluatorDraft

console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Route library logging through Rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def load_draft(path: Path) -> EvaluatorDraft:
    """Validate an evaluator file or exit 1 after printing its errors."""
    if not path.exists():
        console.print(f"[bold red]File not found:[/bold red] {path}")
        raise typer.Exit(code=1)
    draft, errors = validate_evaluator_file(path)
    if errors or draft is None:
        console.print("[bold red]Evaluator validation errors:[/bold red]")
        source = path.read_text(encoding="utf-8")
        typer.echo(ErrorFormatter().format_all(errors, source, str(path)), err=True)
        raise typer.Exit(code=1)
    return draft


def load_spans(path: Path | None) -> InMemorySpanSource:
    """Load a span file (JSON or YAML) or exit 1 on any read/parse error."""
    if path is None:
        return InMemorySpanSource()
    try:
        return InMemorySpanSource.from_file(path)
    except FileNotFoundError:
        console.print(f"[bold red]Span file not found:[/bold red] {path}")
    except ValidationError as exc:
        console.print(f"[bold red]Invalid span in {path}:[/bold red] {exc.errors()[0]['msg']}")
    except (ValueError, yaml.YAMLError) as exc:
        console.print(f"[bold red]Cannot read spans from {path}:[/bold red] {exc}")
    raise typer.Exit(code=1)
