"""spanscore validate -- check evaluator YAML files.

Reports every error in every file, in annotated or CI format, and exits
non-zero if any file is invalid.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from spanscore.loader.errors import ErrorFormatter
from spanscore.loader.validator import validate_evaluator_file
from spanscore.models.config import find_project_root, load_project_config


def _discover(evaluators_dir: Path) -> list[Path]:
    if not evaluators_dir.is_dir():
        return []
    return sorted(
        list(evaluators_dir.glob("**/*.yaml")) + list(evaluators_dir.glob("**/*.yml"))
    )


def validate(
    files: Optional[list[str]] = typer.Argument(
        None, help="Evaluator files to validate (default: all in evaluators/)"
    ),
    ci: bool = typer.Option(False, "--ci", help="CI-friendly concise output"),
) -> None:
    """Validate evaluator YAML files.

    Exits with code 0 if all files are valid, 1 otherwise.
    """
    formatter = ErrorFormatter(ci_mode=ci)

    paths: list[Path] = []
    if files:
        for name in files:
            path = Path(name)
            if not path.exists():
                typer.echo(f"Error: File not found: {name}", err=True)
                raise typer.Exit(code=1)
            paths.append(path)
    else:
        root = find_project_root()
        config = load_project_config(root)
        paths = _discover(root / config.evaluators_dir)
        if not paths:
            typer.echo(
                "No evaluator files found. Specify files or create an "
                f"{config.evaluators_dir}/ directory."
            )
            raise typer.Exit(code=1)

    invalid = 0
    for path in paths:
        _, errors = validate_evaluator_file(path)
        if errors:
            invalid += 1
            source = path.read_text(encoding="utf-8")
            typer.echo(formatter.format_all(errors, source, str(path)), err=not ci)
        else:
            formatter.print_success(str(path))

    typer.echo(f"\n{len(paths) - invalid}/{len(paths)} evaluators valid")
    if invalid:
        raise typer.Exit(code=1)
