"""spanscore CLI entry point."""

import typer

from spanscore import __version__
from spanscore.cli.common import configure_logging
from spanscore.cli.dryrun_cmd import dry_run
from spanscore.cli.executions_cmd import executions_app
from spanscore.cli.run_cmd import run
from spanscore.cli.validate_cmd import validate

app = typer.Typer(
    name="spanscore",
    help="Declarative span evaluators: targeting, scoring and executions",
    no_args_is_help=True,
)

app.command()(validate)
app.command(name="test")(dry_run)
app.command()(run)
app.add_typer(executions_app, name="executions")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"spanscore {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option(
        "WARNING", "--log-level", help="DEBUG, INFO, WARNING or ERROR"
    ),
) -> None:
    """Declarative span evaluators: targeting, scoring and executions."""
    configure_logging(log_level)
