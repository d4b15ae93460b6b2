"""citeline CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from citeline.cli.ask import ask_cmd
from citeline.cli.init import init_cmd
from citeline.cli.owners import ensure_cmd, owner_app
from citeline.cli.query import query_cmd
from citeline.cli.sources import sources_cmd
from citeline.cli.status import status_cmd
from citeline.cli.upload import upload_cmd
from citeline.config import load_config
from citeline.errors import ConfigError
from citeline.logging_setup import parse_level, setup_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("citeline")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"citeline {_installed_version()}")
        raise typer.Exit()


def _configured_level() -> str:
    try:
        return load_config().logging.level
    except ConfigError:
        # The command itself reports config errors.
        return "warning"


app = typer.Typer(
    name="citeline",
    help=(
        "citeline — grounded chat turns over scoped knowledge indexes.\n\n"
        "  citeline upload  Add files to a workspace / thread / project index.\n"
        "  citeline ask     Answer a message grounded in the resolved index."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="debug, info, warning or error (default: logging.level).",
        ),
    ] = None,
) -> None:
    """citeline — grounded chat turns over scoped knowledge indexes."""
    level = log_level or _configured_level()
    try:
        parse_level(level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from None
    setup_logging(level)


app.command("init")(init_cmd)
app.add_typer(owner_app, name="owner")
app.command("ensure")(ensure_cmd)
app.command("upload")(upload_cmd)
app.command("query")(query_cmd)
app.command("ask")(ask_cmd)
app.command("sources")(sources_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed citeline version."""
    typer.echo(f"citeline {_installed_version()}")


if __name__ == "__main__":
    app()
