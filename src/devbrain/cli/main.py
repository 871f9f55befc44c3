"""devbrain CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from devbrain.cli.remove import remove_cmd
from devbrain.cli.search import search_cmd
from devbrain.cli.status import status_cmd
from devbrain.cli.sync import sync_cmd
from devbrain.logging_config import configure_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("devbrain")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"devbrain {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="devbrain",
    help=(
        "devbrain: hybrid search over your code and docs.\n\n"
        "  devbrain sync    Index new and changed files from a directory or git repo.\n"
        "  devbrain search  Vector + keyword search, fused by reciprocal rank."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug log output on stderr."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """devbrain: hybrid search over your code and docs."""
    configure_logging(verbose=verbose)


app.command("sync")(sync_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed devbrain version."""
    typer.echo(f"devbrain {_installed_version()}")


if __name__ == "__main__":
    app()
