"""devbrain sync: bring the index in line with one or more sources.

Source dispatch:
  https:// / http:// / git@        → GitRepositorySource (shallow clone)
  directory containing .git       → GitRepositorySource (tracked files)
  other directory or single file  → LocalDirectorySource
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from devbrain.cli.errors import (
    err_config,
    err_invalid_source,
    err_no_api_key,
    err_no_sources,
)
from devbrain.config import ConfigError, load_config
from devbrain.db.connection import Database
from devbrain.db.repository import Repository
from devbrain.db.schema import initialize
from devbrain.db.vectors import ensure_vec_table, model_to_slug
from devbrain.errors import EmbeddingError, FetchError
from devbrain.ingest.splitter import CodeSplitter
from devbrain.ingest.sync import FileOutcome, SyncController, SyncResult, SyncStatus
from devbrain.rag.embedding_client import (
    EmbeddingClient,
    provider_of,
    validate_api_key,
)
from devbrain.sources import SourceFetcher, fetcher_for

console = Console()

_STATUS_MARKERS = {
    SyncStatus.ADDED: "[green]✓ added[/]",
    SyncStatus.UPDATED: "[yellow]↻ updated[/]",
    SyncStatus.SKIPPED: "[dim]↷ unchanged[/]",
    SyncStatus.ERRORED: "[red]✗ error[/]",
}


def sync_cmd(
    source: Annotated[
        list[str] | None,
        typer.Option("--source", "-s", help="Directory, file, repository path or git URL (repeatable)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database (created if missing)."),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", help="Glob pattern to exclude (repeatable)."),
    ] = None,
    no_recursive: Annotated[
        bool,
        typer.Option("--no-recursive", help="Do not descend into subdirectories."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Index new and changed files; unchanged files are skipped."""
    sources = source or []
    if not sources:
        console.print(err_no_sources())
        raise typer.Exit(1)

    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from None

    model = cfg.embedding.model
    try:
        validate_api_key(model)
    except EmbeddingError:
        console.print(err_no_api_key(provider_of(model)))
        raise typer.Exit(1) from None

    excludes = [*cfg.sources.exclude, *(exclude or [])]
    fetchers: list[SourceFetcher] = []
    for src in sources:
        try:
            fetchers.append(fetcher_for(src, exclude=excludes, recursive=not no_recursive))
        except FetchError as exc:
            console.print(err_invalid_source(src, str(exc)))
            raise typer.Exit(1) from None

    db_path = db or Path(cfg.database.path)
    if not yes:
        console.print(f"Sync {len(fetchers)} source(s) into [bold]{escape(str(db_path))}[/] using {model}.")
        if not typer.confirm("Proceed?", default=True):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    conn = _open_db(db_path)
    repo = Repository(conn)
    vec_table = ensure_vec_table(conn, model_to_slug(model), cfg.embedding.dimensions)
    controller = SyncController(
        repo,
        EmbeddingClient.from_config(cfg.embedding),
        CodeSplitter(chunk_size=cfg.chunker.chunk_size, overlap=cfg.chunker.overlap),
        vec_table,
        model,
        on_file=_print_outcome,
    )

    totals = SyncResult()
    try:
        for fetcher in fetchers:
            console.print(f"\n[bold]→ {escape(fetcher.name)}[/]")
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
                console=console,
            ) as prog:
                prog.add_task("Syncing…", total=None)
                totals = totals.merge(controller.sync(fetcher))
    finally:
        conn.close()

    _print_summary(totals)
    if totals.errored:
        raise typer.Exit(1)


def _print_outcome(outcome: FileOutcome) -> None:
    line = f"  {_STATUS_MARKERS[outcome.status]} {escape(outcome.source_url)}"
    if outcome.chunks:
        line += f" [dim]({outcome.chunks} chunks)[/]"
    if outcome.error:
        line += f"\n      [red]{escape(outcome.error)}[/]"
    console.print(line)


def _print_summary(result: SyncResult) -> None:
    table = Table(title="Sync summary", show_header=True, header_style="bold")
    table.add_column("Added", justify="right", style="green")
    table.add_column("Updated", justify="right", style="yellow")
    table.add_column("Unchanged", justify="right", style="dim")
    table.add_column("Errored", justify="right", style="red")
    table.add_row(
        str(result.added), str(result.updated), str(result.skipped), str(result.errored)
    )
    console.print()
    console.print(table)


def _open_db(db_path: Path) -> sqlite3.Connection:
    db = Database(db_path)
    conn = db.connect()
    initialize(conn)
    return conn
