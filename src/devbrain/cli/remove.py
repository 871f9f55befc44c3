"""devbrain remove: delete a document and everything derived from it.

Removes:
  - chunks (+ FTS5 index entries)
  - embeddings (all vec tables)
  - the document record

Usage:
  devbrain remove --source src/app.py
  devbrain remove --source https://github.com/org/repo/blob/HEAD/README.md --yes
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import structlog
import typer
from rich.console import Console
from rich.markup import escape

from devbrain.cli.errors import err_config, err_no_db, err_source_not_found
from devbrain.config import ConfigError, load_config
from devbrain.db.connection import Database
from devbrain.db.models import Document
from devbrain.db.repository import Repository
from devbrain.db.schema import initialize
from devbrain.db.vectors import list_vec_tables

console = Console()
log = structlog.get_logger()


def remove_cmd(
    source: Annotated[
        str,
        typer.Option("--source", "-s", help="Document URL or file path to remove."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a document and all its data from the index."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from None

    db_path = db or Path(cfg.database.path)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn = _open_db(db_path)
    repo = Repository(conn)

    try:
        existing = _find_document(repo, source)
        if existing is None:
            console.print(err_source_not_found(source))
            raise typer.Exit(0)

        chunk_count = repo.count_chunks_by_document(existing.id)
        vec_tables = len(list_vec_tables(conn))

        console.print(f"\nRemove document: [bold]{escape(existing.source_url)}[/]")
        console.print(f"  Chunks: {chunk_count}  |  Vec tables: {vec_tables}")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        removed = repo.delete_document(existing.id)
        log.info("Removed document", source_url=existing.source_url, chunks=removed)
        console.print(f"\n[green]✓[/] Removed: {escape(existing.source_url)}")
        console.print(f"  {removed} chunks deleted")
    finally:
        conn.close()


def _find_document(repo: Repository, source: str) -> Document | None:
    """Look *source* up as given, then as a resolved local path."""
    document = repo.get_document_by_url(source)
    if document is None and "://" not in source:
        document = repo.get_document_by_url(Path(source).expanduser().resolve().as_posix())
    return document


def _open_db(db_path: Path) -> sqlite3.Connection:
    db = Database(db_path)
    conn = db.connect()
    initialize(conn)
    return conn
