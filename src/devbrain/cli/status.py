"""devbrain status: index overview (documents, chunks, vector tables)."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from devbrain.config import ConfigError, DevbrainConfig, load_config
from devbrain.db.connection import Database
from devbrain.db.repository import Repository
from devbrain.db.schema import initialize
from devbrain.db.vectors import list_vec_tables

console = Console()


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database."),
    ] = None,
) -> None:
    """Show what is in the index."""
    # status works even with a broken devbrain.yaml
    try:
        cfg = load_config()
    except ConfigError:
        cfg = DevbrainConfig()

    db_path = db or Path(cfg.database.path)
    _show_config_panel(db_path, cfg)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  devbrain sync --source PATH_OR_URL",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    conn = _open_db(db_path)
    try:
        repo = Repository(conn)
        _show_index_panel(conn, repo)
        _show_documents(repo)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(db_path: Path, cfg: DevbrainConfig) -> None:
    db_info = escape(str(db_path))
    if db_path.exists():
        size_mb = db_path.stat().st_size / (1024 * 1024)
        db_info = f"{db_info} ({size_mb:.1f} MB)"

    lines = [
        f"Database:  {db_info}",
        f"Model:     {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Chunks:    {cfg.chunker.chunk_size} chars, {cfg.chunker.overlap} overlap",
    ]
    console.print(Panel("\n".join(lines), title="[bold]devbrain[/]", expand=False))


def _show_index_panel(conn: sqlite3.Connection, repo: Repository) -> None:
    stats = repo.get_stats()
    vec_tables = list_vec_tables(conn)

    lines = [
        f"Documents: [bold]{stats['documents']:,}[/]  |  "
        f"Chunks: [bold]{stats['chunks']:,}[/]  |  "
        f"Vec tables: [bold]{len(vec_tables)}[/]"
    ]
    for name in vec_tables:
        count = conn.execute(f"SELECT COUNT(*) FROM [{name}]").fetchone()[0]  # noqa: S608
        lines.append(f"  [dim]{name}[/] ({count:,} vectors)")
    if not stats["documents"]:
        lines.append("[dim]Nothing indexed yet.[/]")

    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))


def _show_documents(repo: Repository) -> None:
    documents = repo.list_documents()
    if not documents:
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Type", style="dim")
    table.add_column("Chunks", justify="right")
    table.add_column("Model", style="dim")
    table.add_column("Updated", style="dim")

    for doc in documents:
        table.add_row(
            escape(doc.source_url),
            doc.source_type,
            str(repo.count_chunks_by_document(doc.id)),
            doc.embedding_model,
            (doc.updated_at or "")[:16],
        )
    console.print(table)


def _open_db(db_path: Path) -> sqlite3.Connection:
    db = Database(db_path)
    conn = db.connect()
    initialize(conn)
    return conn
