"""devbrain search: hybrid vector + keyword search over the index."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from devbrain.cli.errors import (
    err_config,
    err_embedding_failed,
    err_embedding_model_mismatch,
    err_invalid_option,
    err_no_api_key,
    err_no_db,
    err_no_index,
    err_search_failed,
    msg_no_results,
)
from devbrain.config import ConfigError, load_config
from devbrain.db.connection import Database
from devbrain.db.repository import Repository
from devbrain.db.schema import initialize
from devbrain.db.vectors import list_vec_tables, model_to_slug, vec_table_exists, vec_table_name
from devbrain.errors import EmbeddingError, ErrorKind, SearchError
from devbrain.rag.embedding_client import EmbeddingClient, provider_of, validate_api_key
from devbrain.rag.search import HybridSearchEngine, ScoredChunk

console = Console()

_SNIPPET_CHARS = 160


def search_cmd(
    query: Annotated[str, typer.Argument(help="Free-text query.")],
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", help="Number of results (default: search.top_k)."),
    ] = None,
    vector_weight: Annotated[
        float | None,
        typer.Option("--vector-weight", help="Weight of the vector ranking."),
    ] = None,
    keyword_weight: Annotated[
        float | None,
        typer.Option("--keyword-weight", help="Weight of the keyword ranking."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database."),
    ] = None,
) -> None:
    """Search the index and print the best matching chunks."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from None

    db_path = db or Path(cfg.database.path)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    model = cfg.embedding.model
    try:
        validate_api_key(model)
    except EmbeddingError:
        console.print(err_no_api_key(provider_of(model)))
        raise typer.Exit(1) from None

    conn = _open_db(db_path)
    try:
        vec_table = vec_table_name(model_to_slug(model))
        if not vec_table_exists(conn, vec_table):
            others = list_vec_tables(conn)
            console.print(
                err_embedding_model_mismatch(others, model) if others else err_no_index(model)
            )
            raise typer.Exit(1)

        engine = HybridSearchEngine(
            Repository(conn), EmbeddingClient.from_config(cfg.embedding), vec_table, cfg.search
        )
        try:
            results = engine.search(
                query,
                top_k=top_k,
                vector_weight=vector_weight,
                keyword_weight=keyword_weight,
            )
        except ValueError as exc:
            console.print(err_invalid_option(str(exc)))
            raise typer.Exit(1) from None
        except EmbeddingError as exc:
            if exc.kind is ErrorKind.UNAUTHORIZED:
                console.print(err_no_api_key(provider_of(model)))
            else:
                console.print(err_embedding_failed(exc))
            raise typer.Exit(1) from None
        except SearchError as exc:
            console.print(err_search_failed(str(exc)))
            raise typer.Exit(1) from None
    finally:
        conn.close()

    if not results:
        console.print(msg_no_results(query))
        return

    _print_results(query, results)


def _print_results(query: str, results: list[ScoredChunk]) -> None:
    table = Table(title=f"Results for '{escape(query)}'", show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Location", no_wrap=True)
    table.add_column("Ranks", style="dim")
    table.add_column("Content")

    for i, item in enumerate(results, start=1):
        table.add_row(
            str(i),
            f"{item.score:.4f}",
            escape(_location(item)),
            _ranks(item),
            escape(_snippet(item.chunk.content)),
        )
    console.print(table)


def _location(item: ScoredChunk) -> str:
    meta = item.chunk.metadata_dict
    path = meta.get("file_path", "?")
    start, end = meta.get("start_line"), meta.get("end_line")
    return f"{path}:{start}-{end}" if start is not None else path


def _ranks(item: ScoredChunk) -> str:
    vector = f"v{item.vector_rank}" if item.vector_rank is not None else "v-"
    keyword = f"k{item.keyword_rank}" if item.keyword_rank is not None else "k-"
    return f"{vector} {keyword}"


def _snippet(content: str) -> str:
    # Skip the "File: ... | Function: ..." header line
    _, _, body = content.partition("\n\n")
    text = " ".join((body or content).split())
    return text if len(text) <= _SNIPPET_CHARS else text[: _SNIPPET_CHARS - 1] + "…"


def _open_db(db_path: Path) -> sqlite3.Connection:
    db = Database(db_path)
    conn = db.connect()
    initialize(conn)
    return conn
