"""devbrain rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from devbrain.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("gemini"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from devbrain.errors import EmbeddingError, ErrorKind


def err_no_api_key(provider: str, env_var: str | None = None) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'gemini'. Set:  export GEMINI_API_KEY=...
    """
    env_var = env_var or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_no_sources() -> str:
    return (
        "[red]Error:[/] No --source specified.\n"
        "  Run:  devbrain sync --source PATH_OR_URL"
    )


def err_no_db(db_path: str = ".devbrain.db") -> str:
    """No index database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{escape(db_path)}'.\n"
        "  Run:  devbrain sync --source PATH_OR_URL"
    )


def err_no_index(model: str) -> str:
    """The database exists but nothing was embedded with *model* yet."""
    return (
        f"[red]Error:[/] Nothing has been indexed with '{model}' yet.\n"
        "  Run:  devbrain sync --source PATH_OR_URL"
    )


def err_embedding_model_mismatch(db_tables: list[str], config_model: str) -> str:
    """Vector tables in the DB do not match the configured model."""
    return (
        "[red]Error:[/] Embedding model mismatch.\n"
        f"  Database has:   {', '.join(db_tables)}\n"
        f"  Config has:     {config_model}\n"
        "  Re-sync your sources or update embedding.model to match the database."
    )


def err_config(message: str) -> str:
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {escape(message)}\n"
        "  Fix devbrain.yaml (or ~/.devbrain/config.yaml) and retry."
    )


def err_invalid_source(source: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Cannot use source '{escape(source)}'.\n"
        f"  {escape(reason)}"
    )


def err_invalid_option(message: str) -> str:
    return f"[red]Error:[/] {escape(message)}\n  Run:  devbrain search --help"


def err_embedding_failed(exc: EmbeddingError) -> str:
    """The query could not be embedded."""
    hints = {
        ErrorKind.RATE_LIMITED: "The provider is rate limiting requests. Wait and retry.",
        ErrorKind.UNAUTHORIZED: "Check that the API key for the embedding provider is valid.",
        ErrorKind.BAD_INPUT: "Check embedding.model and embedding.dimensions in devbrain.yaml.",
        ErrorKind.SERVER_ERROR: "The provider is unavailable. Retry later.",
    }
    return (
        f"[red]Error:[/] Embedding failed ({exc.kind.value}): {escape(str(exc))}\n"
        f"  {hints[exc.kind]}"
    )


def err_search_failed(reason: str) -> str:
    return (
        f"[red]Error:[/] Search failed: {escape(reason)}\n"
        "  Check the database with:  devbrain status"
    )


def err_source_not_found(source: str) -> str:
    """Source not found in database."""
    return (
        f"[yellow]Source not found:[/] '{escape(source)}' is not in the index.\n"
        "  Run:  devbrain status  to see all indexed documents."
    )


def msg_no_results(query: str) -> str:
    """Search ran but found nothing relevant."""
    return (
        f"[yellow]No relevant content found[/] for '{escape(query)}'.\n"
        "  Try other keywords, or sync more sources."
    )
