"""Tests for devbrain sync."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from devbrain.cli.main import app
from devbrain.db.connection import Database
from devbrain.db.repository import Repository

runner = CliRunner()


class _Rejected(Exception):
    status_code = 400


def _project(root: Path) -> Path:
    proj = root / "proj"
    (proj / "node_modules").mkdir(parents=True)
    (proj / "a.py").write_text("def alpha():\n    return 'config loader'\n", encoding="utf-8")
    (proj / "notes.md").write_text("# Notes\n\nHow the config loader works.\n", encoding="utf-8")
    (proj / "node_modules" / "dep.js").write_text("module.exports = 1\n", encoding="utf-8")
    return proj


def _documents(db_path: Path) -> list[str]:
    conn = Database(db_path).connect()
    try:
        return sorted(Path(d.source_url).name for d in Repository(conn).list_documents())
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Error paths
# ---------------------------------------------------------------------------


def test_sync_requires_source(cli_env: Path) -> None:
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 1
    assert "No --source specified" in result.output


def test_sync_requires_api_key(cli_env: Path, monkeypatch) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    _project(cli_env)
    result = runner.invoke(app, ["sync", "--source", "proj", "--yes"])
    assert result.exit_code == 1
    assert "GEMINI_API_KEY" in result.output


def test_sync_rejects_unsupported_url(cli_env: Path) -> None:
    result = runner.invoke(app, ["sync", "--source", "ftp://example.com/repo", "--yes"])
    assert result.exit_code == 1
    assert "Cannot use source" in result.output


def test_sync_invalid_config(cli_env: Path) -> None:
    (cli_env / "devbrain.yaml").write_text("chunker:\n  chunk_size: 0\n", encoding="utf-8")
    result = runner.invoke(app, ["sync", "--source", "proj", "--yes"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_sync_can_be_cancelled(cli_env: Path, fake_provider) -> None:
    _project(cli_env)
    result = runner.invoke(app, ["sync", "--source", "proj", "--db", "idx.db"], input="n\n")
    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert not (cli_env / "idx.db").exists()
    fake_provider.assert_not_called()


# ---------------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------------


def test_sync_indexes_then_skips_unchanged(cli_env: Path, fake_provider) -> None:
    _project(cli_env)

    first = runner.invoke(app, ["sync", "--source", "proj", "--db", "idx.db", "--yes"])

    assert first.exit_code == 0, first.output
    assert "added" in first.output
    assert "Sync summary" in first.output
    assert _documents(cli_env / "idx.db") == ["a.py", "notes.md"]
    calls = fake_provider.call_count
    assert calls >= 2

    second = runner.invoke(app, ["sync", "--source", "proj", "--db", "idx.db", "--yes"])

    assert second.exit_code == 0, second.output
    assert "unchanged" in second.output
    assert fake_provider.call_count == calls


def test_sync_reports_changed_file(cli_env: Path, fake_provider) -> None:
    proj = _project(cli_env)
    runner.invoke(app, ["sync", "--source", "proj", "--db", "idx.db", "--yes"])
    (proj / "a.py").write_text("def beta():\n    return 2\n", encoding="utf-8")

    result = runner.invoke(app, ["sync", "--source", "proj", "--db", "idx.db", "--yes"])

    assert result.exit_code == 0
    assert "updated" in result.output


def test_sync_exclude_option(cli_env: Path, fake_provider) -> None:
    _project(cli_env)
    result = runner.invoke(
        app, ["sync", "--source", "proj", "--db", "idx.db", "--exclude", "*.md", "--yes"]
    )
    assert result.exit_code == 0
    assert _documents(cli_env / "idx.db") == ["a.py"]


def test_sync_exits_nonzero_when_files_fail(cli_env: Path, fake_provider) -> None:
    _project(cli_env)
    fake_provider.side_effect = _Rejected()

    result = runner.invoke(app, ["sync", "--source", "proj", "--db", "idx.db", "--yes"])

    assert result.exit_code == 1
    assert "error" in result.output
    assert _documents(cli_env / "idx.db") == []


def test_sync_missing_directory_is_an_error(cli_env: Path, fake_provider) -> None:
    result = runner.invoke(app, ["sync", "--source", "does-not-exist", "--db", "idx.db", "--yes"])
    assert result.exit_code == 1
