"""Tests for the Repository pattern."""

from __future__ import annotations

import json

import pytest

from devbrain.db.connection import Database
from devbrain.db.models import Chunk, ChunkMetadata, Document, SourceType
from devbrain.db.repository import Repository, build_fts_query
from devbrain.db.vectors import ensure_vec_table
from devbrain.errors import StoreError

_MODEL = "test/embed"


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def vec_table(tmp_db):
    return ensure_vec_table(tmp_db, "test_embed", 3)


def _document(url="/repo/a.py", hash="abc123", model=_MODEL, title="a.py"):
    return Document(
        source_type=SourceType.LOCAL.value,
        source_url=url,
        content_hash=hash,
        embedding_model=model,
        title=title,
    )


def _chunk(document_id, index=0, content="hello world", file_path="a.py", function=None, id=None):
    meta = ChunkMetadata(
        file_path=file_path,
        language="python",
        start_line=1,
        end_line=2,
        function_name=function,
    )
    return Chunk(
        id=id or f"chunk-{document_id}-{index}",
        document_id=document_id,
        chunk_index=index,
        content=content,
        metadata=meta.to_json(),
    )


# ------------------------------------------------------------------
# Documents
# ------------------------------------------------------------------


def test_upsert_and_get_document(repo):
    doc_id = repo.upsert_document(_document())
    result = repo.get_document(doc_id)
    assert result is not None
    assert result.source_url == "/repo/a.py"
    assert result.embedding_model == _MODEL
    assert result.created_at is not None


def test_get_document_not_found(repo):
    assert repo.get_document(999) is None
    assert repo.get_document_by_url("/nope") is None


def test_upsert_same_url_updates_row(repo):
    first = repo.upsert_document(_document(hash="v1"))
    second = repo.upsert_document(_document(hash="v2", title="renamed"))
    assert first == second
    docs = repo.list_documents()
    assert len(docs) == 1
    assert docs[0].content_hash == "v2"
    assert docs[0].title == "renamed"


def test_list_documents(repo):
    repo.upsert_document(_document(url="/a.py"))
    repo.upsert_document(_document(url="/b.py"))
    assert {d.source_url for d in repo.list_documents()} == {"/a.py", "/b.py"}


def test_delete_document_removes_everything(repo, tmp_db, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(vec_table, [_chunk(doc_id, 0), _chunk(doc_id, 1)], [[1, 0, 0], [0, 1, 0]])

    removed = repo.delete_document(doc_id)

    assert removed == 2
    assert repo.get_document(doc_id) is None
    assert tmp_db.execute("SELECT COUNT(*) FROM chunks").fetchone()[0] == 0
    assert tmp_db.execute("SELECT COUNT(*) FROM chunks_fts").fetchone()[0] == 0
    assert tmp_db.execute(f"SELECT COUNT(*) FROM {vec_table}").fetchone()[0] == 0


# ------------------------------------------------------------------
# Chunks
# ------------------------------------------------------------------


def test_insert_chunks_sets_rowids(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    chunks = [_chunk(doc_id, 0), _chunk(doc_id, 1)]
    rowids = repo.insert_chunks(vec_table, chunks, [[1, 0, 0], [0, 1, 0]])
    assert rowids == [c.rowid for c in chunks]
    assert repo.get_chunk_by_rowid(rowids[0]).id == chunks[0].id


def test_insert_chunks_length_mismatch(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    with pytest.raises(ValueError, match="2 chunks but 1 embeddings"):
        repo.insert_chunks(vec_table, [_chunk(doc_id, 0), _chunk(doc_id, 1)], [[1, 0, 0]])


def test_insert_chunks_for_missing_document_is_store_error(repo, vec_table):
    with pytest.raises(StoreError):
        repo.insert_chunks(vec_table, [_chunk(12345)], [[1, 0, 0]])
    assert repo.get_stats() == {"documents": 0, "chunks": 0}


def test_list_and_count_chunks_by_document(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(
        vec_table, [_chunk(doc_id, 1), _chunk(doc_id, 0)], [[1, 0, 0], [0, 1, 0]]
    )
    assert [c.chunk_index for c in repo.list_chunks_by_document(doc_id)] == [0, 1]
    assert repo.count_chunks_by_document(doc_id) == 2


def test_delete_chunks_by_document_keeps_other_documents(repo, tmp_db, vec_table):
    a = repo.upsert_document(_document(url="/a.py"))
    b = repo.upsert_document(_document(url="/b.py"))
    repo.insert_chunks(vec_table, [_chunk(a, 0)], [[1, 0, 0]])
    repo.insert_chunks(vec_table, [_chunk(b, 0)], [[0, 1, 0]])

    assert repo.delete_chunks_by_document(a) == 1

    assert repo.count_chunks_by_document(a) == 0
    assert repo.count_chunks_by_document(b) == 1
    assert tmp_db.execute(f"SELECT COUNT(*) FROM {vec_table}").fetchone()[0] == 1
    assert repo.get_document(a) is not None


def test_chunk_metadata_roundtrip(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(vec_table, [_chunk(doc_id, 0, function="load")], [[1, 0, 0]])
    stored = repo.list_chunks_by_document(doc_id)[0]
    meta = json.loads(stored.metadata)
    assert meta["function_name"] == "load"
    assert "class_name" not in meta
    assert stored.identifiers == "a.py load"


def test_get_stats(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(vec_table, [_chunk(doc_id, 0)], [[1, 0, 0]])
    assert repo.get_stats() == {"documents": 1, "chunks": 1}


# ------------------------------------------------------------------
# Transactions
# ------------------------------------------------------------------


def test_transaction_rolls_back_on_error(repo):
    with pytest.raises(RuntimeError):
        with repo.transaction():
            repo.upsert_document(_document())
            raise RuntimeError("boom")
    assert repo.list_documents() == []


def test_transaction_wraps_sqlite_errors(repo):
    repo.upsert_document(_document())
    with pytest.raises(StoreError):
        with repo.transaction():
            repo.connection.execute("INSERT INTO nope VALUES (1)")


def test_nested_transaction_commits_once(repo):
    with repo.transaction():
        repo.upsert_document(_document(url="/a.py"))
        with repo.transaction():
            repo.upsert_document(_document(url="/b.py"))
    assert len(repo.list_documents()) == 2


# ------------------------------------------------------------------
# Search
# ------------------------------------------------------------------


def test_vector_search_orders_by_similarity(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(
        vec_table,
        [_chunk(doc_id, 0, id="far"), _chunk(doc_id, 1, id="near")],
        [[0, 1, 0], [1, 0.1, 0]],
    )
    results = repo.vector_search(vec_table, [1, 0, 0], limit=2)
    assert [c.id for c, _ in results] == ["near", "far"]
    assert results[0][1] > results[1][1]
    assert results[0][1] == pytest.approx(0.995, abs=1e-3)


def test_vector_search_respects_limit(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(
        vec_table,
        [_chunk(doc_id, i) for i in range(3)],
        [[1, 0, 0], [0, 1, 0], [0, 0, 1]],
    )
    assert len(repo.vector_search(vec_table, [1, 0, 0], limit=2)) == 2
    assert repo.vector_search(vec_table, [1, 0, 0], limit=0) == []


def test_lexical_search_ranks_matching_chunks(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(
        vec_table,
        [
            _chunk(doc_id, 0, content="parse the config file"),
            _chunk(doc_id, 1, content="unrelated text about cats"),
        ],
        [[1, 0, 0], [0, 1, 0]],
    )
    results = repo.lexical_search("config", limit=5)
    assert [c.chunk_index for c, _ in results] == [0]
    assert results[0][1] > 0


def test_lexical_search_matches_identifiers(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(
        vec_table,
        [_chunk(doc_id, 0, content="return 1", function="compute_totals")],
        [[1, 0, 0]],
    )
    assert len(repo.lexical_search("compute_totals", limit=5)) == 1


def test_lexical_search_tolerates_operators_and_punctuation(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(vec_table, [_chunk(doc_id, 0, content="NOT a problem AND a fix")], [[1, 0, 0]])
    assert len(repo.lexical_search('NOT "problem" (AND)', limit=5)) == 1


def test_lexical_search_empty_query(repo):
    assert repo.lexical_search("   ", limit=5) == []
    assert repo.lexical_search("?!", limit=5) == []


def test_build_fts_query():
    assert build_fts_query("load config!") == '"load" "config"'
    assert build_fts_query("...") == ""


def test_lexical_search_requires_every_query_word(repo, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(
        vec_table,
        [
            _chunk(doc_id, 0, content="retry backoff policy", id="both"),
            _chunk(doc_id, 1, content="the retry loop", id="one"),
        ],
        [[1, 0, 0], [0, 1, 0]],
    )
    assert [c.id for c, _ in repo.lexical_search("retry backoff", limit=10)] == ["both"]
    assert {c.id for c, _ in repo.lexical_search("retry", limit=10)} == {"both", "one"}


# ------------------------------------------------------------------
# Readers on a second connection
# ------------------------------------------------------------------


def test_replace_is_invisible_to_other_connections_until_commit(repo, tmp_db, tmp_path, vec_table):
    doc_id = repo.upsert_document(_document())
    repo.insert_chunks(
        vec_table,
        [_chunk(doc_id, i, id=f"old{i}") for i in range(3)],
        [[1, 0, 0], [1, 0.1, 0], [1, 0.2, 0]],
    )
    reader_conn = Database(tmp_path / ".devbrain.db").connect()
    reader = Repository(reader_conn)

    def _visible() -> tuple[set[str], set[str]]:
        listed = {c.id for c in reader.list_chunks_by_document(doc_id)}
        nearest = {c.id for c, _ in reader.vector_search(vec_table, [1, 0, 0], limit=10)}
        return listed, nearest

    old = {"old0", "old1", "old2"}
    try:
        assert _visible() == (old, old)
        with repo.transaction():
            repo.delete_chunks_by_document(doc_id)
            assert _visible() == (old, old)
            repo.insert_chunks(
                vec_table,
                [_chunk(doc_id, i, id=f"new{i}") for i in range(2)],
                [[1, 0, 0], [0, 1, 0]],
            )
            repo.upsert_document(_document(hash="v2"))
            assert _visible() == (old, old)
            assert reader.get_document(doc_id).content_hash == "abc123"

        new = {"new0", "new1"}
        assert _visible() == (new, new)
        assert reader.get_document(doc_id).content_hash == "v2"
    finally:
        reader_conn.close()
