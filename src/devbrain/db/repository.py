"""Repository pattern for all devbrain index store operations.

Single interface for: documents, chunks, FTS5 search, vec embeddings.
Vec tables are model-managed (ensure_vec_table); repository handles read + write.

Writes are grouped with ``transaction()``: everything inside commits together
or rolls back together, which is how a document's chunk set is replaced
without readers ever seeing two generations at once.
"""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from devbrain.db.models import Chunk, Document
from devbrain.db.vectors import list_vec_tables
from devbrain.errors import StoreError

# Weights for bm25(): identifiers column ranks above body text.
_BM25_WEIGHTS = (2.0, 1.0)

_DOCUMENT_COLUMNS = (
    "id, source_type, source_url, title, content_hash, embedding_model, created_at, updated_at"
)
_CHUNK_COLUMNS = (
    "c.rowid AS rowid, c.id AS id, c.document_id AS document_id, "
    "c.chunk_index AS chunk_index, c.content AS content, c.metadata AS metadata, "
    "c.created_at AS created_at"
)


class Repository:
    """Data access layer for all devbrain index entities.

    Wraps an open sqlite3.Connection and provides typed methods for documents,
    chunks, FTS5 search and vec embeddings. The connection is owned by the
    caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see devbrain.db.schema.initialize).
        """
        self._conn = conn
        self._in_transaction = False

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit everything written inside the block at once, or nothing.

        Nested calls join the outer transaction. sqlite3 errors are rolled
        back and re-raised as StoreError.
        """
        if self._in_transaction:
            yield
            return

        self._in_transaction = True
        try:
            yield
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise StoreError(str(exc)) from exc
        except BaseException:
            self._conn.rollback()
            raise
        else:
            try:
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreError(str(exc)) from exc
        finally:
            self._in_transaction = False

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        try:
            return self._conn.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def upsert_document(self, document: Document) -> int:
        """Insert *document*, or update the row with the same source_url.

        Re-ingesting a URL never creates a second row: title, hash and model
        are overwritten and updated_at is reset.

        Returns:
            The document id.
        """
        with self.transaction():
            row = self._conn.execute(
                """
                INSERT INTO documents (source_type, source_url, title, content_hash, embedding_model)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(source_url) DO UPDATE SET
                    source_type = excluded.source_type,
                    title = excluded.title,
                    content_hash = excluded.content_hash,
                    embedding_model = excluded.embedding_model,
                    updated_at = datetime('now')
                RETURNING id
                """,
                (
                    document.source_type,
                    document.source_url,
                    document.title,
                    document.content_hash,
                    document.embedding_model,
                ),
            ).fetchone()
        return row["id"]

    def get_document(self, document_id: int) -> Document | None:
        """Return a document by id, or None if not found."""
        row = self._fetchone(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (document_id,)
        )
        return _row_to_document(row) if row else None

    def get_document_by_url(self, source_url: str) -> Document | None:
        """Return a document by its source URL, or None if not found.

        Args:
            source_url: The unique natural key of the document.
        """
        row = self._fetchone(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE source_url = ?", (source_url,)
        )
        return _row_to_document(row) if row else None

    def list_documents(self) -> list[Document]:
        """Return all documents ordered by last update (oldest first)."""
        rows = self._fetchall(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY updated_at, id"
        )
        return [_row_to_document(r) for r in rows]

    def delete_document(self, document_id: int) -> int:
        """Delete a document with its chunks, FTS entries and embeddings.

        Returns:
            Number of chunks removed.
        """
        with self.transaction():
            removed = self.delete_chunks_by_document(document_id)
            self._conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return removed

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def insert_chunks(
        self,
        vec_table: str,
        chunks: Sequence[Chunk],
        embeddings: Sequence[Sequence[float]],
    ) -> list[int]:
        """Insert chunks with their FTS entries and embeddings.

        ``chunks[i]`` is stored with ``embeddings[i]``; all rows share the
        chunk's rowid. Sets ``chunk.rowid`` on each chunk.

        Returns:
            The new rowids, in input order.
        """
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"{len(chunks)} chunks but {len(embeddings)} embeddings"
            )

        rowids: list[int] = []
        with self.transaction():
            for chunk, embedding in zip(chunks, embeddings):
                cur = self._conn.execute(
                    """
                    INSERT INTO chunks (id, document_id, chunk_index, content, metadata)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        chunk.id,
                        chunk.document_id,
                        chunk.chunk_index,
                        chunk.content,
                        chunk.metadata,
                    ),
                )
                rowid = cur.lastrowid
                self._conn.execute(
                    "INSERT INTO chunks_fts(rowid, identifiers, content) VALUES (?, ?, ?)",
                    (rowid, chunk.identifiers, chunk.content),
                )
                self._conn.execute(
                    f"INSERT INTO {vec_table}(rowid, embedding) VALUES (?, ?)",
                    (rowid, json.dumps(list(embedding))),
                )
                chunk.rowid = rowid
                rowids.append(rowid)
        return rowids

    def delete_chunks_by_document(self, document_id: int) -> int:
        """Delete chunks + FTS entries + embeddings for a document.

        FTS5 and vec0 tables cannot take part in the foreign-key cascade, so
        their rows are removed explicitly by rowid.

        Returns:
            Number of chunks removed.
        """
        with self.transaction():
            rowids = [
                r[0]
                for r in self._conn.execute(
                    "SELECT rowid FROM chunks WHERE document_id = ?", (document_id,)
                ).fetchall()
            ]
            if rowids:
                placeholders = ",".join("?" * len(rowids))
                self._conn.execute(
                    f"DELETE FROM chunks_fts WHERE rowid IN ({placeholders})", rowids
                )
                for table in list_vec_tables(self._conn):
                    self._conn.execute(
                        f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                        rowids,
                    )
            self._conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
        return len(rowids)

    def get_chunk_by_rowid(self, rowid: int) -> Chunk | None:
        """Return a chunk by its SQLite rowid, or None if not found."""
        row = self._fetchone(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.rowid = ?", (rowid,)
        )
        return _row_to_chunk(row) if row else None

    def list_chunks_by_document(self, document_id: int) -> list[Chunk]:
        """Return a document's chunks in chunk_index order."""
        rows = self._fetchall(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.document_id = ? "
            "ORDER BY c.chunk_index",
            (document_id,),
        )
        return [_row_to_chunk(r) for r in rows]

    def count_chunks_by_document(self, document_id: int) -> int:
        """Return the number of chunks belonging to *document_id*."""
        return self._fetchone(
            "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
        )[0]

    def get_stats(self) -> dict[str, int]:
        """Return total document and chunk counts."""
        documents = self._fetchone("SELECT COUNT(*) FROM documents")[0]
        chunks = self._fetchone("SELECT COUNT(*) FROM chunks")[0]
        return {"documents": documents, "chunks": chunks}

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def vector_search(
        self, table: str, embedding: Sequence[float], limit: int = 10
    ) -> list[tuple[Chunk, float]]:
        """Nearest-neighbour search. Returns (chunk, cosine similarity), nearest first.

        Vec rows whose chunk no longer exists are dropped by the join.
        """
        if limit < 1:
            return []
        rows = self._fetchall(
            f"""
            WITH knn AS (
                SELECT rowid, distance FROM {table}
                WHERE embedding MATCH ? AND k = ?
            )
            SELECT {_CHUNK_COLUMNS}, knn.distance AS distance
            FROM knn JOIN chunks c ON c.rowid = knn.rowid
            ORDER BY knn.distance, c.rowid
            """,
            (json.dumps(list(embedding)), limit),
        )
        return [(_row_to_chunk(r), 1.0 - r["distance"]) for r in rows]

    # ------------------------------------------------------------------
    # FTS5 / BM25 search
    # ------------------------------------------------------------------

    def lexical_search(self, query: str, limit: int = 10) -> list[tuple[Chunk, float]]:
        """BM25 full-text search. Returns (chunk, relevance) sorted best-first.

        bm25() returns negative values where lower is better; the sign is
        flipped so that a higher relevance means a better match.
        """
        fts_query = build_fts_query(query)
        if not fts_query or limit < 1:
            return []
        w_ident, w_content = _BM25_WEIGHTS
        rows = self._fetchall(
            f"""
            SELECT {_CHUNK_COLUMNS}, bm25(chunks_fts, {w_ident}, {w_content}) AS score
            FROM chunks_fts JOIN chunks c ON c.rowid = chunks_fts.rowid
            WHERE chunks_fts MATCH ?
            ORDER BY score, c.rowid
            LIMIT ?
            """,
            (fts_query, limit),
        )
        return [(_row_to_chunk(r), -r["score"]) for r in rows]


def build_fts_query(text: str) -> str:
    """Turn free text into an FTS5 MATCH expression.

    FTS5 rejects punctuation and treats AND/OR/NOT/NEAR as operators, so each
    word is quoted. Quoted terms separated by spaces are implicitly AND-ed, so
    a chunk must contain every word of the query.
    Returns an empty string when *text* has no word characters.
    """
    terms = re.findall(r"\w+", text)
    return " ".join(f'"{t}"' for t in terms)


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        source_type=row["source_type"],
        source_url=row["source_url"],
        title=row["title"],
        content_hash=row["content_hash"],
        embedding_model=row["embedding_model"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["rowid"],
        id=row["id"],
        document_id=row["document_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        metadata=row["metadata"],
        created_at=row["created_at"],
    )
