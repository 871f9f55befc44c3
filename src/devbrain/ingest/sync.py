"""Incremental sync: index new files, re-index changed ones, skip the rest.

Per file and run::

    unseen                      -> chunk, embed, insert      -> ADDED
    seen, same hash and model   -> nothing                   -> SKIPPED
    seen, hash or model changed -> chunk, embed, replace     -> UPDATED
    any failure                 -> log, leave store as it was -> ERRORED

Chunking and embedding finish before the store is touched. The replacement
(delete old chunks, insert new chunks, write the new hash) then runs in one
transaction, so a failure anywhere leaves the previous generation in place
and the next run retries the file.
"""

from __future__ import annotations

import hashlib
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from devbrain.db.models import Chunk, Document, SourceType
from devbrain.db.repository import Repository
from devbrain.errors import DevbrainError, FetchError
from devbrain.ingest.base import BaseChunker
from devbrain.ingest.languages import detect_language
from devbrain.rag.embedding_client import EmbeddingClient
from devbrain.sources.base import SourceFetcher, SourceFile

log = structlog.get_logger()


class SyncStatus(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass(frozen=True)
class FileOutcome:
    """What happened to one file during a sync run."""

    source_url: str
    status: SyncStatus
    chunks: int = 0
    error: str | None = None


@dataclass
class SyncResult:
    added: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0

    @property
    def total(self) -> int:
        return self.added + self.updated + self.skipped + self.errored

    def record(self, status: SyncStatus) -> None:
        setattr(self, status.value, getattr(self, status.value) + 1)

    def merge(self, other: SyncResult) -> SyncResult:
        return SyncResult(
            added=self.added + other.added,
            updated=self.updated + other.updated,
            skipped=self.skipped + other.skipped,
            errored=self.errored + other.errored,
        )


def content_hash(content: str) -> str:
    """SHA-256 hex digest of *content* (UTF-8)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class SyncController:
    """Bring the index in line with a source, one file at a time.

    Args:
        repo: Open Repository.
        embedder: Client used for every fragment of a changed file.
        splitter: Chunker producing the fragments.
        vec_table: Vector table of *embedding_model* (see ensure_vec_table).
        embedding_model: Recorded on every document; a document indexed with
            another model is re-indexed even if its content is unchanged.
        on_file: Called with a FileOutcome after each file.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingClient,
        splitter: BaseChunker,
        vec_table: str,
        embedding_model: str,
        on_file: Callable[[FileOutcome], None] | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._splitter = splitter
        self._vec_table = vec_table
        self._embedding_model = embedding_model
        self._on_file = on_file

    def sync(self, fetcher: SourceFetcher) -> SyncResult:
        """Process every file *fetcher* lists. Never raises for per-file failures.

        A failure to list the source itself is counted as one errored entry.
        """
        result = SyncResult()
        log.info("Sync started", source=fetcher.name)
        try:
            for source_file in fetcher.list_files():
                outcome = self.process(source_file, fetcher.source_type)
                result.record(outcome.status)
        except (FetchError, OSError) as exc:
            log.error("Listing source failed", source=fetcher.name, error=str(exc))
            result.record(SyncStatus.ERRORED)
            self._notify(FileOutcome(fetcher.name, SyncStatus.ERRORED, error=str(exc)))

        log.info(
            "Sync finished",
            source=fetcher.name,
            added=result.added,
            updated=result.updated,
            skipped=result.skipped,
            errored=result.errored,
        )
        return result

    def process(
        self, source_file: SourceFile, source_type: SourceType = SourceType.LOCAL
    ) -> FileOutcome:
        """Index one file if it is new or changed."""
        url = source_file.source_url
        try:
            outcome = self._process(source_file, source_type)
        except (DevbrainError, OSError, ValueError) as exc:
            log.warning(
                "Indexing failed",
                source_url=url,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            outcome = FileOutcome(url, SyncStatus.ERRORED, error=str(exc))
        self._notify(outcome)
        return outcome

    def _process(self, source_file: SourceFile, source_type: SourceType) -> FileOutcome:
        url = source_file.source_url
        content = source_file.read()
        digest = content_hash(content)

        existing = self._repo.get_document_by_url(url)
        if (
            existing is not None
            and existing.content_hash == digest
            and existing.embedding_model == self._embedding_model
        ):
            log.debug("Unchanged", source_url=url)
            return FileOutcome(url, SyncStatus.SKIPPED)

        language = detect_language(source_file.path)
        candidates = self._splitter.split(content, source_file.path, language)
        if not candidates and existing is None:
            log.debug("No content to index", source_url=url)
            return FileOutcome(url, SyncStatus.SKIPPED)

        vectors = self._embedder.embed_many([c.content for c in candidates])

        document = Document(
            source_type=source_type.value,
            source_url=url,
            content_hash=digest,
            embedding_model=self._embedding_model,
            title=source_file.title,
        )

        with self._repo.transaction():
            if existing is not None:
                document_id = existing.id
                removed = self._repo.delete_chunks_by_document(document_id)
                self._repo.insert_chunks(
                    self._vec_table, self._to_chunks(document_id, candidates), vectors
                )
                self._repo.upsert_document(document)
            else:
                removed = 0
                document_id = self._repo.upsert_document(document)
                self._repo.insert_chunks(
                    self._vec_table, self._to_chunks(document_id, candidates), vectors
                )

        status = SyncStatus.UPDATED if existing is not None else SyncStatus.ADDED
        log.info(
            "Indexed",
            source_url=url,
            status=status.value,
            chunks=len(candidates),
            replaced=removed,
            remote_hash=source_file.remote_hash,
        )
        return FileOutcome(url, status, chunks=len(candidates))

    @staticmethod
    def _to_chunks(document_id: int, candidates) -> list[Chunk]:
        return [
            Chunk(
                id=str(uuid.uuid4()),
                document_id=document_id,
                chunk_index=i,
                content=c.content,
                metadata=c.metadata.to_json(),
            )
            for i, c in enumerate(candidates)
        ]

    def _notify(self, outcome: FileOutcome) -> None:
        if self._on_file is not None:
            self._on_file(outcome)
