"""Hybrid search: vector (sqlite-vec) + keyword (FTS5 BM25), fused via RRF.

Reciprocal Rank Fusion, per ranked list with 1-based rank r:
  score(d) = vector_weight / (k + r_vector) + keyword_weight / (k + r_keyword)
A chunk missing from a list gets nothing from it. k = 60 by default.

Both legs fetch ``top_k * 2`` candidates and run concurrently. A leg that
fails or exceeds the search timeout counts as empty, so a single healthy
leg still answers the query; only when both fail is SearchError raised.
"""

from __future__ import annotations

import json
import math
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass

import structlog

from devbrain.config import SearchCfg
from devbrain.db.models import Chunk, ChunkMetadata
from devbrain.db.repository import Repository
from devbrain.errors import SearchError
from devbrain.rag.embedding_client import EmbeddingClient

log = structlog.get_logger()

RRF_K = 60


@dataclass
class ScoredChunk:
    """A retrieved chunk together with its fused score and per-leg ranks.

    Attributes:
        chunk: The Chunk instance from the database.
        score: Weighted RRF score (higher = more relevant).
        vector_rank: 1-based rank in the vector leg (None if not retrieved).
        keyword_rank: 1-based rank in the keyword leg (None if not retrieved).
        vector_score: Cosine similarity reported by the vector leg.
        keyword_score: BM25 relevance reported by the keyword leg.
    """

    chunk: Chunk
    score: float
    vector_rank: int | None = None
    keyword_rank: int | None = None
    vector_score: float | None = None
    keyword_score: float | None = None


# ------------------------------------------------------------------
# RRF fusion
# ------------------------------------------------------------------


def _well_formed(chunk: Chunk) -> bool:
    if not chunk.id:
        return False
    try:
        data = json.loads(chunk.metadata)
        if not isinstance(data, dict):
            return False
        ChunkMetadata.from_dict(data)
    except (KeyError, TypeError, ValueError):
        return False
    return True


def _ranked(hits: Sequence[tuple[Chunk, float]], leg: str) -> list[tuple[Chunk, float]]:
    """Drop malformed and repeated rows; the survivors keep their order."""
    seen: set[str] = set()
    ranked: list[tuple[Chunk, float]] = []
    for chunk, raw_score in hits:
        if not _well_formed(chunk):
            log.warning("Dropping malformed search row", leg=leg, rowid=chunk.rowid)
            continue
        if chunk.id in seen:
            continue
        seen.add(chunk.id)
        ranked.append((chunk, raw_score))
    return ranked


def _sort_key(item: ScoredChunk) -> tuple[float, float, float, str]:
    return (
        -item.score,
        item.vector_rank if item.vector_rank is not None else math.inf,
        item.keyword_rank if item.keyword_rank is not None else math.inf,
        item.chunk.id,
    )


def rrf_fuse(
    vector_hits: Sequence[tuple[Chunk, float]],
    keyword_hits: Sequence[tuple[Chunk, float]],
    top_k: int,
    vector_weight: float = 0.7,
    keyword_weight: float = 0.3,
    k: int = RRF_K,
) -> list[ScoredChunk]:
    """Combine two best-first hit lists into one ranking.

    Chunks are matched across lists by chunk id. Equal scores are ordered by
    vector rank, then keyword rank, then chunk id; a chunk absent from a list
    sorts after every chunk present in it.
    """
    fused: dict[str, ScoredChunk] = {}

    for rank, (chunk, similarity) in enumerate(_ranked(vector_hits, "vector"), start=1):
        entry = fused.setdefault(chunk.id, ScoredChunk(chunk=chunk, score=0.0))
        entry.score += vector_weight / (k + rank)
        entry.vector_rank = rank
        entry.vector_score = similarity

    for rank, (chunk, relevance) in enumerate(_ranked(keyword_hits, "keyword"), start=1):
        entry = fused.setdefault(chunk.id, ScoredChunk(chunk=chunk, score=0.0))
        entry.score += keyword_weight / (k + rank)
        entry.keyword_rank = rank
        entry.keyword_score = relevance

    return sorted(fused.values(), key=_sort_key)[:top_k]


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------


class HybridSearchEngine:
    """Answer free-text queries against the index.

    Args:
        repo: Open Repository.
        embedder: Client for the query embedding; must use the same model the
            index was built with.
        vec_table: Vector table of that model.
        config: Defaults for top_k, weights, k and the leg timeout.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingClient,
        vec_table: str,
        config: SearchCfg | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._vec_table = vec_table
        self._config = config or SearchCfg()

    def search(
        self,
        query: str,
        top_k: int | None = None,
        vector_weight: float | None = None,
        keyword_weight: float | None = None,
        k: int | None = None,
    ) -> list[ScoredChunk]:
        """Return up to *top_k* chunks for *query*, best-first.

        Raises:
            ValueError: If top_k < 1, k < 1 or a weight is negative.
            EmbeddingError: If the query cannot be embedded.
            SearchError: If both legs fail.
        """
        cfg = self._config
        top_k = cfg.top_k if top_k is None else top_k
        vector_weight = cfg.vector_weight if vector_weight is None else vector_weight
        keyword_weight = cfg.keyword_weight if keyword_weight is None else keyword_weight
        k = cfg.rrf_k if k is None else k

        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        if vector_weight < 0 or keyword_weight < 0:
            raise ValueError("weights must be >= 0")

        if not query.strip():
            return []

        embedding = self._embedder.embed(query)
        vector_hits, keyword_hits = self._run_legs(query, embedding, top_k * 2)

        results = rrf_fuse(
            vector_hits,
            keyword_hits,
            top_k=top_k,
            vector_weight=vector_weight,
            keyword_weight=keyword_weight,
            k=k,
        )
        log.debug(
            "Search finished",
            vector_hits=len(vector_hits),
            keyword_hits=len(keyword_hits),
            results=len(results),
        )
        return results

    def _run_legs(
        self, query: str, embedding: list[float], limit: int
    ) -> tuple[list[tuple[Chunk, float]], list[tuple[Chunk, float]]]:
        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="devbrain-search")
        try:
            legs: dict[str, Future] = {
                "vector": pool.submit(
                    self._repo.vector_search, self._vec_table, embedding, limit
                ),
                "keyword": pool.submit(self._repo.lexical_search, query, limit),
            }
            done, _ = wait(legs.values(), timeout=self._config.timeout)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        hits: dict[str, list[tuple[Chunk, float]]] = {}
        errors: dict[str, str] = {}
        for name, future in legs.items():
            if future not in done:
                errors[name] = f"timed out after {self._config.timeout}s"
            elif future.exception() is not None:
                errors[name] = str(future.exception())
            else:
                hits[name] = future.result()
                continue
            log.warning("Search leg failed", leg=name, error=errors[name])
            hits[name] = []

        if len(errors) == len(legs):
            raise SearchError(
                "Both search legs failed: "
                + "; ".join(f"{name}: {msg}" for name, msg in errors.items())
            )
        return hits["vector"], hits["keyword"]
