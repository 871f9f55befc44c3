"""Base chunker interface shared by all splitters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from devbrain.db.models import ChunkMetadata


@dataclass(frozen=True)
class ChunkCandidate:
    """A fragment ready for embedding, not yet bound to a stored document.

    Attributes:
        content: Enriched text (header line + blank line + body). This exact
            string is embedded and indexed for lexical search.
        body: The raw fragment as cut from the source text.
        metadata: Provenance for the fragment.
    """

    content: str
    body: str
    metadata: ChunkMetadata


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Sizes are measured in characters. Subclasses implement ``split()`` and may
    use ``_split_fixed_window()`` for the fallback path.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        self.chunk_size = chunk_size
        self.overlap = overlap

    @abstractmethod
    def split(self, content: str, path: str, language: str) -> list[ChunkCandidate]:
        """Split *content* into ordered chunk candidates.

        Args:
            content: Full decoded text of the source file.
            path: File path, injected into each fragment's header.
            language: Language tag (see ``devbrain.ingest.languages``).

        Returns:
            Ordered list of ChunkCandidate objects. Identical inputs always
            produce identical output.
        """

    def _split_fixed_window(self, text: str) -> list[str]:
        """Split *text* into fixed-window segments with overlap.

        Window size = ``self.chunk_size`` characters, consecutive windows share
        ``self.overlap`` characters. Segments are stripped; empty segments are
        omitted.
        """
        if not text.strip():
            return []

        step = self.chunk_size - self.overlap
        segments: list[str] = []
        pos = 0
        length = len(text)

        while pos < length:
            end = min(pos + self.chunk_size, length)
            segment = text[pos:end].strip()
            if segment:
                segments.append(segment)
            if end >= length:
                break
            pos += step

        return segments
