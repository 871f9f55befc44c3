"""Language-aware recursive splitter with fixed-window fallback.

Strategy:
- Text that fits in ``chunk_size`` characters is one fragment.
- Otherwise split on the strongest separator present for the language and
  greedily pack consecutive pieces into fragments of at most ``chunk_size``.
  Each new fragment starts with the last ``overlap`` characters of the
  previous one.
- Fragments still over ``chunk_size`` are split again with the next-weaker
  separators; when none applies, fixed windows are cut instead.
- Every fragment gets a one-line header naming the file and the first
  function / class found in it, so both vector and lexical search see them.
"""

from __future__ import annotations

from devbrain.db.models import ChunkMetadata
from devbrain.ingest.base import BaseChunker, ChunkCandidate
from devbrain.ingest.languages import extract_identifiers, separators_for


class CodeSplitter(BaseChunker):
    """Split source code and prose on language-specific boundaries.

    Default: 1000 characters / 200 characters overlap.
    """

    def split(self, content: str, path: str, language: str) -> list[ChunkCandidate]:
        if not content.strip():
            return []

        fragments = self._recursive_split(content, separators_for(language))

        candidates: list[ChunkCandidate] = []
        search_from = 0
        for body in fragments:
            pos = content.find(body, search_from)
            if pos < 0:
                pos = max(0, content.find(body))
            search_from = pos + 1

            start_line = content.count("\n", 0, pos) + 1
            end_line = start_line + body.count("\n")
            function_name, class_name = extract_identifiers(body, language)
            metadata = ChunkMetadata(
                file_path=path,
                language=language,
                start_line=start_line,
                end_line=end_line,
                function_name=function_name,
                class_name=class_name,
            )
            candidates.append(
                ChunkCandidate(
                    content=f"{build_header(metadata)}\n\n{body}",
                    body=body,
                    metadata=metadata,
                )
            )
        return candidates

    # ------------------------------------------------------------------
    # Recursive partitioning
    # ------------------------------------------------------------------

    def _recursive_split(self, text: str, separators: tuple[str, ...]) -> list[str]:
        if len(text) <= self.chunk_size:
            stripped = text.strip()
            return [stripped] if stripped else []

        for i, sep in enumerate(separators):
            if sep not in text:
                continue
            fragments: list[str] = []
            for fragment in self._merge(text.split(sep), sep):
                if len(fragment) > self.chunk_size:
                    fragments.extend(self._recursive_split(fragment, separators[i + 1:]))
                else:
                    fragments.append(fragment)
            return fragments

        return self._split_fixed_window(text)

    def _merge(self, pieces: list[str], sep: str) -> list[str]:
        """Pack *pieces* (re-joined with *sep*) into fragments with overlap."""
        fragments: list[str] = []
        current = ""

        for i, piece in enumerate(pieces):
            part = sep + piece if i else piece
            if len(current) + len(part) <= self.chunk_size:
                current += part
                continue
            if current.strip():
                fragments.append(current.strip())
            tail = current[max(0, len(current) - self.overlap):] if self.overlap else ""
            current = tail + part

        if current.strip():
            fragments.append(current.strip())
        return fragments


def build_header(metadata: ChunkMetadata) -> str:
    """Return the single header line prepended to a fragment body."""
    header = f"File: {metadata.file_path}"
    if metadata.function_name:
        header += f" | Function: {metadata.function_name}"
    if metadata.class_name:
        header += f" | Class: {metadata.class_name}"
    return header


def split(
    content: str,
    path: str,
    language: str,
    chunk_size: int = 1000,
    overlap: int = 200,
) -> list[ChunkCandidate]:
    """Functional form of ``CodeSplitter(chunk_size, overlap).split(...)``."""
    return CodeSplitter(chunk_size=chunk_size, overlap=overlap).split(content, path, language)
