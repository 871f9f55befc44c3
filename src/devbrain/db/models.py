"""Domain models for the devbrain index store."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum


class SourceType(str, Enum):
    REPOSITORY = "repository"
    WIKI = "wiki"
    LOCAL = "local"


@dataclass
class Document:
    source_type: str
    source_url: str
    content_hash: str
    embedding_model: str
    title: str | None = None
    id: int | None = None  # set by the store; None for unsaved documents
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class ChunkMetadata:
    """Provenance attached to every chunk (stored as JSON)."""

    file_path: str
    language: str
    start_line: int
    end_line: int
    function_name: str | None = None
    class_name: str | None = None

    def to_json(self) -> str:
        return json.dumps(
            {k: v for k, v in asdict(self).items() if v is not None}, sort_keys=True
        )

    @classmethod
    def from_dict(cls, data: dict) -> ChunkMetadata:
        return cls(
            file_path=str(data["file_path"]),
            language=str(data["language"]),
            start_line=int(data["start_line"]),
            end_line=int(data["end_line"]),
            function_name=data.get("function_name"),
            class_name=data.get("class_name"),
        )


@dataclass
class Chunk:
    id: str
    document_id: int
    chunk_index: int
    content: str
    metadata: str = field(default_factory=lambda: "{}")
    created_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved chunks

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)

    @property
    def identifiers(self) -> str:
        """File path and symbol names, indexed separately for lexical search."""
        meta = self.metadata_dict
        parts = [meta.get("file_path"), meta.get("function_name"), meta.get("class_name")]
        return " ".join(p for p in parts if p)
