from devbrain.ingest.base import BaseChunker, ChunkCandidate
from devbrain.ingest.languages import detect_language
from devbrain.ingest.splitter import CodeSplitter, split
from devbrain.ingest.sync import FileOutcome, SyncController, SyncResult, SyncStatus

__all__ = [
    "BaseChunker",
    "ChunkCandidate",
    "CodeSplitter",
    "FileOutcome",
    "SyncController",
    "SyncResult",
    "SyncStatus",
    "detect_language",
    "split",
]
