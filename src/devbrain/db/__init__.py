"""devbrain index store."""

from devbrain.db.connection import Database
from devbrain.db.migrations import MIGRATIONS, run_migrations
from devbrain.db.models import Chunk, ChunkMetadata, Document, SourceType
from devbrain.db.repository import Repository
from devbrain.db.schema import initialize
from devbrain.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "Database",
    "Document",
    "MIGRATIONS",
    "Repository",
    "SourceType",
    "ensure_vec_table",
    "initialize",
    "model_to_slug",
    "run_migrations",
    "vec_table_name",
]
