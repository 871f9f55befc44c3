"""Local directory source: every supported file under a root directory."""

from __future__ import annotations

import fnmatch
from collections.abc import Iterator, Sequence
from pathlib import Path

import structlog

from devbrain.db.models import SourceType
from devbrain.errors import FetchError
from devbrain.ingest.languages import EXTENSIONS
from devbrain.sources.base import SourceFetcher, SourceFile

log = structlog.get_logger()

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(EXTENSIONS) | {".txt"}

_MAX_DEPTH = 10


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


class LocalDirectorySource(SourceFetcher):
    """Index a directory (or a single file) on the local filesystem.

    Files are yielded in sorted order. Entries whose name matches one of the
    *exclude* glob patterns are skipped, directories included. The document
    key is the file's resolved absolute path.

    Args:
        root: Directory or file to index.
        exclude: fnmatch patterns matched against entry names.
        recursive: Descend into subdirectories (at most 10 levels).
    """

    source_type = SourceType.LOCAL

    def __init__(
        self,
        root: str | Path,
        exclude: Sequence[str] = (),
        recursive: bool = True,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.exclude = list(exclude)
        self.recursive = recursive

    @property
    def name(self) -> str:
        return str(self.root)

    def list_files(self) -> Iterator[SourceFile]:
        if self.root.is_file():
            yield self._source_file(self.root, self.root.name)
            return
        if not self.root.is_dir():
            raise FetchError(f"Source path does not exist: {self.root}")

        for path in self._scan_dir(self.root, depth=0):
            yield self._source_file(path, path.relative_to(self.root).as_posix())

    def _source_file(self, path: Path, relative: str) -> SourceFile:
        return SourceFile(
            path=relative,
            source_url=path.as_posix(),
            loader=lambda: _read_text(path),
        )

    def _scan_dir(self, directory: Path, depth: int) -> list[Path]:
        """Return supported files in *directory* (optionally recursive)."""
        if depth > _MAX_DEPTH:
            return []
        files: list[Path] = []
        try:
            entries = sorted(directory.iterdir())
        except PermissionError:
            log.warning("Skipping unreadable directory", path=str(directory))
            return []
        for entry in entries:
            if any(fnmatch.fnmatch(entry.name, pat) for pat in self.exclude):
                continue
            if entry.is_file() and entry.suffix.lower() in SUPPORTED_EXTENSIONS:
                files.append(entry)
            elif entry.is_dir() and self.recursive and depth < _MAX_DEPTH:
                files.extend(self._scan_dir(entry, depth=depth + 1))
        return files
