"""Source fetcher interface: enumerate files, load content lazily."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from devbrain.db.models import SourceType
from devbrain.errors import FetchError


@dataclass
class SourceFile:
    """One file exposed by a source.

    Attributes:
        path: Path relative to the source root (used for language detection
            and in chunk headers).
        source_url: Unique natural key of the resulting document.
        remote_hash: Version id reported by the source (e.g. git blob sha),
            informational only.
        loader: Returns the decoded file content; called at most once.
    """

    path: str
    source_url: str
    remote_hash: str | None = None
    loader: Callable[[], str] | None = field(default=None, repr=False)
    content: str | None = field(default=None, repr=False)

    @property
    def title(self) -> str:
        return PurePosixPath(self.path).name or self.path

    def read(self) -> str:
        """Return the file content, loading it on first access.

        Raises:
            FetchError: If the file cannot be read or decoded.
        """
        if self.content is None:
            if self.loader is None:
                raise FetchError(f"No content available for {self.source_url}")
            try:
                self.content = self.loader()
            except (OSError, UnicodeDecodeError) as exc:
                raise FetchError(f"Cannot read {self.source_url}: {exc}") from exc
        return self.content


class SourceFetcher(ABC):
    """Abstract base for all sources the sync controller can index."""

    source_type: SourceType = SourceType.LOCAL

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable source identifier for logs and CLI output."""

    @abstractmethod
    def list_files(self) -> Iterator[SourceFile]:
        """Yield every indexable file in the source.

        Raises:
            FetchError: If the source itself cannot be listed.
        """
