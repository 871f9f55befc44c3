"""Exception hierarchy shared by the ingest, store and search layers.

Embedding failures are a single tagged type: ``EmbeddingError.kind`` says what
happened and ``EmbeddingError.retryable`` is derived from it, so the retry
policy never has to dispatch on exception classes.
"""

from __future__ import annotations

from enum import Enum


class DevbrainError(Exception):
    """Base class for all devbrain errors."""


class ConfigError(DevbrainError, ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


class ErrorKind(str, Enum):
    """Failure categories reported by the embedding provider boundary."""

    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    BAD_INPUT = "bad_input"
    SERVER_ERROR = "server_error"


_RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR})


class EmbeddingError(DevbrainError):
    """An embedding call failed.

    Attributes:
        kind: What went wrong (see ``ErrorKind``).
        retryable: Whether the same call may succeed if repeated. Defaults to
            the kind's policy; set ``retryable=False`` to mark a retryable kind
            as exhausted.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.SERVER_ERROR,
        *,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.retryable = kind in _RETRYABLE_KINDS if retryable is None else retryable

    def exhausted(self, attempts: int) -> EmbeddingError:
        """Return a non-retryable copy used once the retry budget is spent."""
        return EmbeddingError(
            f"{self} (gave up after {attempts} attempts)", self.kind, retryable=False
        )


class StoreError(DevbrainError):
    """An index store operation failed (wraps sqlite3.Error)."""


class FetchError(DevbrainError):
    """A source could not be listed or a file could not be read."""


class SearchError(DevbrainError):
    """Both search legs failed, so no ranking can be produced."""
