"""LiteLLM embedding client with batching, bounded concurrency and backoff.

Every embedding call in the sync and search pipelines routes through this
module. Provider exceptions are classified once, at this boundary, into an
``EmbeddingError`` carrying an ``ErrorKind`` and a ``retryable`` flag; one
``RetryPolicy`` then applies the same exponential backoff to every retryable
failure. LiteLLM's own retry is disabled so attempts are counted in one place.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from numbers import Real

import litellm
import structlog

from devbrain.config import EmbeddingCfg
from devbrain.errors import EmbeddingError, ErrorKind

litellm.suppress_debug_info = True

log = structlog.get_logger()

# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
}


def provider_of(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EmbeddingError: kind UNAUTHORIZED if the key is missing.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider)
    if env_var is None:
        return
    if not os.getenv(env_var):
        raise EmbeddingError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable.",
            ErrorKind.UNAUTHORIZED,
        )


# ------------------------------------------------------------------
# Error classification
# ------------------------------------------------------------------


def classify_error(exc: Exception) -> EmbeddingError:
    """Map a provider exception onto the devbrain error taxonomy.

    Timeouts and connection failures are transient. Otherwise the HTTP status
    LiteLLM attaches to its exceptions decides: 429 rate limited, 401/403
    unauthorized, other 4xx bad input, 5xx transient server error. Anything
    unrecognised is a non-retryable server error.
    """
    message = f"{type(exc).__name__}: {exc}"
    if isinstance(exc, (litellm.Timeout, litellm.APIConnectionError, TimeoutError)):
        return EmbeddingError(message, ErrorKind.SERVER_ERROR)

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        if status == 429:
            return EmbeddingError(message, ErrorKind.RATE_LIMITED)
        if status in (401, 403):
            return EmbeddingError(message, ErrorKind.UNAUTHORIZED)
        if 400 <= status < 500:
            return EmbeddingError(message, ErrorKind.BAD_INPUT)
        if status >= 500:
            return EmbeddingError(message, ErrorKind.SERVER_ERROR)

    return EmbeddingError(message, ErrorKind.SERVER_ERROR, retryable=False)


# ------------------------------------------------------------------
# Retry policy
# ------------------------------------------------------------------


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff applied to retryable embedding failures.

    Attributes:
        max_attempts: Total tries per call, including the first one.
        base_delay: Seconds to wait after the first failure.
        max_delay: Cap on any single wait.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Backoff after failed attempt number *attempt* (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))


# ------------------------------------------------------------------
# Client
# ------------------------------------------------------------------


class EmbeddingClient:
    """Turn text into fixed-length vectors via ``litellm.embedding()``.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Expected vector length; responses of another length are
            rejected. ``None`` skips the check.
        timeout: Per-call timeout in seconds, passed to LiteLLM.
        retry: Backoff policy for retryable failures.
        batch_size: Default texts per batch for ``embed_many``.
        concurrency: Default parallel calls inside one batch.
        batch_delay: Default seconds between batches.
        sleep: Injected for tests; defaults to ``time.sleep``.
    """

    def __init__(
        self,
        model: str,
        *,
        dimensions: int | None = None,
        timeout: float = 30.0,
        retry: RetryPolicy | None = None,
        batch_size: int = 3,
        concurrency: int = 3,
        batch_delay: float = 0.3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.batch_delay = batch_delay
        self._sleep = sleep

    @classmethod
    def from_config(cls, cfg: EmbeddingCfg) -> EmbeddingClient:
        return cls(
            cfg.model,
            dimensions=cfg.dimensions,
            timeout=cfg.timeout,
            retry=RetryPolicy(
                max_attempts=cfg.max_attempts,
                base_delay=cfg.backoff_base,
                max_delay=cfg.backoff_max,
            ),
            batch_size=cfg.batch_size,
            concurrency=cfg.concurrency,
            batch_delay=cfg.batch_delay,
        )

    def embed(self, text: str) -> list[float]:
        """Embed one text, retrying retryable failures per the policy.

        Raises:
            EmbeddingError: On a fatal failure or once retries are exhausted
                (``retryable`` is False in both cases).
        """
        attempt = 1
        while True:
            try:
                return self._embed_once(text)
            except EmbeddingError as err:
                if not err.retryable:
                    raise
                if attempt >= self.retry.max_attempts:
                    raise err.exhausted(attempt) from err
                delay = self.retry.delay(attempt)
                log.warning(
                    "Embedding call failed, backing off",
                    kind=err.kind.value,
                    attempt=attempt,
                    delay=delay,
                )
                self._sleep(delay)
                attempt += 1

    def embed_many(
        self,
        texts: Sequence[str],
        batch_size: int | None = None,
        inter_batch_delay: float | None = None,
        *,
        concurrency: int | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> list[list[float]]:
        """Embed *texts* in sequential batches, preserving input order.

        Calls inside a batch run on at most *concurrency* threads; a pause of
        *inter_batch_delay* seconds separates batches. The first failure
        aborts the remaining batches.

        Args:
            texts: Texts to embed.
            batch_size: Texts per batch (defaults to the client setting).
            inter_batch_delay: Seconds between batches (defaults to the client setting).
            concurrency: Parallel calls per batch (defaults to the client setting).
            on_progress: Called with ``(done, total)`` after each batch.
        """
        size = batch_size or self.batch_size
        delay = self.batch_delay if inter_batch_delay is None else inter_batch_delay
        workers = concurrency or self.concurrency
        if size < 1 or workers < 1:
            raise ValueError("batch_size and concurrency must be >= 1")

        total = len(texts)
        vectors: list[list[float]] = []
        if total == 0:
            return vectors

        with ThreadPoolExecutor(max_workers=min(workers, size)) as pool:
            for start in range(0, total, size):
                batch = texts[start:start + size]
                vectors.extend(pool.map(self.embed, batch))
                if on_progress is not None:
                    on_progress(len(vectors), total)
                if start + size < total and delay > 0:
                    self._sleep(delay)

        log.debug("Embedded texts", model=self.model, count=total)
        return vectors

    # ------------------------------------------------------------------
    # Single provider call
    # ------------------------------------------------------------------

    def _embed_once(self, text: str) -> list[float]:
        try:
            response = litellm.embedding(
                model=self.model,
                input=[text],
                timeout=self.timeout,
                num_retries=0,
            )
        except Exception as exc:
            raise classify_error(exc) from exc
        return self._parse(response)

    def _parse(self, response: object) -> list[float]:
        try:
            vector = response.data[0]["embedding"]
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            raise EmbeddingError(
                f"Malformed embedding response from '{self.model}'", ErrorKind.BAD_INPUT
            ) from exc

        if not vector or not all(isinstance(v, Real) for v in vector):
            raise EmbeddingError(
                f"Empty or non-numeric embedding from '{self.model}'", ErrorKind.BAD_INPUT
            )
        if self.dimensions is not None and len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Embedding from '{self.model}' has {len(vector)} dimensions, "
                f"expected {self.dimensions}",
                ErrorKind.BAD_INPUT,
            )
        return [float(v) for v in vector]
