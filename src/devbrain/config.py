"""devbrain configuration loader.

Priority (high → low):
  1. CLI flags           (handled at the call site, not in this module)
  2. Environment variables  (DEVBRAIN_EMBEDDING_MODEL, DEVBRAIN_DB)
  3. Per-project devbrain.yaml  (current directory)
  4. Global ~/.devbrain/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from devbrain.errors import ConfigError

__all__ = [
    "ChunkerCfg",
    "ConfigError",
    "DatabaseCfg",
    "DevbrainConfig",
    "EmbeddingCfg",
    "SearchCfg",
    "SourcesCfg",
    "load_config",
]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".devbrain"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "devbrain.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate keys like max_attempts, rrf_k or batch_size.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["database", "embedding", "chunker", "search", "sources"]
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """Index database location (devbrain.yaml: database:)."""

    path: str = ".devbrain.db"


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (devbrain.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Vector length produced by *model*.
        batch_size: Texts per batch; batches run one after another.
        concurrency: Parallel embedding calls inside one batch.
        batch_delay: Seconds to wait between batches (provider rate limits).
        timeout: Per-call timeout in seconds.
        max_attempts: Total tries for a retryable failure.
        backoff_base: First backoff delay in seconds (doubles per attempt).
        backoff_max: Upper bound for a single backoff delay.
    """

    model: str = "gemini/text-embedding-004"
    dimensions: int = 768
    batch_size: int = 3
    concurrency: int = 3
    batch_delay: float = 0.3
    timeout: float = 30.0
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0


@dataclass
class ChunkerCfg:
    """Splitter bounds in characters (devbrain.yaml: chunker:)."""

    chunk_size: int = 1000
    overlap: int = 200


@dataclass
class SearchCfg:
    """Hybrid search configuration (devbrain.yaml: search:)."""

    top_k: int = 5
    vector_weight: float = 0.7
    keyword_weight: float = 0.3
    rrf_k: int = 60
    timeout: float = 10.0


@dataclass
class SourcesCfg:
    """Source scanning options (devbrain.yaml: sources:)."""

    exclude: list[str] = field(
        default_factory=lambda: ["node_modules", ".git", "dist", "build", "__pycache__"]
    )


@dataclass
class DevbrainConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunker: ChunkerCfg = field(default_factory=ChunkerCfg)
    search: SearchCfg = field(default_factory=SearchCfg)
    sources: SourcesCfg = field(default_factory=SourcesCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: DevbrainConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with."""
    if cfg.chunker.chunk_size < 1:
        raise ConfigError(f"chunker.chunk_size must be >= 1, got {cfg.chunker.chunk_size}")
    if not 0 <= cfg.chunker.overlap < cfg.chunker.chunk_size:
        raise ConfigError(
            f"chunker.overlap must be in [0, chunk_size), got {cfg.chunker.overlap}"
        )
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.embedding.batch_size < 1 or cfg.embedding.concurrency < 1:
        raise ConfigError("embedding.batch_size and embedding.concurrency must be >= 1")
    if cfg.embedding.max_attempts < 1:
        raise ConfigError(f"embedding.max_attempts must be >= 1, got {cfg.embedding.max_attempts}")
    if cfg.search.top_k < 1:
        raise ConfigError(f"search.top_k must be >= 1, got {cfg.search.top_k}")
    if cfg.search.vector_weight < 0 or cfg.search.keyword_weight < 0:
        raise ConfigError("search weights must be >= 0")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _read_yaml(path: Path) -> dict[str, Any]:
    """Parse *path* with yaml.safe_load(); the document must be a mapping."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse '{path}': {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"'{path}' must contain a mapping, got {type(data).__name__}")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    """Return config section *name*; an empty section means defaults."""
    value = data[name] or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> DevbrainConfig:
    """Build a *DevbrainConfig* from a merged raw YAML dict."""
    cfg = DevbrainConfig()

    if "database" in data:
        d = _section(data, "database")
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    if "embedding" in data:
        e = _section(data, "embedding")
        base = cfg.embedding
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", base.model)),
            dimensions=int(e.get("dimensions", base.dimensions)),
            batch_size=int(e.get("batch_size", base.batch_size)),
            concurrency=int(e.get("concurrency", base.concurrency)),
            batch_delay=float(e.get("batch_delay", base.batch_delay)),
            timeout=float(e.get("timeout", base.timeout)),
            max_attempts=int(e.get("max_attempts", base.max_attempts)),
            backoff_base=float(e.get("backoff_base", base.backoff_base)),
            backoff_max=float(e.get("backoff_max", base.backoff_max)),
        )

    if "chunker" in data:
        c = _section(data, "chunker")
        cfg.chunker = ChunkerCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunker.chunk_size)),
            overlap=int(c.get("overlap", cfg.chunker.overlap)),
        )

    if "search" in data:
        s = _section(data, "search")
        base_s = cfg.search
        cfg.search = SearchCfg(
            top_k=int(s.get("top_k", base_s.top_k)),
            vector_weight=float(s.get("vector_weight", base_s.vector_weight)),
            keyword_weight=float(s.get("keyword_weight", base_s.keyword_weight)),
            rrf_k=int(s.get("rrf_k", base_s.rrf_k)),
            timeout=float(s.get("timeout", base_s.timeout)),
        )

    if "sources" in data:
        src = _section(data, "sources")
        cfg.sources = SourcesCfg(
            exclude=[str(p) for p in src.get("exclude", cfg.sources.exclude)]
        )

    return cfg


def _apply_env_overrides(cfg: DevbrainConfig) -> DevbrainConfig:
    """Apply DEVBRAIN_* environment variable overrides."""
    if model := os.environ.get("DEVBRAIN_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db := os.environ.get("DEVBRAIN_DB"):
        cfg.database.path = db
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> DevbrainConfig:
    """Load and return a merged *DevbrainConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *devbrain.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *DevbrainConfig* with env var overrides applied.

    Raises:
        ConfigError: If a file is not valid YAML or not a mapping, global
            config contains API-key-like fields, or a value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg
