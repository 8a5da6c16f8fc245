"""docqa configuration loader.

Priority (high → low):
  1. CLI flags              (handled at call site, not in this module)
  2. Environment variables  (DOCQA_EMBEDDING_MODEL, DOCQA_GENERATION_MODEL,
                             DOCQA_DB_PATH, DOCQA_BLOB_DIR, DOCQA_LOG_LEVEL)
  3. Per-project docqa.yaml
  4. Global ~/.docqa/config.yaml  (model defaults only, no API keys)
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

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".docqa"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "docqa.yaml"

# Matches api_key, api-key, api_secret, *_token, token, *_secret, secret,
# password, passwd, credential(s). Does NOT match max_tokens or top_k.
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
    ["embedding", "generation", "retrieval", "chunking", "ingestion", "storage", "logging"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (docqa.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    num_retries: int = 3


@dataclass
class GenerationCfg:
    """Completion model configuration (docqa.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 1024
    temperature: float = 0.0
    num_retries: int = 3


@dataclass
class RetrievalCfg:
    """Retrieval configuration (docqa.yaml: retrieval:).

    Attributes:
        top_k: Chunks retrieved per question.
        min_similarity: Drop matches with cosine similarity below this value.
        preview_chars: Length of the content preview in surfaced citations.
    """

    top_k: int = 4
    min_similarity: float | None = None
    preview_chars: int = 200


@dataclass
class ChunkingCfg:
    """Character window size and overlap (docqa.yaml: chunking:)."""

    chunk_size: int = 1000
    overlap: int = 200


@dataclass
class IngestionCfg:
    """Background ingestion limits (docqa.yaml: ingestion:)."""

    max_concurrent_documents: int = 4
    chunk_concurrency: int = 4


@dataclass
class StorageCfg:
    """Database and blob locations (docqa.yaml: storage:)."""

    db_path: str = ".docqa.db"
    blob_dir: str = "uploads"


@dataclass
class LoggingCfg:
    level: str = "INFO"
    json: bool = False


@dataclass
class DocQAConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    ingestion: IngestionCfg = field(default_factory=IngestionCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


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


def _validate(cfg: DocQAConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with."""
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.chunking.chunk_size < 1:
        raise ConfigError(f"chunking.chunk_size must be >= 1, got {cfg.chunking.chunk_size}")
    if cfg.chunking.overlap < 0:
        raise ConfigError(f"chunking.overlap must be >= 0, got {cfg.chunking.overlap}")
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")
    if cfg.retrieval.preview_chars < 1:
        raise ConfigError(
            f"retrieval.preview_chars must be >= 1, got {cfg.retrieval.preview_chars}"
        )
    if cfg.ingestion.max_concurrent_documents < 1 or cfg.ingestion.chunk_concurrency < 1:
        raise ConfigError("ingestion concurrency limits must be >= 1")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> DocQAConfig:
    """Build a *DocQAConfig* from a merged raw YAML dict."""
    cfg = DocQAConfig()

    try:
        if "embedding" in data:
            e = data["embedding"]
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
                num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
            )

        if "generation" in data:
            g = data["generation"]
            cfg.generation = GenerationCfg(
                model=str(g.get("model", cfg.generation.model)),
                max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
                temperature=float(g.get("temperature", cfg.generation.temperature)),
                num_retries=int(g.get("num_retries", cfg.generation.num_retries)),
            )

        if "retrieval" in data:
            r = data["retrieval"]
            min_sim = r.get("min_similarity", cfg.retrieval.min_similarity)
            cfg.retrieval = RetrievalCfg(
                top_k=int(r.get("top_k", cfg.retrieval.top_k)),
                min_similarity=float(min_sim) if min_sim is not None else None,
                preview_chars=int(r.get("preview_chars", cfg.retrieval.preview_chars)),
            )

        if "chunking" in data:
            c = data["chunking"]
            cfg.chunking = ChunkingCfg(
                chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
                overlap=int(c.get("overlap", cfg.chunking.overlap)),
            )

        if "ingestion" in data:
            i = data["ingestion"]
            cfg.ingestion = IngestionCfg(
                max_concurrent_documents=int(
                    i.get("max_concurrent_documents", cfg.ingestion.max_concurrent_documents)
                ),
                chunk_concurrency=int(
                    i.get("chunk_concurrency", cfg.ingestion.chunk_concurrency)
                ),
            )

        if "storage" in data:
            s = data["storage"]
            cfg.storage = StorageCfg(
                db_path=str(s.get("db_path", cfg.storage.db_path)),
                blob_dir=str(s.get("blob_dir", cfg.storage.blob_dir)),
            )

        if "logging" in data:
            lg = data["logging"]
            cfg.logging = LoggingCfg(
                level=str(lg.get("level", cfg.logging.level)),
                json=bool(lg.get("json", cfg.logging.json)),
            )
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: DocQAConfig) -> DocQAConfig:
    """Apply DOCQA_* environment variable overrides."""
    if model := os.environ.get("DOCQA_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("DOCQA_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("DOCQA_DB_PATH"):
        cfg.storage.db_path = db_path
    if blob_dir := os.environ.get("DOCQA_BLOB_DIR"):
        cfg.storage.blob_dir = blob_dir
    if level := os.environ.get("DOCQA_LOG_LEVEL"):
        cfg.logging.level = level
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> DocQAConfig:
    """Load and return a merged *DocQAConfig*.

    Applies layers in order: global → per-project → env vars.

    Args:
        project_dir: Directory to search for *docqa.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg
