"""
Configuration models for chunking and hybrid search.

Settings are immutable objects passed explicitly to each call. A JSON file
(``config.json`` by default) can override the defaults; both snake_case and
camelCase keys are accepted.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_CONFIG_PATH = "./config.json"
ENV_CONFIG_PATH = "DOC_RETRIEVER_CONFIG"
DEFAULT_DB_PATH = "~/.doc_retriever/index.duckdb"
ENV_DB_PATH = "DOC_RETRIEVER_DB_PATH"

_EMBEDDING_ENV: dict[str, str] = {
    "model": "DOC_RETRIEVER_EMBEDDING_MODEL",
    "dim": "DOC_RETRIEVER_EMBEDDING_DIM",
    "batch_size": "DOC_RETRIEVER_EMBEDDING_BATCH_SIZE",
}


class ConfigError(ValueError):
    """Raised when a configuration file cannot be loaded or validated."""


class ChunkerConfig(BaseModel):
    """Thresholds for Max-Min semantic chunking."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    hard_threshold: float = Field(
        default=0.6,
        alias="hardThreshold",
        description="Absolute similarity floor for joining a chunk",
    )
    init_const: float = Field(
        default=1.5,
        gt=0,
        alias="initConst",
        description="Multiplier applied to the first-pair similarity",
    )
    c: float = Field(default=0.9, gt=0, description="Dynamic threshold scale")
    min_chunk_length: int = Field(
        default=50,
        ge=0,
        alias="minChunkLength",
        description="Chunks shorter than this many characters are dropped",
    )


class HybridSearchConfig(BaseModel):
    """Keyword boost settings applied on top of dense search."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    weight: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Keyword boost factor; 0 disables the boost",
    )
    candidate_multiplier: int = Field(
        default=2,
        ge=1,
        alias="candidateMultiplier",
        description="Dense candidates fetched per requested result",
    )
    keyword_enabled: bool = Field(
        default=True,
        alias="keywordEnabled",
        description="Run keyword search to re-rank dense candidates",
    )


class EmbeddingConfig(BaseModel):
    """Embedding model settings, overridable through the environment."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(default="gemini-embedding-001", min_length=1)
    dim: int = Field(default=768, gt=0, description="Output dimensionality")
    batch_size: int = Field(default=50, gt=0, description="Texts per API call")

    @classmethod
    def from_env(cls) -> EmbeddingConfig:
        overrides = {
            field: os.environ[variable]
            for field, variable in _EMBEDDING_ENV.items()
            if os.environ.get(variable)
        }
        return cls.model_validate(overrides)


class AppConfig(BaseModel):
    """Top-level application configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    docs_folder: str | None = Field(default=None, alias="docsFolder")
    chunker: ChunkerConfig = Field(default_factory=ChunkerConfig)
    hybrid_search: HybridSearchConfig = Field(
        default_factory=HybridSearchConfig, alias="hybridSearch"
    )


def resolve_config_path(override_path: str | None = None) -> Path:
    raw_path = override_path or os.getenv(ENV_CONFIG_PATH) or DEFAULT_CONFIG_PATH
    return Path(raw_path).expanduser()


def resolve_db_path(override_path: str | None = None) -> str:
    """Index location: explicit path, then ``$DOC_RETRIEVER_DB_PATH``, then the default."""
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def load_config(config_path: str | None = None) -> AppConfig:
    """
    Load configuration from a JSON file.

    A missing file at the default location yields the defaults; a missing
    file that was asked for explicitly is an error.
    """
    path = resolve_config_path(config_path)
    if not path.exists():
        if config_path is not None:
            raise ConfigError(f"Config file not found at {path}")
        return AppConfig()

    try:
        raw: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    try:
        config = AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {path}: {exc}") from exc

    if config.docs_folder is not None:
        resolved = (path.parent / Path(config.docs_folder).expanduser()).resolve()
        config = config.model_copy(update={"docs_folder": str(resolved)})
    return config
