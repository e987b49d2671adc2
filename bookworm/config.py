"""
Runtime configuration for bookworm.

Settings come from an optional YAML file (config/config.yaml) and are then
overridden by environment variables.  API credentials are only ever read from
the environment (a local .env file is honoured via python-dotenv) so nothing
secret ends up inside the repository or a built artifact.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = "config/config.yaml"


class ArchiveSettings(BaseModel):
    base_url: str = "https://api.aetolia.com"
    timeout: float = Field(default=30.0, gt=0)


class QdrantSettings(BaseModel):
    url: str = "http://localhost:6333"
    api_key: Optional[str] = None
    vector_size: int = Field(default=1024, gt=0)
    distance: str = "euclid"
    queries_collection: str = "queries"


class LLMSettings(BaseModel):
    # Mistral exposes an OpenAI-compatible endpoint, so the openai SDK is reused.
    base_url: str = "https://api.mistral.ai/v1"
    api_key: Optional[str] = None
    embedding_model: str = "mistral-embed"
    answer_model: str = "open-mistral-7b"
    summary_model: str = "open-mistral-7b"
    entity_model: str = "open-mixtral-8x7b"
    embed_batch_size: int = Field(default=50, gt=0)


class RerankerSettings(BaseModel):
    url: str = "https://api.jina.ai/v1/rerank"
    api_key: Optional[str] = None
    model: str = "jina-reranker-v1-base-en"


class LoggingSettings(BaseModel):
    level: str = "INFO"
    file: Optional[str] = "logs/bookworm.log"
    rotation: str = "10 MB"
    retention: str = "7 days"


class Settings(BaseModel):
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    reranker: RerankerSettings = Field(default_factory=RerankerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# (section, field) <- environment variable
_ENV_OVERRIDES: dict[tuple[str, str], str] = {
    ("archive", "base_url"): "ARCHIVE_BASE_URL",
    ("qdrant", "url"): "QDRANT_URL",
    ("qdrant", "api_key"): "QDRANT_API_KEY",
    ("llm", "base_url"): "MISTRAL_BASE_URL",
    ("llm", "api_key"): "MISTRAL_API_KEY",
    ("reranker", "api_key"): "JINA_API_KEY",
    ("logging", "level"): "BOOKWORM_LOG_LEVEL",
}


def _load_yaml(path: str | Path) -> dict:
    p = Path(path)
    if not p.exists():
        return {}
    with open(p, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {p} must contain a mapping, got {type(data).__name__}")
    return data


def load_settings(path: str | Path = DEFAULT_CONFIG_PATH) -> Settings:
    """Build Settings from the YAML file (if present) plus environment overrides."""
    load_dotenv()
    raw: dict[str, Any] = _load_yaml(path)

    for (section, key), env_name in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            raw.setdefault(section, {})[key] = value

    return Settings.model_validate(raw)
