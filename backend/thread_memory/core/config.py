"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator

ENV_PREFIX = "TMEM_"
CONFIG_ENV = f"{ENV_PREFIX}CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/thread-memory/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "max_chars"): "embedding_max_chars",
    ("embeddings", "batch_size"): "embedding_batch_size",
    ("embeddings", "cache_size"): "embedding_cache_size",
    ("embeddings", "timeout_s"): "embed_timeout_s",
    ("completion", "model"): "completion_model",
    ("completion", "timeout_s"): "completion_timeout_s",
    ("completion", "history_limit"): "history_limit",
    ("completion", "summaries"): "summaries_enabled",
    ("openai", "api_key"): "openai_api_key",
    ("openai", "base_url"): "openai_base_url",
    ("retry", "initial_s"): "retry_initial_s",
    ("retry", "max_s"): "retry_max_s",
    ("retry", "jitter_s"): "retry_jitter_s",
    ("retrieval", "budget_chars"): "context_budget_chars",
    ("retrieval", "max_units"): "context_max_units",
    ("retrieval", "min_score"): "context_min_score",
    ("keywords", "target"): "keyword_target",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".thread-memory" / "memory.db")
    embedding_backend: Literal["hashed", "openai"] = "hashed"
    embedding_model: str = "hashed-384"
    embedding_dim: int = Field(default=384, ge=1)
    embedding_max_chars: int = Field(default=8000, ge=1)
    embedding_batch_size: int = Field(default=64, ge=1)
    embedding_cache_size: int = Field(default=2048, ge=0)
    embed_timeout_s: float = Field(default=30.0, gt=0)
    completion_model: str = "gpt-4o"
    completion_timeout_s: float = Field(default=30.0, gt=0)
    openai_api_key: SecretStr | None = None
    openai_base_url: str | None = None
    retry_initial_s: float = Field(default=0.5, ge=0)
    retry_max_s: float = Field(default=8.0, ge=0)
    retry_jitter_s: float = Field(default=0.5, ge=0)
    context_budget_chars: int = Field(default=8000, ge=0)
    context_max_units: int | None = Field(default=None, ge=1)
    context_min_score: float | None = None
    history_limit: int = Field(default=10, ge=0)
    keyword_target: int = Field(default=8, ge=1)
    summaries_enabled: bool = True

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @property
    def has_openai(self) -> bool:
        return self.openai_api_key is not None and bool(self.openai_api_key.get_secret_value())

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Defaults, then the YAML file when one exists, then ``TMEM_*`` variables."""
        values: dict[str, Any] = {}
        config_path = _config_path(path)
        if config_path is not None:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
            if not isinstance(raw, Mapping):
                raise ValueError(f"{config_path} must hold a mapping at the top level")
            values.update(_from_sections(raw))
        values.update(_from_environment(os.environ))
        return cls(**values)


def _config_path(explicit: Path | None) -> Path | None:
    if explicit is None:
        env_path = os.environ.get(CONFIG_ENV)
        explicit = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    candidate = explicit.expanduser()
    return candidate if candidate.is_file() else None


def _from_sections(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Pick known ``section: {key: value}`` pairs and bare field names out of the document."""
    values: dict[str, Any] = {}
    for (section, key), field_name in _YAML_KEY_MAP.items():
        block = raw.get(section)
        if isinstance(block, Mapping) and key in block:
            values[field_name] = block[key]
    for key, value in raw.items():
        if key in Settings.model_fields and not isinstance(value, Mapping):
            values.setdefault(key, value)
    return values


def _from_environment(environ: Mapping[str, str]) -> dict[str, Any]:
    values = {
        name[len(ENV_PREFIX) :].lower(): value
        for name, value in environ.items()
        if name.startswith(ENV_PREFIX) and name[len(ENV_PREFIX) :].lower() in Settings.model_fields
    }
    if "openai_api_key" not in values and environ.get("OPENAI_API_KEY"):
        values["openai_api_key"] = environ["OPENAI_API_KEY"]
    return values


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
