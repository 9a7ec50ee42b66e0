"""Memory engine configuration models."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, Field, model_validator

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


class CacheConfig(BaseModel):
    """Bounded in-process context cache."""

    capacity: int = Field(default=100, ge=1)
    # "fifo" evicts the oldest inserted key; "lru" reorders on every access
    eviction_policy: Literal["fifo", "lru"] = "fifo"


class HistoryConfig(BaseModel):
    """Conversation history pruning."""

    max_messages: int = 50
    keep_recent: int = 20
    keep_important: int = 10

    @model_validator(mode="after")
    def _validate_limits(self) -> "HistoryConfig":
        if self.keep_recent + self.keep_important > self.max_messages:
            raise ValueError(
                "keep_recent + keep_important must not exceed max_messages: "
                f"{self.keep_recent} + {self.keep_important} > {self.max_messages}"
            )
        return self


class SignalConfig(BaseModel):
    """Topic extraction limits."""

    max_topics: int = 5
    min_topic_length: int = 3  # tokens must be strictly longer


class ContextualConfig(BaseModel):
    """Session-scoped contextual memory limits."""

    max_related_topics: int = 10
    max_topic_progression: int = 10
    max_recent_queries: int = 10


class LearningConfig(BaseModel):
    """Behavior learning thresholds."""

    max_frequent_topics: int = 50
    detailed_length: int = 200
    concise_length: int = 50
    expertise_length: int = 100
    max_personal_facts: int = 100


class PromptConfig(BaseModel):
    """Contextual prompt assembly."""

    system_framing: str = "You are ChatKing AI, an advanced AI assistant."
    recent_turns: int = 5
    max_behaviors: int = 3
    behavior_threshold: float = 0.7


class StorageConfig(BaseModel):
    """Persistence adapter selection."""

    backend: Literal["memory", "json"] = "memory"
    base_path: str = "./data/memory"
    encryption_key: str | None = None
    create_backup: bool = True
    # When True a backend read failure is logged and hydrated as defaults
    default_on_backend_error: bool = False

    @model_validator(mode="after")
    def _validate_paths(self) -> "StorageConfig":
        normalized = os.path.normpath(self.base_path)
        parts = normalized.replace("\\", "/").split("/")
        if ".." in parts:
            raise ValueError(
                f"base_path must not contain '..' components: {self.base_path!r}"
            )
        self.base_path = normalized
        return self


class MemoryEngineConfig(BaseModel):
    """Top-level memory engine configuration."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    signals: SignalConfig = Field(default_factory=SignalConfig)
    contextual: ContextualConfig = Field(default_factory=ContextualConfig)
    learning: LearningConfig = Field(default_factory=LearningConfig)
    prompt: PromptConfig = Field(default_factory=PromptConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def read_yaml(config_path: str | Path) -> dict[str, Any]:
    """
    Read a YAML configuration file, substituting ``${ENV_VAR}`` references.

    Unset variables are left untouched.

    Raises:
        FileNotFoundError: If the configuration file is not found.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    content = path.read_text(encoding="utf-8")

    def replacer(match: re.Match[str]) -> str:
        return os.getenv(match.group(1), match.group(0))

    content = _ENV_PATTERN.sub(replacer, content)

    try:
        return yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.critical(f"Error parsing YAML file: {e}")
        raise


def load_config(config_path: str | Path) -> MemoryEngineConfig:
    """Load and validate a memory engine configuration file.

    The settings may sit at the top level or under a ``memory_engine`` key.
    """
    data = read_yaml(config_path)
    section = data.get("memory_engine", data)
    config = MemoryEngineConfig.model_validate(section)
    logger.debug(f"Loaded memory engine config from {config_path}")
    return config
