"""
Configuration Module - Load and manage semantic context configuration.

This module provides support for loading configuration from:
- YAML configuration files (.semantic-context.yml)
- Environment variables
- Programmatic configuration

Configuration precedence (highest to lowest):
1. Programmatic configuration (overrides)
2. Environment variables
3. Configuration file
4. Default values
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import yaml


logger = logging.getLogger(__name__)


# Default configuration file names (in order of precedence)
CONFIG_FILE_NAMES = [
    ".semantic-context.yml",
    ".semantic-context.yaml",
    "semantic-context.yml",
    "semantic-context.yaml",
]

DEFAULT_DB_PATH = "~/.semantic_context/memory.db"


@dataclass
class CacheConfig:
    """Configuration for the embedding cache."""

    max_size: int = 1000  # maximum cached vectors
    eviction: str = "fifo"  # "fifo" or "lru"


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding provider."""

    provider: str = "openai"  # "openai", "sentence-transformers" or "simple"
    model: str = ""
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    dimensions: Optional[int] = None
    timeout: float = 30.0
    cache: CacheConfig = field(default_factory=CacheConfig)


@dataclass
class StorageConfig:
    """Configuration for memory storage."""

    backend: str = "sqlite"  # "sqlite" or "memory"
    db_path: Optional[str] = None

    def resolved_db_path(self) -> str:
        return str(Path(self.db_path or DEFAULT_DB_PATH).expanduser())


@dataclass
class ContextConfig:
    """Token budgets and retrieval limits for context assembly."""

    core_budget: int = 200
    task_budget: int = 400
    extended_budget: int = 800  # default max_tokens for a build
    extended_min_tokens: int = 200
    relevant_memory_limit: int = 5
    relevant_min_importance: float = 0.3
    max_templates: int = 2
    usage_workers: int = 4


@dataclass
class SemanticContextConfig:
    """
    Complete configuration for the semantic context engine.

    Example YAML configuration:
        ```yaml
        embedding:
          provider: "openai"
          model: "text-embedding-3-small"
          cache:
            max_size: 1000
            eviction: "fifo"

        storage:
          backend: "sqlite"
          db_path: "~/.semantic_context/memory.db"

        context:
          task_budget: 400
          relevant_memory_limit: 5
        ```
    """

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    context: ContextConfig = field(default_factory=ContextConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "SemanticContextConfig":
        """Create configuration from dictionary."""
        embedding_data = data.get("embedding") or {}
        cache_data = embedding_data.get("cache") or {}
        storage_data = data.get("storage") or {}
        context_data = data.get("context") or {}

        defaults = ContextConfig()

        return cls(
            embedding=EmbeddingConfig(
                provider=embedding_data.get("provider", "openai"),
                model=embedding_data.get("model", ""),
                api_key=embedding_data.get("api_key"),
                api_base=embedding_data.get("api_base"),
                dimensions=embedding_data.get("dimensions"),
                timeout=float(embedding_data.get("timeout", 30.0)),
                cache=CacheConfig(
                    max_size=int(cache_data.get("max_size", 1000)),
                    eviction=cache_data.get("eviction", "fifo"),
                ),
            ),
            storage=StorageConfig(
                backend=storage_data.get("backend", "sqlite"),
                db_path=storage_data.get("db_path"),
            ),
            context=ContextConfig(
                core_budget=int(context_data.get("core_budget", defaults.core_budget)),
                task_budget=int(context_data.get("task_budget", defaults.task_budget)),
                extended_budget=int(
                    context_data.get("extended_budget", defaults.extended_budget)
                ),
                extended_min_tokens=int(
                    context_data.get("extended_min_tokens", defaults.extended_min_tokens)
                ),
                relevant_memory_limit=int(
                    context_data.get("relevant_memory_limit", defaults.relevant_memory_limit)
                ),
                relevant_min_importance=float(
                    context_data.get(
                        "relevant_min_importance", defaults.relevant_min_importance
                    )
                ),
                max_templates=int(context_data.get("max_templates", defaults.max_templates)),
                usage_workers=int(context_data.get("usage_workers", defaults.usage_workers)),
            ),
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "embedding": {
                "provider": self.embedding.provider,
                "model": self.embedding.model,
                "api_key": "***" if self.embedding.api_key else None,  # Redact API key
                "api_base": self.embedding.api_base,
                "dimensions": self.embedding.dimensions,
                "timeout": self.embedding.timeout,
                "cache": {
                    "max_size": self.embedding.cache.max_size,
                    "eviction": self.embedding.cache.eviction,
                },
            },
            "storage": {
                "backend": self.storage.backend,
                "db_path": self.storage.db_path,
            },
            "context": {
                "core_budget": self.context.core_budget,
                "task_budget": self.context.task_budget,
                "extended_budget": self.context.extended_budget,
                "extended_min_tokens": self.context.extended_min_tokens,
                "relevant_memory_limit": self.context.relevant_memory_limit,
                "relevant_min_importance": self.context.relevant_min_importance,
                "max_templates": self.context.max_templates,
                "usage_workers": self.context.usage_workers,
            },
        }


def _config_search_dirs(start_path: Optional[str] = None) -> Iterator[Path]:
    """Directories a config file may live in, most specific first."""
    if start_path:
        yield Path(start_path)

    # The working directory and each of its ancestors
    cwd = Path.cwd()
    yield cwd
    yield from cwd.parents

    yield Path.home()


def find_config_file(start_path: Optional[str] = None) -> Optional[Path]:
    """
    Locate the nearest semantic context config file.

    A project directory passed as start_path wins over the working
    directory tree; a config in the home directory is the last resort.

    Args:
        start_path: Project directory to look in first.

    Returns:
        The first matching file, or None.
    """
    for directory in _config_search_dirs(start_path):
        for name in CONFIG_FILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                logger.debug(f"Using config file {candidate}")
                return candidate

    return None


def load_yaml_file(file_path: Path) -> dict:
    """
    Load a YAML configuration file.

    Unreadable or malformed files are logged and treated as empty.

    Args:
        file_path: Path to the YAML file.

    Returns:
        Dictionary with configuration data.
    """
    try:
        with open(file_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error loading config file {file_path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {file_path}: top level is not a mapping")
        return {}
    return data


def _env_int(name: str) -> Optional[int]:
    value = os.environ.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring {name}={value!r}: not an integer")
        return None


def load_config_from_env() -> dict:
    """
    Load configuration from environment variables.

    Supported environment variables:
    - SEMANTIC_CONTEXT_EMBEDDING_PROVIDER: Embedding provider name
    - SEMANTIC_CONTEXT_EMBEDDING_MODEL: Embedding model name
    - OPENAI_API_KEY: OpenAI API key
    - OPENAI_BASE_URL: OpenAI-compatible endpoint
    - SEMANTIC_CONTEXT_STORAGE: Storage backend ("sqlite" or "memory")
    - SEMANTIC_CONTEXT_DB_PATH: SQLite database path
    - SEMANTIC_CONTEXT_CACHE_SIZE: Embedding cache size
    - SEMANTIC_CONTEXT_CACHE_EVICTION: Embedding cache eviction policy

    Returns:
        Dictionary with configuration from environment.
    """
    config: Dict[str, Any] = {"embedding": {"cache": {}}, "storage": {}}
    embedding = config["embedding"]

    if os.environ.get("SEMANTIC_CONTEXT_EMBEDDING_PROVIDER"):
        embedding["provider"] = os.environ["SEMANTIC_CONTEXT_EMBEDDING_PROVIDER"]

    if os.environ.get("SEMANTIC_CONTEXT_EMBEDDING_MODEL"):
        embedding["model"] = os.environ["SEMANTIC_CONTEXT_EMBEDDING_MODEL"]

    if os.environ.get("OPENAI_API_KEY"):
        embedding["api_key"] = os.environ["OPENAI_API_KEY"]

    if os.environ.get("OPENAI_BASE_URL"):
        embedding["api_base"] = os.environ["OPENAI_BASE_URL"]

    if os.environ.get("SEMANTIC_CONTEXT_STORAGE"):
        config["storage"]["backend"] = os.environ["SEMANTIC_CONTEXT_STORAGE"]

    if os.environ.get("SEMANTIC_CONTEXT_DB_PATH"):
        config["storage"]["db_path"] = os.environ["SEMANTIC_CONTEXT_DB_PATH"]

    cache_size = _env_int("SEMANTIC_CONTEXT_CACHE_SIZE")
    if cache_size is not None:
        embedding["cache"]["max_size"] = cache_size

    if os.environ.get("SEMANTIC_CONTEXT_CACHE_EVICTION"):
        embedding["cache"]["eviction"] = os.environ["SEMANTIC_CONTEXT_CACHE_EVICTION"]

    return config


def load_config(
    config_path: Optional[str] = None,
    project_path: Optional[str] = None,
    overrides: Optional[dict] = None,
) -> SemanticContextConfig:
    """
    Load configuration from all sources.

    Configuration precedence (highest to lowest):
    1. Overrides, a nested dict shaped like the YAML file
    2. Environment variables
    3. Configuration file
    4. Default values

    Args:
        config_path: Optional explicit path to config file.
        project_path: Optional directory to search for config.
        overrides: Configuration overrides.

    Returns:
        Merged SemanticContextConfig.
    """
    merged_config: dict = {}

    if config_path:
        file_path = Path(config_path)
        if file_path.exists():
            merged_config = _deep_merge(merged_config, load_yaml_file(file_path))
        else:
            logger.warning(f"Config file not found: {config_path}")
    else:
        config_file = find_config_file(project_path)
        if config_file:
            merged_config = _deep_merge(merged_config, load_yaml_file(config_file))

    merged_config = _deep_merge(merged_config, load_config_from_env())

    if overrides:
        merged_config = _deep_merge(merged_config, overrides)

    return SemanticContextConfig.from_dict(merged_config)


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Layer one config source over another.

    Sections present on both sides merge key by key. A None in override
    means "not set" and keeps the base value, so an unset environment
    variable never masks a value from the config file. Neither input is
    modified.
    """
    merged = dict(base)

    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value

    return merged
