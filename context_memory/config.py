"""
Configuration Module - Load and manage context-memory configuration.

This module provides support for loading configuration from:
- YAML configuration files (.context-memory.yml)
- Environment variables
- Programmatic configuration

Configuration precedence (highest to lowest):
1. Programmatic configuration (keyword overrides)
2. Environment variables
3. Configuration file
4. Default values

Every configuration object is a closed dataclass. Keys that do not
name a field are ignored when loading from a dictionary.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError, ErrorCode


logger = logging.getLogger(__name__)


# Default configuration file names (in order of precedence)
CONFIG_FILE_NAMES = [
    ".context-memory.yml",
    ".context-memory.yaml",
    "context-memory.yml",
    "context-memory.yaml",
]

DEFAULT_DB_PATH = str(Path.home() / ".context-memory" / "memory.db")


def _known_fields(cls, data: Dict[str, Any], aliases: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Select the keys of data that name a field of cls.

    Args:
        cls: Dataclass type
        data: Raw dictionary
        aliases: Mapping of external key to field name

    Returns:
        Dictionary containing only known fields
    """
    aliases = aliases or {}
    names = {f.name for f in fields(cls)}
    selected = {}
    for key, value in (data or {}).items():
        name = aliases.get(key, key)
        if name in names:
            selected[name] = value
        else:
            logger.debug(f"Ignoring unknown {cls.__name__} option: {key}")
    return selected


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding provider and its cache."""

    provider: str = "openai"  # "openai", "ollama" or "local"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: Optional[str] = None
    timeout: float = 30.0  # seconds
    cache_max_size: int = 2000
    cache_ttl: int = 3600  # seconds

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmbeddingConfig":
        """Create configuration from dictionary."""
        return cls(**_known_fields(cls, data, {"apiKey": "api_key", "baseUrl": "base_url"}))

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "provider": self.provider,
            "api_key": "***" if self.api_key else None,  # Redact API key
            "base_url": self.base_url,
            "model": self.model,
            "timeout": self.timeout,
            "cache_max_size": self.cache_max_size,
            "cache_ttl": self.cache_ttl,
        }


@dataclass
class AutoInjectConfig:
    """Configuration for automatic memory injection into requests."""

    global_enabled: bool = True
    project_enabled: bool = True
    max_memories: int = 10  # per scope
    max_tokens: int = 2000

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutoInjectConfig":
        """Create configuration from dictionary."""
        return cls(**_known_fields(cls, data, {
            "global": "global_enabled",
            "project": "project_enabled",
            "maxMemories": "max_memories",
            "maxTokens": "max_tokens",
        }))

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "global": self.global_enabled,
            "project": self.project_enabled,
            "max_memories": self.max_memories,
            "max_tokens": self.max_tokens,
        }


@dataclass
class RetentionConfig:
    """Configuration for the retention sweep."""

    min_importance: float = 0.3
    max_age_days: int = 90
    cleanup_interval_seconds: int = 86400

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetentionConfig":
        """Create configuration from dictionary."""
        return cls(**_known_fields(cls, data, {
            "minImportance": "min_importance",
            "maxAgeDays": "max_age_days",
        }))

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "min_importance": self.min_importance,
            "max_age_days": self.max_age_days,
            "cleanup_interval_seconds": self.cleanup_interval_seconds,
        }


@dataclass
class MemoryConfig:
    """Configuration for the memory store and service."""

    enabled: bool = True
    db_path: str = DEFAULT_DB_PATH
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    auto_inject: AutoInjectConfig = field(default_factory=AutoInjectConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    debug_mode: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryConfig":
        """Create configuration from dictionary."""
        values = _known_fields(cls, data, {
            "dbPath": "db_path",
            "autoInject": "auto_inject",
            "debugMode": "debug_mode",
        })
        values["embedding"] = EmbeddingConfig.from_dict(values.get("embedding") or {})
        values["auto_inject"] = AutoInjectConfig.from_dict(values.get("auto_inject") or {})
        values["retention"] = RetentionConfig.from_dict(values.get("retention") or {})
        if not values.get("db_path"):
            values.pop("db_path", None)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "enabled": self.enabled,
            "db_path": self.db_path,
            "embedding": self.embedding.to_dict(),
            "auto_inject": self.auto_inject.to_dict(),
            "retention": self.retention.to_dict(),
            "debug_mode": self.debug_mode,
        }


@dataclass
class BehavioralPatternsConfig:
    """Toggles for the behavioral guidance sections."""

    anti_aloofness: bool = True  # focus and progress tracking
    scope_enforcement: bool = True  # avoid over-engineering
    tool_discipline: bool = True  # dedicated file tools over shell
    professional_tone: bool = True  # objective, concise communication
    task_completion: bool = True  # verify before reporting done

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BehavioralPatternsConfig":
        """Create configuration from dictionary."""
        return cls(**_known_fields(cls, data, {
            "antiAloofness": "anti_aloofness",
            "scopeEnforcement": "scope_enforcement",
            "toolDiscipline": "tool_discipline",
            "professionalTone": "professional_tone",
            "taskCompletion": "task_completion",
        }))

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "anti_aloofness": self.anti_aloofness,
            "scope_enforcement": self.scope_enforcement,
            "tool_discipline": self.tool_discipline,
            "professional_tone": self.professional_tone,
            "task_completion": self.task_completion,
        }


@dataclass
class ContextBuilderConfig:
    """Configuration for the dynamic context builder."""

    max_tokens: int = 8000
    reserve_tokens_for_response: int = 4000
    enable_memory: bool = True
    enable_project_context: bool = True
    enable_emphasis: bool = True
    enable_engineering: bool = True
    behavioral_patterns: BehavioralPatternsConfig = field(default_factory=BehavioralPatternsConfig)
    debug_mode: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextBuilderConfig":
        """Create configuration from dictionary."""
        values = _known_fields(cls, data, {
            "maxTokens": "max_tokens",
            "reserveTokensForResponse": "reserve_tokens_for_response",
            "enableMemory": "enable_memory",
            "enableProjectContext": "enable_project_context",
            "enableEmphasis": "enable_emphasis",
            "enableEngineering": "enable_engineering",
            "behavioralPatterns": "behavioral_patterns",
            "debugMode": "debug_mode",
        })
        values["behavioral_patterns"] = BehavioralPatternsConfig.from_dict(
            values.get("behavioral_patterns") or {}
        )
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "max_tokens": self.max_tokens,
            "reserve_tokens_for_response": self.reserve_tokens_for_response,
            "enable_memory": self.enable_memory,
            "enable_project_context": self.enable_project_context,
            "enable_emphasis": self.enable_emphasis,
            "enable_engineering": self.enable_engineering,
            "behavioral_patterns": self.behavioral_patterns.to_dict(),
            "debug_mode": self.debug_mode,
        }


@dataclass
class ContextMemoryConfig:
    """
    Complete configuration for context-memory.

    Example YAML configuration:
        ```yaml
        memory:
          enabled: true
          db_path: "~/.context-memory/memory.db"
          embedding:
            provider: "ollama"
            model: "nomic-embed-text"
          auto_inject:
            global: true
            project: true
            max_memories: 10
          retention:
            min_importance: 0.3
            max_age_days: 90

        context:
          max_tokens: 8000
          reserve_tokens_for_response: 4000
          behavioral_patterns:
            professional_tone: false

        log_level: "INFO"
        ```
    """

    memory: MemoryConfig = field(default_factory=MemoryConfig)
    context: ContextBuilderConfig = field(default_factory=ContextBuilderConfig)
    log_level: str = "INFO"
    json_logs: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextMemoryConfig":
        """Create configuration from dictionary."""
        values = _known_fields(cls, data, {"logLevel": "log_level", "jsonLogs": "json_logs"})
        values["memory"] = MemoryConfig.from_dict(values.get("memory") or {})
        values["context"] = ContextBuilderConfig.from_dict(values.get("context") or {})
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "memory": self.memory.to_dict(),
            "context": self.context.to_dict(),
            "log_level": self.log_level,
            "json_logs": self.json_logs,
        }


def find_config_file(start_path: Optional[str] = None) -> Optional[Path]:
    """
    Find the configuration file starting from the given path.

    Searches in the following order:
    1. The specified start_path directory
    2. Current working directory
    3. Parent directories up to the root
    4. User home directory

    Args:
        start_path: Directory to start searching from.

    Returns:
        Path to configuration file if found, None otherwise.
    """
    search_dirs = []

    if start_path:
        search_dirs.append(Path(start_path))

    search_dirs.append(Path.cwd())

    current = Path.cwd()
    while current.parent != current:
        current = current.parent
        search_dirs.append(current)

    search_dirs.append(Path.home())

    for directory in search_dirs:
        for config_name in CONFIG_FILE_NAMES:
            config_path = directory / config_name
            if config_path.exists() and config_path.is_file():
                logger.debug(f"Found config file: {config_path}")
                return config_path

    return None


def load_yaml_file(file_path: Path) -> dict:
    """
    Load a YAML configuration file.

    Args:
        file_path: Path to the YAML file.

    Returns:
        Dictionary with configuration data.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    try:
        with open(file_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Error loading config file {file_path}: {e}",
            code=ErrorCode.CONFIG_PARSE_ERROR,
            details={"path": str(file_path)},
            cause=e,
        )

    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file {file_path} must contain a mapping",
            code=ErrorCode.CONFIG_VALIDATION_FAILED,
            details={"path": str(file_path)},
        )
    return data


def _env_number(name: str, cast):
    """Read a numeric environment variable, ignoring malformed values."""
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r}")
        return None


def load_config_from_env() -> dict:
    """
    Load configuration from environment variables.

    Supported environment variables:
    - CONTEXT_MEMORY_EMBEDDING_PROVIDER: Embedding provider name
    - CONTEXT_MEMORY_EMBEDDING_MODEL: Embedding model name
    - CONTEXT_MEMORY_DB_PATH: Database file path
    - CONTEXT_MEMORY_MAX_TOKENS: Total context token budget
    - CONTEXT_MEMORY_RESERVE_TOKENS: Tokens reserved for the response
    - CONTEXT_MEMORY_LOG_LEVEL: Log level
    - OPENAI_API_KEY: OpenAI API key

    Returns:
        Dictionary with configuration from environment.
    """
    config: dict = {"memory": {"embedding": {}}, "context": {}}
    embedding = config["memory"]["embedding"]

    if os.environ.get("CONTEXT_MEMORY_EMBEDDING_PROVIDER"):
        embedding["provider"] = os.environ["CONTEXT_MEMORY_EMBEDDING_PROVIDER"]

    if os.environ.get("CONTEXT_MEMORY_EMBEDDING_MODEL"):
        embedding["model"] = os.environ["CONTEXT_MEMORY_EMBEDDING_MODEL"]

    if os.environ.get("OPENAI_API_KEY"):
        embedding["api_key"] = os.environ["OPENAI_API_KEY"]

    if os.environ.get("CONTEXT_MEMORY_DB_PATH"):
        config["memory"]["db_path"] = os.environ["CONTEXT_MEMORY_DB_PATH"]

    max_tokens = _env_number("CONTEXT_MEMORY_MAX_TOKENS", int)
    if max_tokens is not None:
        config["context"]["max_tokens"] = max_tokens

    reserve = _env_number("CONTEXT_MEMORY_RESERVE_TOKENS", int)
    if reserve is not None:
        config["context"]["reserve_tokens_for_response"] = reserve

    if os.environ.get("CONTEXT_MEMORY_LOG_LEVEL"):
        config["log_level"] = os.environ["CONTEXT_MEMORY_LOG_LEVEL"].upper()

    return config


def load_config(
    config_path: Optional[str] = None,
    project_path: Optional[str] = None,
    **overrides: Any,
) -> ContextMemoryConfig:
    """
    Load configuration from all sources.

    Configuration precedence (highest to lowest):
    1. Overrides passed as keyword arguments
    2. Environment variables
    3. Configuration file
    4. Default values

    Args:
        config_path: Optional explicit path to config file.
        project_path: Optional project path to search for config.
        **overrides: Nested configuration overrides, e.g.
            ``context={"max_tokens": 4000}``.

    Returns:
        Merged ContextMemoryConfig.
    """
    merged_config: dict = {}

    if config_path:
        file_path = Path(config_path)
        if file_path.exists():
            merged_config = _deep_merge(merged_config, load_yaml_file(file_path))
        else:
            logger.warning(f"Config file not found: {file_path}")
    else:
        config_file = find_config_file(project_path)
        if config_file:
            merged_config = _deep_merge(merged_config, load_yaml_file(config_file))

    merged_config = _deep_merge(merged_config, load_config_from_env())

    if overrides:
        merged_config = _deep_merge(merged_config, overrides)

    config = ContextMemoryConfig.from_dict(merged_config)
    config.memory.db_path = os.path.expanduser(config.memory.db_path)
    return config


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Dictionary with override values.

    Returns:
        Merged dictionary.
    """
    result = base.copy()

    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _deep_merge(result[key], value)
        elif value is not None:
            result[key] = value

    return result
