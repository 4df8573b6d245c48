"""
TaskPanel Configuration — Load and validate taskpanel.yaml at startup.

Usage:
    from taskpanel.engine.config import load_client_config, get_client_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from taskpanel.engine.errors import TaskPanelConfigError

CONFIG_FILENAME = "taskpanel.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for taskpanel.yaml
# ---------------------------------------------------------------------------

class BackendConfig(BaseModel):
    base_url: str = "http://localhost:3000/api"
    # None = rely on the transport's default behaviour
    timeout: Optional[float] = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got '{v}'")
        return v.rstrip("/")


class ActivityConfig(BaseModel):
    page_size: int = 20

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"page_size must be positive, got {v}")
        return v


class CommentsConfig(BaseModel):
    deleted_placeholder: str = "[This comment has been deleted]"


class TagsConfig(BaseModel):
    default_color: str = "#3B82F6"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    enabled: bool = True
    # None = keep the event log in memory only
    directory: Optional[str] = None
    # In-memory mode keeps at most this many entries per category
    memory_limit: int = 1000

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level '{v}'")
        return v

    @field_validator("memory_limit")
    @classmethod
    def validate_memory_limit(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"memory_limit must be positive, got {v}")
        return v


class ClientConfig(BaseModel):
    """Root model for taskpanel.yaml."""
    name: str = "TaskPanel"
    environment: str = "dev"

    backend: BackendConfig = BackendConfig()
    activity: ActivityConfig = ActivityConfig()
    comments: CommentsConfig = CommentsConfig()
    tags: TagsConfig = TagsConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_client_config: Optional[ClientConfig] = None


def _find_config_file() -> Optional[Path]:
    """Walk up from CWD looking for taskpanel.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def load_client_config(config_path: Optional[str] = None) -> ClientConfig:
    """
    Load and validate taskpanel.yaml.

    Args:
        config_path: Explicit path to the file. If None, auto-discovers.

    Returns:
        Validated ClientConfig instance (defaults when no file exists).

    Raises:
        TaskPanelConfigError on unreadable YAML or invalid values.
    """
    global _client_config

    path = Path(config_path) if config_path else _find_config_file()
    if path is None or not path.exists():
        _client_config = ClientConfig()
        return _client_config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise TaskPanelConfigError(f"Cannot parse {path}: {e}", config_path=str(path)) from e

    if not isinstance(raw, dict):
        raise TaskPanelConfigError(
            f"{path} must contain a mapping at the top level",
            config_path=str(path),
        )

    # Accept both a flat layout and one wrapped under "taskpanel:"
    data = raw.get("taskpanel", raw)
    if not isinstance(data, dict):
        raise TaskPanelConfigError(
            f"{path}: the taskpanel section must be a mapping",
            config_path=str(path),
        )

    try:
        _client_config = ClientConfig(**data)
    except ValidationError as e:
        raise TaskPanelConfigError(
            f"Invalid configuration in {path}: {e.error_count()} error(s)",
            config_path=str(path),
            validation_errors=[err["msg"] for err in e.errors()],
        ) from e
    return _client_config


def get_client_config() -> ClientConfig:
    """Get the currently loaded config, loading if necessary."""
    global _client_config
    if _client_config is None:
        _client_config = load_client_config()
    return _client_config


def get_environment() -> str:
    """Get the current client environment."""
    return get_client_config().environment
