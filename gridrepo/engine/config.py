"""
gridrepo Configuration — Load and validate gridrepo.yaml.

Holds the process-wide connection string that buckets fall back to when their
record type does not name one, plus named connections and logging settings.

Usage:
    from gridrepo.engine.config import get_settings, set_connection_string

Example gridrepo.yaml:
    connection_string: mongodb://localhost:27017/files
    connections:
      archive: mongodb://archive-host:27017/archive
    logging:
      level: DEBUG
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from gridrepo.engine.errors import GridRepoConfigError

CONFIG_FILENAME = "gridrepo.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for gridrepo.yaml
# ---------------------------------------------------------------------------

class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".gridrepo/logs"
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"level must be DEBUG/INFO/WARNING/ERROR/CRITICAL, got '{v}'")
        return v


class Settings(BaseModel):
    """Root model for gridrepo.yaml."""
    connection_string: Optional[str] = None
    connections: Dict[str, str] = Field(default_factory=dict)
    logging: LoggingConfig = LoggingConfig()


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_settings: Optional[Settings] = None


def _find_config_file() -> Optional[Path]:
    """Walk up from CWD looking for gridrepo.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load and validate gridrepo.yaml.

    Args:
        config_path: Explicit path to the YAML file. If None, auto-discovers.

    Returns:
        Validated Settings instance (defaults when no file exists).
    """
    global _settings

    path = Path(config_path) if config_path else _find_config_file()
    if path is None or not path.exists():
        _settings = Settings()
        return _settings

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    # Allow the whole document to be nested under a "gridrepo:" key
    data = raw.get("gridrepo", raw)

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Get the currently loaded settings, loading if necessary."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def set_connection_string(connection_string: Optional[str]) -> None:
    """Override the process-wide connection string."""
    settings = get_settings()
    settings.connection_string = connection_string


def resolve_connection_string(ref: Optional[str] = None) -> str:
    """
    Turn a bucket's connection reference into a MongoDB connection string.

    - None → the process-wide connection string
    - a name listed under ``connections`` → that connection string
    - anything else → used as a literal connection string

    Raises GridRepoConfigError when nothing usable is configured.
    """
    settings = get_settings()

    if ref is None:
        ref = settings.connection_string
    elif ref in settings.connections:
        ref = settings.connections[ref]

    if not ref:
        raise GridRepoConfigError(
            "No MongoDB connection string configured. "
            f"Set connection_string in {CONFIG_FILENAME} or call set_connection_string()."
        )
    return ref
