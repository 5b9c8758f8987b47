"""MediSales realtime service configuration.

Loads settings from a single YAML file:
  * medisales.settings.yaml: non-secret configuration

The path can be overridden with the ``MEDISALES_SETTINGS`` environment
variable. A missing file is not an error; every section has defaults.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from medisales.messages.schemas import MAX_MESSAGE_LENGTH

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("medisales.settings.yaml")
SETTINGS_ENV_VAR = "MEDISALES_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class DatabaseSettings(BaseModel):
    """DuckDB file location. ``:memory:`` keeps everything in-process."""
    path: str = "medisales.duckdb"


class ChatSettings(BaseModel):
    max_message_length:   int             = Field(default=MAX_MESSAGE_LENGTH, ge=1, le=MAX_MESSAGE_LENGTH)
    history_limit:        int             = Field(default=200, ge=1)
    # None disables the per-recipient timeout.
    send_timeout_seconds: Optional[float] = Field(default=5.0, gt=0)


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if not isinstance(getattr(logging, value.upper(), None), int):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class AppConfig(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    chat:     ChatSettings     = Field(default_factory=ChatSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_database_path(config: AppConfig, settings_path: Path) -> None:
    """Resolve a relative database path against the settings file directory."""
    db_path = config.database.path
    if db_path == ":memory:" or Path(db_path).is_absolute():
        return
    config.database.path = str(settings_path.parent / db_path)


def load_config(settings_path: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load settings from YAML into an *AppConfig* object."""
    if settings_path is None:
        settings_path = os.environ.get(SETTINGS_ENV_VAR) or SETTINGS_FILE
    settings_path = Path(settings_path)

    app_config = AppConfig(**_load_yaml(settings_path))
    _resolve_database_path(app_config, settings_path)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s, max_message_length=%s)",
        app_config.server.host,
        app_config.server.port,
        app_config.database.path,
        app_config.chat.max_message_length,
    )
    return app_config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config (used by tests)."""
    global _config
    _config = None
