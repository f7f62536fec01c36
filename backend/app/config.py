"""Scan relay application configuration.

Loads settings from a single YAML file:
  * scanrelay.settings.yaml  — non-secret configuration

Lookup order for the settings file:
  1. explicit ``settings_path`` argument
  2. ``SCANRELAY_SETTINGS`` environment variable
  3. ./scanrelay.settings.yaml
  4. ./config/scanrelay.settings.yaml

A missing file is not an error; every field has a default.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("scanrelay.settings.yaml")
SETTINGS_ENV_VAR = "SCANRELAY_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _resolve_settings_path(settings_path: Optional[Path]) -> Path:
    if settings_path is not None:
        return Path(settings_path)
    env_path = os.environ.get(SETTINGS_ENV_VAR)
    if env_path:
        return Path(env_path)
    if SETTINGS_FILE.exists():
        return SETTINGS_FILE
    return Path("config") / SETTINGS_FILE


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"


class ScanSettings(BaseModel):
    """Limits for the scan relay rooms."""
    image_ttl_seconds: int = 5 * 60
    room_ttl_seconds:  int = 30 * 60
    max_upload_bytes:  int = 6 * 1024 * 1024

    @field_validator("image_ttl_seconds", "room_ttl_seconds", "max_upload_bytes")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    scan:    ScanSettings    = Field(default_factory=ScanSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

_config: Optional[AppConfig] = None


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings into a single *AppConfig* object."""
    path = _resolve_settings_path(settings_path)
    config = AppConfig(**_load_yaml(path))
    logger.info(
        "Settings loaded from %s (server=%s:%s, image_ttl=%ss, room_ttl=%ss)",
        path,
        config.server.host,
        config.server.port,
        config.scan.image_ttl_seconds,
        config.scan.room_ttl_seconds,
    )
    return config


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config (for testing)."""
    global _config
    _config = None
