"""Application configuration helpers."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_PLATFORMS = ("youtube", "twitch", "tiktok", "kick")
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class AppConfig(BaseModel):
    """Runtime configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    base_dir: Path = Field(
        default=PROJECT_ROOT,
        description="Root directory that relative rule/plugin/data paths resolve against",
    )
    rules_dir: Path = Field(..., description="Directory watched for rule files")
    plugins_dir: Path = Field(..., description="Directory scanned for plugin packages")
    data_dir: Path = Field(
        ...,
        description="Directory for plugin storage and recorded events",
    )
    platforms: tuple[str, ...] = Field(
        default=DEFAULT_PLATFORMS,
        description="Platform names the host subscribes to (CUEBRIDGE_PLATFORMS)",
    )
    plugin_load_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds each plugin on_load may take before it is marked failed",
    )
    action_timeout: Optional[float] = Field(
        default=None,
        description="Per-action timeout in seconds. None disables the timeout",
    )
    strict_actions: bool = Field(
        default=False,
        description="Reject duplicate action names instead of replacing the handler",
    )
    reload_debounce_ms: int = Field(
        default=200,
        ge=0,
        le=10000,
        description="Quiet period before a burst of rule file changes triggers a reload",
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Playlist timing
    settle_delay: float = Field(
        default=0.1,
        ge=0,
        description="Seconds to wait after stopping a track before loading the next",
    )
    next_track_delay: float = Field(
        default=0.05,
        ge=0,
        description="Seconds between a completed track and the next one",
    )
    idle_timeout: float = Field(
        default=1.0,
        gt=0,
        description="Upper bound in seconds for waiting on a busy playlist",
    )
    poll_interval: float = Field(
        default=0.5,
        gt=0,
        description="Seconds between playback completion polls",
    )

    @field_validator("base_dir", "rules_dir", "plugins_dir", "data_dir", mode="before")
    @classmethod
    def _normalize_path(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            raise ValueError("directory path cannot be empty")
        path = value if isinstance(value, Path) else Path(value)
        return path.expanduser().resolve()

    @field_validator("platforms", mode="before")
    @classmethod
    def _split_platforms(cls, value) -> tuple[str, ...]:
        if value is None:
            return DEFAULT_PLATFORMS
        if isinstance(value, str):
            value = value.split(",")
        platforms = tuple(p.strip().lower() for p in value if p and p.strip())
        if not platforms:
            raise ValueError("CUEBRIDGE_PLATFORMS must name at least one platform")
        return platforms

    @field_validator("action_timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value) -> Optional[float]:
        if value is None or value == "":
            return None
        timeout = float(value)
        if timeout <= 0:
            raise ValueError(f"CUEBRIDGE_ACTION_TIMEOUT must be positive, got: {value!r}")
        return timeout

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        """Validate CUEBRIDGE_LOG_LEVEL is a stdlib logging level name."""
        if value is None:
            return "INFO"
        level = str(value).upper().strip()
        if level not in LOG_LEVELS:
            raise ValueError(f"CUEBRIDGE_LOG_LEVEL must be one of {LOG_LEVELS}, got: {value!r}")
        return level


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


def _resolve_under(base: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load and cache application configuration."""
    base_dir = Path(_read_env("CUEBRIDGE_BASE_DIR", str(PROJECT_ROOT))).expanduser()
    rules_dir = _resolve_under(base_dir, _read_env("CUEBRIDGE_RULES_DIR", "rules"))
    plugins_dir = _resolve_under(base_dir, _read_env("CUEBRIDGE_PLUGINS_DIR", "plugins"))
    data_dir = _resolve_under(base_dir, _read_env("CUEBRIDGE_DATA_DIR", "data"))

    strict_actions = _read_env("CUEBRIDGE_STRICT_ACTIONS", "false").lower() in {"true", "1", "yes"}

    plugin_load_timeout_str = _read_env("CUEBRIDGE_PLUGIN_LOAD_TIMEOUT", "30")
    try:
        plugin_load_timeout = float(plugin_load_timeout_str)
    except ValueError:
        plugin_load_timeout = 30.0

    debounce_str = _read_env("CUEBRIDGE_RELOAD_DEBOUNCE_MS", "200")
    try:
        reload_debounce_ms = int(debounce_str)
    except ValueError:
        reload_debounce_ms = 200

    config = AppConfig(
        base_dir=base_dir,
        rules_dir=rules_dir,
        plugins_dir=plugins_dir,
        data_dir=data_dir,
        platforms=_read_env("CUEBRIDGE_PLATFORMS"),
        plugin_load_timeout=plugin_load_timeout,
        action_timeout=_read_env("CUEBRIDGE_ACTION_TIMEOUT"),
        strict_actions=strict_actions,
        reload_debounce_ms=reload_debounce_ms,
        log_level=_read_env("CUEBRIDGE_LOG_LEVEL", "INFO"),
    )
    # Rules and data directories must exist before the watcher and storage start.
    config.rules_dir.mkdir(parents=True, exist_ok=True)
    config.data_dir.mkdir(parents=True, exist_ok=True)
    return config


def reload_config() -> AppConfig:
    """Clear cached config (useful for tests) and reload."""
    get_config.cache_clear()
    return get_config()
