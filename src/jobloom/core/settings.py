"""
Centralized settings for jobloom.

Manifesto:
    One validated, cached settings object supplies the defaults every job
    configuration is seeded with: where intermediate data lives, how many
    reducers a shuffle gets and how the local engine runs tasks.

All fields can be set through ``JOBLOOM_*`` environment variables (e.g.
``JOBLOOM_NUM_REDUCERS=4``) or a ``.env`` file.

Tags:
    jobloom, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineMode(str, Enum):
    """How the local engine runs task slots."""

    INLINE = "inline"  # every task in the submitting process, one after another
    PROCESS = "process"  # every task in a pool worker process


class LoomSettings(BaseSettings):
    """jobloom configuration."""

    model_config = SettingsConfigDict(
        env_prefix="JOBLOOM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    work_dir: Path = Field(
        default=Path("jobloom-work"),
        description="Root directory for intermediate job outputs",
    )

    # ── Jobs ─────────────────────────────────────────────────────
    num_reducers: int = Field(default=1, description="Default reduce task count for a shuffle")

    # ── Engine ───────────────────────────────────────────────────
    engine_mode: EngineMode = Field(default=EngineMode.INLINE)
    max_workers: int | None = Field(default=None, description="Worker processes in process mode")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", description="console, json or auto (json unless on a TTY)")

    @field_validator("num_reducers")
    @classmethod
    def _non_negative_reducers(cls, value: int) -> int:
        if value < 0:
            raise ValueError("num_reducers must be >= 0")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


_settings_cache: dict[str, LoomSettings] = {}


def get_settings(*, _force_reload: bool = False) -> LoomSettings:
    """Load, validate and cache a :class:`LoomSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = LoomSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (for testing)."""
    _settings_cache.clear()


__all__ = ["EngineMode", "LoomSettings", "get_settings", "clear_settings_cache"]
