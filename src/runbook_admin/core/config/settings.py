"""
Centralized settings for runbook-admin.

Manifesto:
    One validated, cached settings object instead of each component
    reading ``os.environ`` on its own. Every field can be set through a
    ``RUNBOOK_ADMIN_*`` environment variable or a ``.env`` file.

Tags:
    runbook-admin, configuration, settings, pydantic, caching

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from runbook_admin.core.errors import ConfigError


def _default_project_path() -> str:
    return os.environ.get("PROJECT_PATH") or os.getcwd()


def _default_storage_dir() -> str:
    return str(Path.home() / ".runbook-admin")


class RunbookAdminSettings(BaseSettings):
    """Runbook-admin configuration.

    All fields can be set via ``RUNBOOK_ADMIN_*`` environment variables
    (e.g. ``RUNBOOK_ADMIN_RUNN_COMMAND=/opt/bin/runn``).
    """

    model_config = SettingsConfigDict(
        env_prefix="RUNBOOK_ADMIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── External tool ────────────────────────────────────────────
    runn_command: str = Field(default="runn", description="runn executable name or path")
    project_path: str = Field(
        default_factory=_default_project_path,
        description="Working directory for spawned runbook processes",
    )

    # ── Execution ────────────────────────────────────────────────
    default_timeout_ms: int = Field(default=30000)
    kill_grace_ms: int = Field(default=5000)

    # ── Storage ──────────────────────────────────────────────────
    storage_dir: str = Field(default_factory=_default_storage_dir)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto")

    @field_validator("default_timeout_ms", "kill_grace_ms")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive number of milliseconds")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value.lower() not in ("json", "console", "auto"):
            raise ValueError("log_format must be one of: json, console, auto")
        return value.lower()

    # ── Derived properties ───────────────────────────────────────

    @property
    def history_file(self) -> Path:
        return Path(self.storage_dir).expanduser() / "history.json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, RunbookAdminSettings] = {}


def get_settings(*, _force_reload: bool = False) -> RunbookAdminSettings:
    """Load, validate, and cache a :class:`RunbookAdminSettings` instance.

    Pass ``_force_reload=True`` (tests) to re-read the environment.

    Raises:
        ConfigError: If any value fails validation.
    """
    if _force_reload or "default" not in _settings_cache:
        try:
            _settings_cache["default"] = RunbookAdminSettings()
        except ValidationError as exc:
            raise ConfigError(f"Invalid runbook-admin settings: {exc}", cause=exc) from exc
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings instance."""
    _settings_cache.clear()
