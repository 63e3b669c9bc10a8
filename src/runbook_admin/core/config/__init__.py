"""Configuration for runbook-admin."""

from runbook_admin.core.config.settings import (
    RunbookAdminSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = ["RunbookAdminSettings", "clear_settings_cache", "get_settings"]
