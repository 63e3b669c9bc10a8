"""Tests for RunbookAdminSettings and the cached settings factory."""

from __future__ import annotations

from pathlib import Path

import pytest

from runbook_admin.core.config import RunbookAdminSettings, clear_settings_cache, get_settings
from runbook_admin.core.errors import ConfigError


class TestDefaults:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("RUNBOOK_ADMIN_LOG_FORMAT", raising=False)
        monkeypatch.delenv("RUNBOOK_ADMIN_LOG_LEVEL", raising=False)
        settings = RunbookAdminSettings()
        assert settings.runn_command == "runn"
        assert settings.default_timeout_ms == 30000
        assert settings.kill_grace_ms == 5000
        assert settings.log_level == "INFO"
        assert settings.log_format == "auto"

    def test_history_file_under_storage_dir(self, tmp_path):
        settings = RunbookAdminSettings()
        assert settings.history_file == tmp_path / "storage" / "history.json"

    def test_storage_dir_expands_user(self, monkeypatch):
        monkeypatch.setenv("RUNBOOK_ADMIN_STORAGE_DIR", "~/ra-history")
        settings = RunbookAdminSettings()
        assert settings.history_file == Path.home() / "ra-history" / "history.json"

    def test_project_path_falls_back_to_project_path_env(self, monkeypatch, tmp_path):
        monkeypatch.delenv("RUNBOOK_ADMIN_PROJECT_PATH", raising=False)
        monkeypatch.setenv("PROJECT_PATH", str(tmp_path / "proj"))
        assert RunbookAdminSettings().project_path == str(tmp_path / "proj")


class TestEnvironmentOverrides:
    def test_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("RUNBOOK_ADMIN_RUNN_COMMAND", "/opt/bin/runn")
        monkeypatch.setenv("RUNBOOK_ADMIN_DEFAULT_TIMEOUT_MS", "1500")
        settings = RunbookAdminSettings()
        assert settings.runn_command == "/opt/bin/runn"
        assert settings.default_timeout_ms == 1500

    def test_log_format_is_lowercased(self, monkeypatch):
        monkeypatch.setenv("RUNBOOK_ADMIN_LOG_FORMAT", "JSON")
        assert RunbookAdminSettings().log_format == "json"


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_force_reload(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("RUNBOOK_ADMIN_KILL_GRACE_MS", "250")
        assert get_settings() is first
        reloaded = get_settings(_force_reload=True)
        assert reloaded.kill_grace_ms == 250

    def test_clear_cache(self):
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first

    @pytest.mark.parametrize(
        "name,value",
        [
            ("RUNBOOK_ADMIN_DEFAULT_TIMEOUT_MS", "0"),
            ("RUNBOOK_ADMIN_KILL_GRACE_MS", "-5"),
            ("RUNBOOK_ADMIN_LOG_FORMAT", "xml"),
            ("RUNBOOK_ADMIN_DEFAULT_TIMEOUT_MS", "soon"),
        ],
    )
    def test_invalid_values_raise_config_error(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigError) as exc_info:
            get_settings(_force_reload=True)
        assert "Invalid runbook-admin settings" in exc_info.value.message
