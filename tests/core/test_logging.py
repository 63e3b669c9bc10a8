"""Tests for structured logging configuration."""

from __future__ import annotations

import json

import pytest

from runbook_admin.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    resolve_json_format,
)

# Created at import time, before any test configures logging
MODULE_LOGGER = get_logger("tests.core.module")


@pytest.fixture
def json_logging():
    configure_logging(level="INFO", json_format=True, service="runbook-admin-test")
    clear_context()
    yield
    clear_context()
    configure_logging(level="WARNING", json_format=False)


def _last_record(capsys) -> dict:
    lines = [line for line in capsys.readouterr().err.splitlines() if line.strip()]
    return json.loads(lines[-1])


class TestResolveJsonFormat:
    @pytest.mark.parametrize(
        "value,expected",
        [("json", True), ("JSON", True), ("console", False), ("auto", None), ("", None)],
    )
    def test_mapping(self, value, expected):
        assert resolve_json_format(value) is expected


class TestJsonOutput:
    def test_event_and_service_fields(self, json_logging, capsys):
        get_logger("tests").info("execution.started", execution_id="abc123")
        record = _last_record(capsys)
        assert record["event"] == "execution.started"
        assert record["execution_id"] == "abc123"
        assert record["service.name"] == "runbook-admin-test"
        assert record["log.level"] == "info"
        assert record["logger"] == "tests"
        assert "@timestamp" in record

    def test_level_filtering(self, json_logging, capsys):
        get_logger("tests").debug("execution.stream", size=10)
        assert capsys.readouterr().err.strip() == ""

    def test_bound_context_is_merged(self, json_logging, capsys):
        bind_context(execution_id="ctx1")
        get_logger("tests").warning("history.save_failed")
        assert _last_record(capsys)["execution_id"] == "ctx1"

    def test_log_context_unbinds_on_exit(self, json_logging, capsys):
        logger = get_logger("tests")
        with LogContext(runbook_path="api.yml"):
            logger.info("inside")
        assert _last_record(capsys)["runbook_path"] == "api.yml"
        logger.info("outside")
        assert "runbook_path" not in _last_record(capsys)

    @pytest.mark.asyncio
    async def test_async_log_context(self, json_logging, capsys):
        async with LogContext(execution_id="async1"):
            get_logger("tests").info("inside")
        assert _last_record(capsys)["execution_id"] == "async1"


class TestGetLogger:
    def test_named_logger_logs(self, json_logging, capsys):
        get_logger("x").info("execution.started")
        assert _last_record(capsys)["logger"] == "x"

    def test_import_time_logger_follows_later_configuration(self, json_logging, capsys):
        MODULE_LOGGER.info("registry.history_cleared", cleared=2)
        record = _last_record(capsys)
        assert record["logger"] == "tests.core.module"
        assert record["service.name"] == "runbook-admin-test"
        assert record["cleared"] == 2

    def test_unnamed_logger(self, json_logging, capsys):
        get_logger().info("history.loaded")
        assert _last_record(capsys)["event"] == "history.loaded"

    def test_package_modules_import(self):
        from runbook_admin.execution import registry, runner, storage

        assert registry.logger is not None
        assert runner.logger is not None
        assert storage.logger is not None
