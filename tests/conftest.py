"""
Shared pytest fixtures and configuration for runbook-admin tests.

This module provides:
- Environment isolation (settings cache, history directory, command cache)
- A stand-in ``runn`` executable written as a Python script
- A helper for writing runbooks the stand-in executes

Usage:
    The stand-in is spawned as ``[sys.executable, <script>]``. It answers
    ``--version`` with exit code 0 and, for ``run <path> --var k:v ...``,
    prints one ``var k=v`` line per variable followed by any extra flags,
    then executes the runbook file as Python source.

    async def test_something(runn_command, write_runbook):
        path = write_runbook("ok.yml", "print('hello')")
        runner = ProcessRunner(command=runn_command)
        ...
"""

from __future__ import annotations

import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from runbook_admin.core.config import clear_settings_cache
from runbook_admin.core.logging import configure_logging
from runbook_admin.execution.command import reset_command_cache

FAKE_RUNN_SOURCE = textwrap.dedent(
    '''
    """Test double for the runn CLI."""
    import runpy
    import sys

    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

    args = sys.argv[1:]
    if args == ["--version"]:
        print("runn version 0.0.0 (test double)")
        sys.exit(0)
    if len(args) < 2 or args[0] != "run":
        print(f"unexpected arguments: {args}", file=sys.stderr)
        sys.exit(64)

    runbook = args[1]
    extra = []
    rest = iter(args[2:])
    for arg in rest:
        if arg == "--var":
            key, _, value = next(rest).partition(":")
            print(f"var {key}={value}")
        else:
            extra.append(arg)
    if extra:
        print("args " + " ".join(extra))
    sys.stdout.flush()

    sys.argv = [runbook]
    runpy.run_path(runbook, run_name="__main__")
    '''
)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def _quiet_logging():
    """Keep structlog output to warnings for the whole run."""
    configure_logging(level="WARNING", json_format=False)
    yield


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point settings at a per-test history directory and reset caches."""
    monkeypatch.setenv("RUNBOOK_ADMIN_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("RUNBOOK_ADMIN_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("RUNBOOK_ADMIN_LOG_FORMAT", "console")
    monkeypatch.setenv("RUNBOOK_ADMIN_PROJECT_PATH", str(tmp_path))
    clear_settings_cache()
    reset_command_cache()
    yield
    clear_settings_cache()
    reset_command_cache()


# =============================================================================
# Stand-in runn
# =============================================================================


@pytest.fixture
def runn_command(tmp_path: Path) -> list[str]:
    """Command spec that runs the stand-in runn script."""
    script = tmp_path / "fake_runn.py"
    script.write_text(FAKE_RUNN_SOURCE, encoding="utf-8")
    return [sys.executable, str(script)]


@pytest.fixture
def write_runbook(tmp_path: Path) -> Callable[[str, str], str]:
    """Write a runbook (Python source for the stand-in) and return its path."""
    runbook_dir = tmp_path / "runbooks"
    runbook_dir.mkdir(exist_ok=True)

    def _write(name: str, body: str) -> str:
        path = runbook_dir / name
        path.write_text(textwrap.dedent(body), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def missing_command() -> str:
    """An executable name that does not exist on PATH."""
    return "runn-definitely-not-installed-3f9a"
