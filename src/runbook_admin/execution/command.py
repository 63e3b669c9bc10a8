"""External tool resolution and availability check.

The runn executable is looked up once against the ``PATH`` captured when
this module was imported (launchers such as virtualenv shims or ``npx``
may prepend their own directories later), and the result is cached. If
the lookup fails the bare name is used, so a subsequent spawn still
fails with a proper "not found" result instead of an exception here.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from collections.abc import Sequence

from runbook_admin.core.logging import get_logger

logger = get_logger(__name__)

ORIGINAL_ENV: dict[str, str] = dict(os.environ)

_resolved: dict[str, str] = {}

CommandSpec = str | Sequence[str]


def get_original_environment() -> dict[str, str]:
    """Current environment with the startup ``PATH`` restored."""
    env = dict(os.environ)
    original_path = ORIGINAL_ENV.get("PATH")
    if original_path is not None:
        env["PATH"] = original_path
    return env


def resolve_executable(name: str) -> str:
    """Resolve ``name`` to a full path via the startup ``PATH`` (cached)."""
    if name in _resolved:
        return _resolved[name]

    if os.path.dirname(name):
        resolved = name
    else:
        found = shutil.which(name, path=ORIGINAL_ENV.get("PATH"))
        if found:
            resolved = found
        else:
            logger.warning("command.not_resolved", command=name, fallback=name)
            resolved = name

    _resolved[name] = resolved
    logger.debug("command.resolved", command=name, path=resolved)
    return resolved


def resolve_command(command: CommandSpec) -> list[str]:
    """Turn a command spec into the argv prefix used for spawning.

    A string names the executable; a sequence is an executable followed by
    fixed leading arguments (e.g. an interpreter and a script).
    """
    if isinstance(command, str):
        return [resolve_executable(command)]
    parts = list(command)
    if not parts:
        raise ValueError("command must not be empty")
    return [resolve_executable(parts[0]), *parts[1:]]


def reset_command_cache() -> None:
    """Forget every cached resolution."""
    _resolved.clear()


async def check_tool_available(
    command: CommandSpec = "runn",
    *,
    timeout_seconds: float = 10.0,
) -> bool:
    """Return True if ``<command> --version`` exits 0.

    Never raises: a missing tool, a permission error or a hung check all
    yield False, and the resolution cache is dropped so a later install
    is picked up.
    """
    argv = resolve_command(command)
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            "--version",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            env=get_original_environment(),
        )
    except OSError as exc:
        logger.info("command.unavailable", command=argv[0], reason=str(exc))
        reset_command_cache()
        return False

    try:
        returncode = await asyncio.wait_for(process.wait(), timeout=timeout_seconds)
    except TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        logger.info("command.unavailable", command=argv[0], reason="version check timed out")
        return False

    available = returncode == 0
    logger.debug("command.checked", command=argv[0], exit_code=returncode, available=available)
    return available
