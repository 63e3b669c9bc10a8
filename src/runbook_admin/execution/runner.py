"""Process Runner — supervises one runn invocation end to end.

Manifesto:
    Running a runbook means spawning ``runn run <path>`` as a child
    process and owning everything that can happen to it: streamed
    output, a hung process, a missing executable, a user pressing stop.
    Every one of those paths ends in a single terminal
    :class:`ExecutionResult`, so callers never need exception handling to
    read an outcome.

ARCHITECTURE
────────────
::

    ProcessRunner(command="runn", cwd=project, environment=env_mgr,
                  options_builder=opts_mgr)
      ├── .subscribe(listener)        ─ receive RunnerEvents
      ├── .execute(path, vars, timeout_ms, options) → ExecutionOutcome
      ├── .stop()                     ─ SIGTERM now, emit ``stopped``
      ├── .is_running()               ─ process handle held?
      └── .check_available(command)   ─ ``<command> --version`` check

    execute():
      argv  = [runn, "run", path, --var k:v ..., *options.args]
      env   = ambient ⊕ managed ⊕ ENV_STYLE variables
      spawn (stdin=DEVNULL, stdout/stderr=PIPE)
        ├── emit started
        ├── TerminationTimer(timeout, grace=5s).start()
        ├── stdout chunk → emit output     stderr chunk → emit error
        └── exit code c
              c == 0 → success   else → failed, error = stderr
              emit complete → return ExecutionOutcome(result, spawned=True)
      spawn error → failed, exit_code = -1
              emit complete → return ExecutionOutcome(result, spawned=False)

    A runner is single-use: a second ``execute()`` raises
    ExecutionInProgressError without spawning anything.

Related modules:
    termination.py — graceful/forceful timeout escalation
    events.py      — RunnerEvent / RunnerEventType
    registry.py    — owns runners while their executions are active

Tags:
    runbook-admin, execution, subprocess, asyncio, streaming

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import codecs
import re
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

from runbook_admin.core.errors import ExecutionInProgressError, ToolNotFoundError
from runbook_admin.core.hashing import compute_runbook_id, generate_execution_id
from runbook_admin.core.logging import get_logger
from runbook_admin.execution.command import (
    CommandSpec,
    check_tool_available,
    get_original_environment,
    resolve_command,
)
from runbook_admin.execution.environment import EnvironmentProvider
from runbook_admin.execution.events import RunnerEvent, RunnerEventType, RunnerListener
from runbook_admin.execution.models import (
    ExecutionOptions,
    ExecutionOutcome,
    ExecutionResult,
    ExecutionStatus,
    VariableValue,
    elapsed_ms,
    utcnow,
)
from runbook_admin.execution.options import CommandArgsBuilder
from runbook_admin.execution.termination import TerminationTimer

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 60000
DEFAULT_KILL_GRACE_MS = 5000
STOPPED_BY_USER = "Execution stopped by user"

_READ_CHUNK = 4096
_ENV_STYLE_NAME = re.compile(r"^[A-Z][A-Z0-9_]*$")


def _stringify(value: VariableValue) -> str:
    # Match the JSON spelling runn expects for booleans
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ProcessRunner:
    """Supervises exactly one external process invocation.

    Parameters
    ----------
    command : str | Sequence[str]
        The runn executable, or an executable plus fixed leading arguments.
    cwd : str | Path | None
        Working directory for the child (the project root).
    environment : EnvironmentProvider | None
        Supplies the base environment; defaults to the startup environment.
    options_builder : CommandArgsBuilder | None
        Turns :class:`ExecutionOptions` into extra flags.
    kill_grace_ms : int
        Grace window between SIGTERM and SIGKILL on timeout.
    execution_id : str | None
        Fixed id (tests); generated otherwise.
    """

    def __init__(
        self,
        *,
        command: CommandSpec = "runn",
        cwd: str | Path | None = None,
        environment: EnvironmentProvider | None = None,
        options_builder: CommandArgsBuilder | None = None,
        kill_grace_ms: int = DEFAULT_KILL_GRACE_MS,
        execution_id: str | None = None,
    ) -> None:
        self.execution_id = execution_id or generate_execution_id()
        self._command = command
        self._cwd = str(cwd) if cwd is not None else None
        self._environment = environment
        self._options_builder = options_builder
        self._kill_grace_ms = kill_grace_ms

        self._listeners: list[RunnerListener] = []
        self._process: asyncio.subprocess.Process | None = None
        self._timer: TerminationTimer | None = None
        self._used = False
        self._stopped = False
        self._terminal_emitted = False

    # ── Listeners ────────────────────────────────────────────────────

    def subscribe(self, listener: RunnerListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: RunnerListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(
        self,
        event_type: RunnerEventType,
        *,
        timestamp: datetime | None = None,
        runbook_path: str | None = None,
        chunk: str | None = None,
        result: ExecutionResult | None = None,
    ) -> None:
        if self._terminal_emitted:
            return
        if event_type.is_terminal:
            self._terminal_emitted = True

        event = RunnerEvent(
            execution_id=self.execution_id,
            event_type=event_type,
            timestamp=timestamp or utcnow(),
            runbook_path=runbook_path,
            chunk=chunk,
            result=result,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "runner.listener_failed",
                    execution_id=self.execution_id,
                    event_type=event_type.value,
                )

    # ── Invocation building ──────────────────────────────────────────

    def build_args(
        self,
        runbook_path: str,
        variables: Mapping[str, VariableValue],
        options: ExecutionOptions | None = None,
    ) -> list[str]:
        """``run <path>``, one ``--var key:value`` per variable, then option flags."""
        args = ["run", runbook_path]
        for key, value in variables.items():
            args.extend(["--var", f"{key}:{_stringify(value)}"])
        if options is not None and self._options_builder is not None:
            args.extend(self._options_builder.build_command_args(options))
        elif options is not None:
            args.extend(options.args)
        return args

    def build_environment(self, variables: Mapping[str, VariableValue]) -> dict[str, str]:
        """Base environment overlaid with ENV_STYLE variables from ``variables``."""
        if self._environment is not None:
            env = dict(self._environment.get_environment_for_execution())
        else:
            env = get_original_environment()
        for key, value in variables.items():
            if _ENV_STYLE_NAME.match(key):
                env[key] = _stringify(value)
        return env

    # ── Lifecycle ────────────────────────────────────────────────────

    def is_running(self) -> bool:
        return self._process is not None

    async def execute(
        self,
        runbook_path: str,
        variables: Mapping[str, VariableValue] | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        options: ExecutionOptions | None = None,
    ) -> ExecutionOutcome:
        """Run the runbook and return its terminal outcome.

        Raises:
            ExecutionInProgressError: If this runner is supervising a
                process or has already been used.
        """
        if self._process is not None:
            raise ExecutionInProgressError().with_context(execution_id=self.execution_id)
        if self._used:
            raise ExecutionInProgressError(
                "Process runner has already been used"
            ).with_context(execution_id=self.execution_id)
        self._used = True

        variables = dict(variables or {})
        start_time = utcnow()
        argv = [*resolve_command(self._command), *self.build_args(runbook_path, variables, options)]
        env = self.build_environment(variables)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd,
                env=env,
            )
        except FileNotFoundError as exc:
            if self._cwd is not None and exc.filename == self._cwd:
                message = f"Failed to start runn: working directory not found: {self._cwd}"
            else:
                message = ToolNotFoundError(argv[0], cause=exc).message
            return self._spawn_failed(runbook_path, variables, start_time, message, exc)
        except OSError as exc:
            return self._spawn_failed(
                runbook_path, variables, start_time, f"Failed to start runn: {exc}", exc
            )

        self._process = process
        logger.info(
            "execution.started",
            execution_id=self.execution_id,
            runbook_path=runbook_path,
            pid=process.pid,
            timeout_ms=timeout_ms,
        )
        self._emit(RunnerEventType.STARTED, timestamp=start_time, runbook_path=runbook_path)

        timer = TerminationTimer(
            process,
            timeout_ms / 1000,
            self._kill_grace_ms / 1000,
            label=self.execution_id,
        )
        self._timer = timer
        timer.start()

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        try:
            # Completion waits for EOF on both pipes, so a descendant that
            # inherited them keeps the execution open until it exits
            await asyncio.gather(
                self._pump(process.stdout, stdout_parts, RunnerEventType.OUTPUT),
                self._pump(process.stderr, stderr_parts, RunnerEventType.ERROR),
            )
            returncode = await process.wait()
        finally:
            timer.cancel()
            if process.returncode is None:
                # Supervising task was cancelled; do not leave an orphan behind
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
            if self._process is process:
                self._process = None

        end_time = utcnow()
        stdout_text = "".join(stdout_parts)
        stderr_text = "".join(stderr_parts)

        if self._stopped:
            status = ExecutionStatus.FAILED
            error: str | None = STOPPED_BY_USER
        elif returncode == 0:
            status = ExecutionStatus.SUCCESS
            error = None
        else:
            status = ExecutionStatus.FAILED
            error = stderr_text
            if timer.expired:
                error += f"\nProcess terminated after exceeding timeout of {timeout_ms} ms"

        result = ExecutionResult(
            id=self.execution_id,
            runbook_id=compute_runbook_id(runbook_path),
            runbook_path=runbook_path,
            status=status,
            exit_code=returncode,
            start_time=start_time,
            end_time=end_time,
            duration=elapsed_ms(start_time, end_time),
            output=[line for line in stdout_text.split("\n") if line.strip()],
            error=error,
            variables=variables,
        )

        logger.info(
            "execution.completed",
            execution_id=self.execution_id,
            status=status.value,
            exit_code=returncode,
            duration_ms=result.duration,
            timed_out=timer.expired,
            stopped=self._stopped,
        )
        self._emit(RunnerEventType.COMPLETE, timestamp=end_time, result=result)
        return ExecutionOutcome(result=result, spawned=True)

    def stop(self) -> bool:
        """Send SIGTERM to the active process and emit ``stopped``.

        Does not wait for the process to exit. Returns False (and emits
        nothing) when no process is active.
        """
        process = self._process
        if process is None:
            return False

        if self._timer is not None:
            self._timer.cancel()
        try:
            process.terminate()
        except ProcessLookupError:
            pass
        self._process = None
        self._stopped = True
        logger.info("execution.stopped", execution_id=self.execution_id, pid=process.pid)
        self._emit(RunnerEventType.STOPPED)
        return True

    @staticmethod
    async def check_available(command: CommandSpec = "runn") -> bool:
        """Availability check for the external tool; never raises."""
        return await check_tool_available(command)

    # ── Internals ────────────────────────────────────────────────────

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        parts: list[str],
        event_type: RunnerEventType,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(_READ_CHUNK)
            if not data:
                break
            self._accept(decoder.decode(data), parts, event_type)
        self._accept(decoder.decode(b"", final=True), parts, event_type)

    def _accept(self, text: str, parts: list[str], event_type: RunnerEventType) -> None:
        if not text:
            return
        parts.append(text)
        logger.debug(
            "execution.stream",
            execution_id=self.execution_id,
            stream=event_type.value,
            size=len(text),
        )
        self._emit(event_type, chunk=text)

    def _spawn_failed(
        self,
        runbook_path: str,
        variables: dict[str, VariableValue],
        start_time: datetime,
        message: str,
        exc: Exception,
    ) -> ExecutionOutcome:
        end_time = utcnow()
        result = ExecutionResult(
            id=self.execution_id,
            runbook_id=compute_runbook_id(runbook_path),
            runbook_path=runbook_path,
            status=ExecutionStatus.FAILED,
            exit_code=-1,
            start_time=start_time,
            end_time=end_time,
            duration=elapsed_ms(start_time, end_time),
            output=[],
            error=message,
            variables=variables,
        )
        logger.warning(
            "execution.spawn_failed",
            execution_id=self.execution_id,
            runbook_path=runbook_path,
            error=message,
            cause=str(exc),
        )
        self._emit(RunnerEventType.COMPLETE, timestamp=end_time, result=result)
        return ExecutionOutcome(result=result, spawned=False)
