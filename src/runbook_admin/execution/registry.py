"""Execution Registry — the directory of every known execution.

Manifesto:
    Callers (CLI, web routes) never talk to a Process Runner directly.
    They ask the Registry to start an execution, get an id back
    immediately, and poll by id. The Registry owns the authoritative
    copy of every :class:`ExecutionResult`, keeps the runner of each
    active execution, folds runner events into the records, and hands
    completed history to the durability bridge.

ARCHITECTURE
────────────
::

    ExecutionRegistry
      ├── _results : id → ExecutionResult   (all known executions)
      ├── _active  : id → ProcessRunner     (running only)
      │
      ├── .start_execution(path, vars, options) → id
      ├── .get_execution(id)            → ExecutionResult | None
      ├── .get_all_executions()         → newest first (awaits history load)
      ├── .stop_execution(id)           → bool
      ├── .is_running(id)               → bool (active map is authoritative)
      ├── .count_clearable()            → ClearResult preview
      ├── .clear_history()              → ClearResult
      └── .check_external_tool_available() → bool

    Runner events:
      output   → append "[<iso>] <chunk>"
      error    → append "[ERROR <iso>] <chunk>"
      complete → replace record, drop runner, persist snapshot
      stopped  → (record already failed by stop_execution) drop runner, persist

Concurrency:
    All mutations happen on the event loop thread inside event callbacks
    or plain method calls, so no lock is needed. One registry per process;
    construct it at startup and pass it to callers.

Related modules:
    runner.py  — one ProcessRunner per execution
    storage.py — DurabilityBridge / JsonHistoryStore

Tags:
    runbook-admin, execution, registry, asyncio, history

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from pathlib import Path

from runbook_admin.core.config import RunbookAdminSettings, get_settings
from runbook_admin.core.hashing import compute_runbook_id
from runbook_admin.core.logging import get_logger
from runbook_admin.execution.command import CommandSpec
from runbook_admin.execution.environment import EnvironmentManager, EnvironmentProvider
from runbook_admin.execution.events import RunnerEvent, RunnerEventType
from runbook_admin.execution.models import (
    ClearResult,
    ExecutionOptions,
    ExecutionOutcome,
    ExecutionResult,
    VariableValue,
)
from runbook_admin.execution.options import ExecutionOptionsManager
from runbook_admin.execution.runner import DEFAULT_KILL_GRACE_MS, STOPPED_BY_USER, ProcessRunner
from runbook_admin.execution.storage import DurabilityBridge, HistoryStore, JsonHistoryStore

logger = get_logger(__name__)

QUICK_RUN_TIMEOUT_MS = 30000

RunnerFactory = Callable[[], ProcessRunner]


class ExecutionRegistry:
    """Creates, tracks, persists and queries executions by id.

    Parameters
    ----------
    store : HistoryStore
        Durability collaborator for history snapshots.
    runner_factory : Callable[[], ProcessRunner] | None
        Builds a fresh runner per execution. Defaults to runners using
        ``command`` / ``cwd`` / ``environment`` / ``options``.
    default_timeout_ms : int
        Timeout applied when options carry none.
    """

    def __init__(
        self,
        store: HistoryStore,
        *,
        runner_factory: RunnerFactory | None = None,
        command: CommandSpec = "runn",
        cwd: str | Path | None = None,
        environment: EnvironmentProvider | None = None,
        options: ExecutionOptionsManager | None = None,
        default_timeout_ms: int = QUICK_RUN_TIMEOUT_MS,
        kill_grace_ms: int = DEFAULT_KILL_GRACE_MS,
    ) -> None:
        self._bridge = DurabilityBridge(store)
        self._command = command
        self._cwd = cwd
        self._environment = environment
        self._options = options or ExecutionOptionsManager()
        self._default_timeout_ms = default_timeout_ms
        self._kill_grace_ms = kill_grace_ms
        self._runner_factory = runner_factory or self._default_runner

        self._results: dict[str, ExecutionResult] = {}
        self._active: dict[str, ProcessRunner] = {}
        self._tasks: dict[str, asyncio.Task[ExecutionOutcome]] = {}
        self._persist_tasks: set[asyncio.Task[None]] = set()
        self._load_task: asyncio.Task[None] | None = None

    def _default_runner(self) -> ProcessRunner:
        return ProcessRunner(
            command=self._command,
            cwd=self._cwd,
            environment=self._environment,
            options_builder=self._options,
            kill_grace_ms=self._kill_grace_ms,
        )

    # ── History load ─────────────────────────────────────────────────

    def _start_loading(self) -> asyncio.Task[None]:
        if self._load_task is None:
            self._load_task = asyncio.create_task(self._load_history())
        return self._load_task

    async def _load_history(self) -> None:
        for execution in await self._bridge.load():
            # Executions started in this process win over stale history
            self._results.setdefault(execution.id, execution)

    async def ensure_loaded(self) -> None:
        """Load prior history once; later calls return immediately."""
        await self._start_loading()

    # ── Start ────────────────────────────────────────────────────────

    async def start_execution(
        self,
        runbook_path: str,
        variables: Mapping[str, VariableValue] | None = None,
        options: ExecutionOptions | None = None,
    ) -> str:
        """Spawn a runbook execution in the background and return its id.

        Does not wait for the process; poll :meth:`get_execution`.
        """
        self._start_loading()

        runner = self._runner_factory()
        execution_id = runner.execution_id
        variables = dict(variables or {})

        self._results[execution_id] = ExecutionResult.running(
            execution_id,
            compute_runbook_id(runbook_path),
            runbook_path,
            variables,
        )
        self._active[execution_id] = runner
        runner.subscribe(lambda event: self._on_runner_event(execution_id, event))

        timeout_ms = self._options.resolve_timeout_ms(options, self._default_timeout_ms)
        task = asyncio.create_task(
            runner.execute(runbook_path, variables, timeout_ms, options),
            name=f"execution-{execution_id}",
        )
        self._tasks[execution_id] = task
        task.add_done_callback(lambda t: self._on_task_done(execution_id, t))

        logger.info(
            "registry.execution_started",
            execution_id=execution_id,
            runbook_path=runbook_path,
            timeout_ms=timeout_ms,
        )
        return execution_id

    # ── Event handling ───────────────────────────────────────────────

    def _on_runner_event(self, execution_id: str, event: RunnerEvent) -> None:
        if event.event_type is RunnerEventType.STARTED:
            logger.debug("registry.runner_started", execution_id=execution_id)

        elif event.event_type in (RunnerEventType.OUTPUT, RunnerEventType.ERROR):
            record = self._results.get(execution_id)
            if record is None or record.is_terminal:
                return
            stamp = event.timestamp.isoformat()
            if event.event_type is RunnerEventType.ERROR:
                record.output.append(f"[ERROR {stamp}] {event.chunk}")
            else:
                record.output.append(f"[{stamp}] {event.chunk}")

        elif event.event_type is RunnerEventType.COMPLETE:
            if event.result is None:
                return
            current = self._results.get(execution_id)
            # A cleared record stays cleared; a stopped one stays stopped
            if current is not None and not current.is_terminal:
                self._results[execution_id] = event.result
            self._active.pop(execution_id, None)
            logger.info(
                "registry.execution_completed",
                execution_id=execution_id,
                status=event.result.status.value,
                duration_ms=event.result.duration,
            )
            self._schedule_persist()

        elif event.event_type is RunnerEventType.STOPPED:
            self._active.pop(execution_id, None)
            self._schedule_persist()

    def _on_task_done(self, execution_id: str, task: asyncio.Task[ExecutionOutcome]) -> None:
        self._tasks.pop(execution_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # Spawn and exit failures arrive as results; this is a bug path
            logger.error(
                "registry.execution_crashed",
                execution_id=execution_id,
                error=repr(exc),
            )
            self._active.pop(execution_id, None)
            record = self._results.get(execution_id)
            if record is not None and not record.is_terminal:
                record.mark_failed(f"Execution crashed: {exc}")
            self._schedule_persist()

    def _schedule_persist(self) -> None:
        snapshot = list(self._results.values())
        task = asyncio.create_task(self._bridge.persist(snapshot))
        self._persist_tasks.add(task)
        task.add_done_callback(self._persist_tasks.discard)

    # ── Queries ──────────────────────────────────────────────────────

    def get_execution(self, execution_id: str) -> ExecutionResult | None:
        """Current snapshot of one execution (does not wait for history load)."""
        return self._results.get(execution_id)

    async def get_all_executions(self) -> list[ExecutionResult]:
        """All known executions, newest ``start_time`` first."""
        await self.ensure_loaded()
        # sorted() is stable: equal start times keep insertion order
        return sorted(self._results.values(), key=lambda r: r.start_time, reverse=True)

    def is_running(self, execution_id: str) -> bool:
        return execution_id in self._active

    # ── Stop ─────────────────────────────────────────────────────────

    def stop_execution(self, execution_id: str) -> bool:
        """Stop an active execution; False if there is nothing to stop."""
        runner = self._active.pop(execution_id, None)
        if runner is None:
            return False

        record = self._results.get(execution_id)
        if record is not None and not record.is_terminal:
            record.mark_failed(STOPPED_BY_USER)
        # stop() emits ``stopped``; the handler persists the failed record
        if not runner.stop():
            # Not spawned yet: keep the supervising task from ever spawning
            task = self._tasks.get(execution_id)
            if task is not None:
                task.cancel()
            self._schedule_persist()

        logger.info("registry.execution_stopped", execution_id=execution_id)
        return True

    # ── Clear ────────────────────────────────────────────────────────

    def count_clearable(self) -> ClearResult:
        """What :meth:`clear_history` would clear and preserve right now."""
        preserved = sum(1 for execution_id in self._results if execution_id in self._active)
        return ClearResult(cleared=len(self._results) - preserved, preserved=preserved)

    async def clear_history(self) -> ClearResult:
        """Discard every non-running record and persist an empty history.

        Records of executions still active are kept in memory so they stay
        queryable; they are persisted again when they complete.
        """
        await self.ensure_loaded()
        counts = self.count_clearable()
        self._results = {
            execution_id: record
            for execution_id, record in self._results.items()
            if execution_id in self._active
        }
        await self._bridge.persist([])
        logger.info(
            "registry.history_cleared",
            cleared=counts.cleared,
            preserved=counts.preserved,
        )
        return counts

    # ── Availability / shutdown ──────────────────────────────────────

    async def check_external_tool_available(self) -> bool:
        return await ProcessRunner.check_available(self._command)

    async def wait_for(self, execution_id: str, timeout: float | None = None) -> ExecutionResult | None:
        """Wait until the execution's supervising task finishes (CLI, tests)."""
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        await self.flush()
        return self.get_execution(execution_id)

    async def flush(self) -> None:
        """Wait for pending history writes."""
        while self._persist_tasks:
            await asyncio.gather(*list(self._persist_tasks))

    async def shutdown(self) -> None:
        """Stop every active execution and flush history."""
        for execution_id in list(self._active):
            self.stop_execution(execution_id)
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        await self.flush()


def create_registry(settings: RunbookAdminSettings | None = None) -> ExecutionRegistry:
    """Build a registry wired from settings (JSON history, managed env, options)."""
    settings = settings or get_settings()
    return ExecutionRegistry(
        JsonHistoryStore(settings.history_file),
        command=settings.runn_command,
        cwd=settings.project_path,
        environment=EnvironmentManager(),
        options=ExecutionOptionsManager(),
        default_timeout_ms=settings.default_timeout_ms,
        kill_grace_ms=settings.kill_grace_ms,
    )
