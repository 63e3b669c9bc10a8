"""
Test support utilities for runbook-admin tests.

Helpers that don't fit as pytest fixtures: an in-memory history store,
a scriptable runner double for registry tests, and a polling helper.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from datetime import timedelta

from runbook_admin.core.hashing import compute_runbook_id, generate_execution_id
from runbook_admin.execution.events import RunnerEvent, RunnerEventType
from runbook_admin.execution.models import (
    ExecutionOutcome,
    ExecutionResult,
    ExecutionStatus,
    elapsed_ms,
    utcnow,
)
from runbook_admin.execution.runner import STOPPED_BY_USER


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll ``predicate`` on the event loop until it is true.

    Raises:
        AssertionError: If ``timeout`` seconds pass first.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def make_result(
    execution_id: str | None = None,
    *,
    status: ExecutionStatus = ExecutionStatus.SUCCESS,
    runbook_path: str = "runbooks/health.yml",
    start_offset_s: float = 0.0,
    exit_code: int | None = None,
) -> ExecutionResult:
    """A terminal (or running) record with a start time offset from now."""
    start = utcnow() + timedelta(seconds=start_offset_s)
    end = start if status is ExecutionStatus.RUNNING else start + timedelta(milliseconds=250)
    if exit_code is None:
        exit_code = 1 if status is ExecutionStatus.FAILED else 0
    return ExecutionResult(
        id=execution_id or generate_execution_id(),
        runbook_id=compute_runbook_id(runbook_path),
        runbook_path=runbook_path,
        status=status,
        exit_code=exit_code,
        start_time=start,
        end_time=end,
        duration=elapsed_ms(start, end),
        output=[] if status is ExecutionStatus.RUNNING else ["ok"],
        error="boom" if status is ExecutionStatus.FAILED else None,
    )


class MemoryHistoryStore:
    """HistoryStore double that records every saved snapshot."""

    def __init__(self, initial: Sequence[ExecutionResult] = (), *, fail_saves: bool = False):
        self.initial = list(initial)
        self.fail_saves = fail_saves
        self.saves: list[list[ExecutionResult]] = []
        self.loads = 0

    def load_execution_history(self) -> list[ExecutionResult]:
        self.loads += 1
        return list(self.initial)

    def save_execution_history(self, executions: Sequence[ExecutionResult]) -> None:
        if self.fail_saves:
            raise OSError("disk full")
        self.saves.append(list(executions))

    @property
    def last_saved(self) -> list[ExecutionResult] | None:
        return self.saves[-1] if self.saves else None


class SlowHistoryStore(MemoryHistoryStore):
    """MemoryHistoryStore whose non-empty saves take ``delay`` seconds."""

    def __init__(self, initial: Sequence[ExecutionResult] = (), *, delay: float = 0.3):
        super().__init__(initial)
        self.delay = delay

    def save_execution_history(self, executions: Sequence[ExecutionResult]) -> None:
        if executions:
            time.sleep(self.delay)
        super().save_execution_history(executions)


class ScriptedRunner:
    """ProcessRunner double driven by the test.

    ``execute`` emits ``started`` and then blocks until the test calls
    :meth:`finish`; :meth:`emit` pushes arbitrary events in between.
    """

    def __init__(self, execution_id: str | None = None) -> None:
        self.execution_id = execution_id or generate_execution_id()
        self.listeners: list[Callable[[RunnerEvent], None]] = []
        self.calls: list[dict] = []
        self.spawned = False
        self.stopped = False
        self._done = asyncio.Event()
        self._result: ExecutionResult | None = None
        self._terminal = False

    def subscribe(self, listener: Callable[[RunnerEvent], None]) -> None:
        self.listeners.append(listener)

    def is_running(self) -> bool:
        return self.spawned and not self._terminal

    def emit(self, event_type: RunnerEventType, **kwargs) -> None:
        if self._terminal:
            return
        if event_type.is_terminal:
            self._terminal = True
        event = RunnerEvent(
            execution_id=self.execution_id,
            event_type=event_type,
            timestamp=kwargs.pop("timestamp", utcnow()),
            **kwargs,
        )
        for listener in list(self.listeners):
            listener(event)

    async def execute(self, runbook_path, variables=None, timeout_ms=60000, options=None):
        self.calls.append(
            {
                "runbook_path": runbook_path,
                "variables": dict(variables or {}),
                "timeout_ms": timeout_ms,
                "options": options,
            }
        )
        start = utcnow()
        self.spawned = True
        self.emit(RunnerEventType.STARTED, runbook_path=runbook_path)
        await self._done.wait()

        result = self._result or ExecutionResult(
            id=self.execution_id,
            runbook_id=compute_runbook_id(runbook_path),
            runbook_path=runbook_path,
            status=ExecutionStatus.FAILED,
            exit_code=-15,
            start_time=start,
            end_time=utcnow(),
            error=STOPPED_BY_USER,
            variables=dict(variables or {}),
        )
        self.emit(RunnerEventType.COMPLETE, result=result)
        return ExecutionOutcome(result=result, spawned=True)

    def finish(self, status: ExecutionStatus = ExecutionStatus.SUCCESS, *, exit_code: int = 0,
               output: Sequence[str] = ("done",), error: str | None = None) -> None:
        """Let ``execute`` return with a result of the given shape."""
        call = self.calls[-1]
        end = utcnow()
        self._result = ExecutionResult(
            id=self.execution_id,
            runbook_id=compute_runbook_id(call["runbook_path"]),
            runbook_path=call["runbook_path"],
            status=status,
            exit_code=exit_code,
            start_time=end - timedelta(milliseconds=100),
            end_time=end,
            duration=100,
            output=list(output),
            error=error,
            variables=call["variables"],
        )
        self._done.set()

    def stop(self) -> bool:
        if not self.is_running():
            return False
        self.stopped = True
        self.emit(RunnerEventType.STOPPED)
        self._done.set()
        return True
