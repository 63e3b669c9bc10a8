"""Execution domain models.

Defines the data structures shared by the Process Runner, the Execution
Registry and the history store:

- ExecutionStatus: running → success | failed, exactly once
- ExecutionResult: the record of one execution attempt
- ExecutionOptions: extra command-line flags and a timeout override
- ExecutionOutcome: what ``ProcessRunner.execute`` returns on every path
- ClearResult: counts reported by ``ExecutionRegistry.clear_history``

``ExecutionResult.to_dict`` / ``from_dict`` use the camelCase keys of the
persisted history file (``runbookId``, ``startTime``, ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from runbook_admin.core.errors import InvalidTransitionError

VariableValue = str | int | float | bool


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Milliseconds between two datetimes, never negative."""
    return max(0, int((end - start).total_seconds() * 1000))


class ExecutionStatus(str, Enum):
    """Status of one execution.

    Valid transition graph::

        RUNNING → SUCCESS | FAILED
        SUCCESS → (terminal)
        FAILED  → (terminal)
    """

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


EXECUTION_VALID_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.RUNNING: frozenset({
        ExecutionStatus.SUCCESS,
        ExecutionStatus.FAILED,
    }),
    ExecutionStatus.SUCCESS: frozenset(),  # terminal
    ExecutionStatus.FAILED: frozenset(),  # terminal
}


def validate_execution_transition(
    current: ExecutionStatus,
    target: ExecutionStatus,
) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_execution_transition(ExecutionStatus.RUNNING, ExecutionStatus.SUCCESS)
        >>> validate_execution_transition(ExecutionStatus.FAILED, ExecutionStatus.RUNNING)
        InvalidTransitionError: Invalid ExecutionStatus transition: failed → running
    """
    allowed = EXECUTION_VALID_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidTransitionError(current.value, target.value)


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        # History written by JavaScript clients ends in "Z"
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class ExecutionResult:
    """Record of one execution attempt.

    Created by the Registry as a ``running`` placeholder, appended to while
    output streams in, then replaced wholesale by the runner's terminal
    result. ``end_time`` equals ``start_time`` and ``duration`` is 0 until
    the terminal transition.
    """

    id: str
    runbook_id: str
    runbook_path: str
    status: ExecutionStatus
    exit_code: int
    start_time: datetime
    end_time: datetime
    duration: int = 0
    """Milliseconds between start_time and end_time"""

    output: list[str] = field(default_factory=list)
    error: str | None = None
    variables: dict[str, VariableValue] = field(default_factory=dict)

    @classmethod
    def running(
        cls,
        execution_id: str,
        runbook_id: str,
        runbook_path: str,
        variables: dict[str, VariableValue],
        start_time: datetime | None = None,
    ) -> ExecutionResult:
        """Initial placeholder record for a freshly started execution."""
        now = start_time or utcnow()
        return cls(
            id=execution_id,
            runbook_id=runbook_id,
            runbook_path=runbook_path,
            status=ExecutionStatus.RUNNING,
            exit_code=0,
            start_time=now,
            end_time=now,
            duration=0,
            output=[],
            variables=dict(variables),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def mark_failed(
        self,
        error: str,
        end_time: datetime | None = None,
        exit_code: int = -1,
    ) -> None:
        """Force a running record to ``failed``, recomputing end time and duration."""
        validate_execution_transition(self.status, ExecutionStatus.FAILED)
        self.status = ExecutionStatus.FAILED
        self.exit_code = exit_code
        self.error = error
        self.end_time = end_time or utcnow()
        self.duration = elapsed_ms(self.start_time, self.end_time)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted (camelCase) JSON shape."""
        data: dict[str, Any] = {
            "id": self.id,
            "runbookId": self.runbook_id,
            "runbookPath": self.runbook_path,
            "status": self.status.value,
            "exitCode": self.exit_code,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "duration": self.duration,
            "output": list(self.output),
            "variables": dict(self.variables),
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionResult:
        """Inverse of :meth:`to_dict`.

        Raises:
            KeyError / ValueError: If a required field is missing or malformed.
        """
        return cls(
            id=str(data["id"]),
            runbook_id=str(data["runbookId"]),
            runbook_path=str(data["runbookPath"]),
            status=ExecutionStatus(data["status"]),
            exit_code=int(data.get("exitCode", 0)),
            start_time=_parse_time(data["startTime"]),
            end_time=_parse_time(data.get("endTime", data["startTime"])),
            duration=int(data.get("duration", 0)),
            output=[str(line) for line in data.get("output", [])],
            error=data.get("error"),
            variables=dict(data.get("variables", {})),
        )


@dataclass
class ExecutionOptions:
    """Caller-supplied execution options.

    ``args`` are appended verbatim after the ``--var`` flags; ``timeout_ms``
    overrides the Registry's default timeout for this execution.
    """

    args: list[str] = field(default_factory=list)
    timeout_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"args": list(self.args)}
        if self.timeout_ms is not None:
            data["timeoutMs"] = self.timeout_ms
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionOptions:
        timeout = data.get("timeoutMs")
        return cls(
            args=[str(arg) for arg in data.get("args", [])],
            timeout_ms=int(timeout) if timeout is not None else None,
        )


@dataclass(frozen=True)
class ExecutionOutcome:
    """Terminal outcome of ``ProcessRunner.execute``.

    Both arms carry a full :class:`ExecutionResult`. ``spawned`` is False
    when the process could not be started at all (missing tool, permission
    denied), True for every run that reached an exit code or was stopped.
    """

    result: ExecutionResult
    spawned: bool = True

    @property
    def ok(self) -> bool:
        return self.spawned and self.result.status is ExecutionStatus.SUCCESS


@dataclass(frozen=True)
class ClearResult:
    """Counts reported by a history clear.

    ``cleared`` terminal records were discarded; ``preserved`` running
    records were kept.
    """

    cleared: int
    preserved: int
