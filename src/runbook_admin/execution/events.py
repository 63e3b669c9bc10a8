"""Runner Events — lifecycle notifications from one Process Runner.

WHY
───
The Registry needs to observe a running process (streamed output, final
result) without polling it. The runner publishes typed events to its
listeners synchronously on the event loop, so listeners see them in the
order they happened.

ARCHITECTURE
────────────
::

    RunnerEvent
      ├── execution_id ─ which execution
      ├── event_type   ─ started / output / error / complete / stopped
      ├── timestamp    ─ when
      ├── chunk        ─ text (output / error only)
      └── result       ─ final ExecutionResult (complete only)

    Per execution:  started → (output | error)* → complete | stopped
    Nothing is delivered after the terminal event.

Related modules:
    runner.py   — emits events
    registry.py — consumes events
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from runbook_admin.execution.models import ExecutionResult


class RunnerEventType(str, Enum):
    STARTED = "started"
    OUTPUT = "output"
    ERROR = "error"
    """A chunk of standard-error output; not the terminal failure signal."""
    COMPLETE = "complete"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (RunnerEventType.COMPLETE, RunnerEventType.STOPPED)


@dataclass(frozen=True)
class RunnerEvent:
    """One lifecycle notification from a Process Runner."""

    execution_id: str
    event_type: RunnerEventType
    timestamp: datetime
    runbook_path: str | None = None
    chunk: str | None = None
    result: ExecutionResult | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for logging."""
        data: dict[str, Any] = {
            "execution_id": self.execution_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.runbook_path is not None:
            data["runbook_path"] = self.runbook_path
        if self.chunk is not None:
            data["chunk"] = self.chunk
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data


RunnerListener = Callable[[RunnerEvent], None]
"""Callback invoked synchronously for each event."""
