"""Two-stage termination timer — graceful signal, then forceful kill.

Manifesto:
    A runbook that hangs must not hold its execution open forever. When
    the timeout elapses the process gets SIGTERM; if it is still alive
    after the grace window it gets SIGKILL. Both deadlines belong to one
    task, so cancelling the timer on process exit removes both at once
    and a late SIGKILL can never hit a process that has already been
    reaped (or a recycled pid).

ARCHITECTURE
────────────
::

    TerminationTimer(process, timeout_seconds=30, grace_seconds=5)

      ARMED ──timeout──▶ TERMINATING ──grace──▶ KILLED
        │                    │
        └──── cancel() ──────┴──────────────▶ CANCELLED

    Signals are only sent while ``process.returncode is None``.

Related modules:
    runner.py — arms the timer after spawn, cancels it on exit or stop

Tags:
    runbook-admin, execution, timeout, signals, subprocess
"""

from __future__ import annotations

import asyncio
from enum import Enum

from runbook_admin.core.logging import get_logger

logger = get_logger(__name__)


class TerminationState(str, Enum):
    ARMED = "armed"
    TERMINATING = "terminating"
    KILLED = "killed"
    CANCELLED = "cancelled"


class TerminationTimer:
    """Escalating timeout for one ``asyncio.subprocess.Process``.

    Parameters
    ----------
    process : asyncio.subprocess.Process
        The supervised process.
    timeout_seconds : float
        Time from :meth:`start` until the graceful signal.
    grace_seconds : float
        Time between the graceful and the forceful signal.
    label : str
        Identifier used in log events (the execution id).
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        timeout_seconds: float,
        grace_seconds: float = 5.0,
        *,
        label: str = "",
    ) -> None:
        self._process = process
        self._timeout = timeout_seconds
        self._grace = grace_seconds
        self._label = label
        self._task: asyncio.Task[None] | None = None
        self.state = TerminationState.ARMED
        self.expired = False

    def start(self) -> None:
        """Schedule the deadlines on the running loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    def cancel(self) -> None:
        """Disarm both deadlines. Safe to call repeatedly."""
        if self.state in (TerminationState.ARMED, TerminationState.TERMINATING):
            self.state = TerminationState.CANCELLED
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def active(self) -> bool:
        return self.state in (TerminationState.ARMED, TerminationState.TERMINATING)

    async def _run(self) -> None:
        await asyncio.sleep(self._timeout)
        if self.state is not TerminationState.ARMED or not self._alive():
            return
        self.expired = True
        self.state = TerminationState.TERMINATING
        logger.warning(
            "execution.timeout",
            execution_id=self._label,
            timeout_seconds=self._timeout,
            action="terminate",
        )
        self._send(self._process.terminate)

        await asyncio.sleep(self._grace)
        if self.state is not TerminationState.TERMINATING or not self._alive():
            return
        self.state = TerminationState.KILLED
        logger.warning(
            "execution.timeout",
            execution_id=self._label,
            grace_seconds=self._grace,
            action="kill",
        )
        self._send(self._process.kill)

    def _alive(self) -> bool:
        return self._process.returncode is None

    def _send(self, signal_fn) -> None:
        try:
            signal_fn()
        except ProcessLookupError:
            pass  # Process already gone
