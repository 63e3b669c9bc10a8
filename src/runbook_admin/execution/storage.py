"""History persistence — JSON snapshot store and the Registry's durability bridge.

Manifesto:
    History is a side channel, not the source of truth: the Registry's
    in-memory map is authoritative while the process lives, and the file
    only exists so a restart can show what ran before. Consequently
    every failure here is logged and swallowed; no caller of the
    Registry ever sees a storage error.

ARCHITECTURE
────────────
::

    ExecutionRegistry
          │  load() once / persist(snapshot) on every completion
          ▼
    DurabilityBridge      ─ async, best-effort, never raises, newest snapshot wins
          │  asyncio.to_thread
          ▼
    JsonHistoryStore      ─ whole-snapshot read / atomic write
          │
          ▼
    ~/.runbook-admin/history.json
        {"version": "1.0", "timestamp": "...", "executions": [...]}

    Writes go to a temp file in the same directory followed by
    ``os.replace``, so a crash mid-write never leaves a truncated file.
    A file that fails to parse is copied to
    ``history.json.backup.<epoch_ms>`` and treated as empty.

Tags:
    runbook-admin, execution, persistence, json, history

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import tempfile
import time
from collections.abc import Coroutine, Sequence
from pathlib import Path
from typing import Any, Protocol

from runbook_admin.core.errors import StorageError
from runbook_admin.core.logging import get_logger
from runbook_admin.execution.models import ExecutionResult, utcnow

logger = get_logger(__name__)

HISTORY_VERSION = "1.0"


class HistoryStore(Protocol):
    """Durability collaborator contract."""

    def load_execution_history(self) -> list[ExecutionResult]: ...

    def save_execution_history(self, executions: Sequence[ExecutionResult]) -> None: ...


class JsonHistoryStore:
    """Stores the full execution history as one JSON document.

    ``load_execution_history`` and ``save_execution_history`` are
    best-effort: they log and return instead of raising.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def load_execution_history(self) -> list[ExecutionResult]:
        if not self.path.exists():
            return []

        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.error("history.load_failed", path=str(self.path), error=str(exc))
            return []

        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            backup = self._backup_corrupt(content)
            logger.error(
                "history.corrupt",
                path=str(self.path),
                backup=str(backup) if backup else None,
                error=str(exc),
            )
            return []

        if not isinstance(data, dict) or data.get("version") != HISTORY_VERSION:
            logger.warning(
                "history.version_mismatch",
                path=str(self.path),
                found=data.get("version") if isinstance(data, dict) else None,
                expected=HISTORY_VERSION,
            )
            return []

        executions: list[ExecutionResult] = []
        for entry in data.get("executions", []):
            try:
                executions.append(ExecutionResult.from_dict(entry))
            except (KeyError, ValueError, TypeError) as exc:
                logger.warning(
                    "history.entry_skipped",
                    path=str(self.path),
                    entry_id=entry.get("id") if isinstance(entry, dict) else None,
                    error=str(exc),
                )
        return executions

    def save_execution_history(self, executions: Sequence[ExecutionResult]) -> None:
        try:
            self._write_snapshot([execution.to_dict() for execution in executions])
        except StorageError as exc:
            logger.error("history.save_failed", **exc.to_dict())

    def clear_history(self) -> None:
        self.save_execution_history([])

    def _write_snapshot(self, executions: list[dict[str, Any]]) -> None:
        document = {
            "version": HISTORY_VERSION,
            "timestamp": utcnow().isoformat(),
            "executions": executions,
        }
        temp_path: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=".history_temp_",
                suffix=".json",
                text=True,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.path)
            temp_path = None
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(
                f"Failed to write execution history: {exc}", cause=exc
            ).with_context(path=str(self.path), count=len(executions)) from exc
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.remove(temp_path)

        logger.debug("history.saved", path=str(self.path), count=len(executions))

    def _backup_corrupt(self, content: str) -> Path | None:
        backup = self.path.with_name(f"{self.path.name}.backup.{int(time.time() * 1000)}")
        try:
            shutil.copyfile(self.path, backup)
        except OSError:
            try:
                backup.write_text(content, encoding="utf-8")
            except OSError as exc:
                logger.error("history.backup_failed", path=str(backup), error=str(exc))
                return None
        return backup


class DurabilityBridge:
    """Async, never-raising adapter between the Registry and a HistoryStore."""

    def __init__(self, store: HistoryStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()
        self._generation = 0
        self._written = 0

    async def load(self) -> list[ExecutionResult]:
        try:
            executions = await asyncio.to_thread(self._store.load_execution_history)
        except Exception as exc:
            logger.error("history.load_failed", error=str(exc))
            return []
        logger.info("history.loaded", count=len(executions))
        return executions

    def persist(self, executions: Sequence[ExecutionResult]) -> Coroutine[Any, Any, None]:
        """Snapshot ``executions`` now and return the coroutine that writes it.

        The copy and its generation number are taken at call time, not when
        the coroutine first runs. Writes are serialized, and a snapshot older
        than the last one written is dropped, so the file always ends up
        holding the most recent call's view.
        """
        self._generation += 1
        snapshot = [ExecutionResult.from_dict(e.to_dict()) for e in executions]
        return self._write(self._generation, snapshot)

    async def _write(self, generation: int, snapshot: list[ExecutionResult]) -> None:
        async with self._lock:
            if generation <= self._written:
                logger.debug(
                    "history.persist_skipped", generation=generation, written=self._written
                )
                return
            self._written = generation
            try:
                await asyncio.to_thread(self._store.save_execution_history, snapshot)
            except Exception as exc:
                logger.error("history.persist_failed", error=str(exc), count=len(snapshot))
