"""Execution-options collaborator — options to extra command-line flags."""

from __future__ import annotations

from typing import Protocol

from runbook_admin.core.logging import get_logger
from runbook_admin.execution.models import ExecutionOptions

logger = get_logger(__name__)


class CommandArgsBuilder(Protocol):
    """What the Process Runner needs from an options collaborator."""

    def build_command_args(self, options: ExecutionOptions | None = None) -> list[str]: ...


class ExecutionOptionsManager:
    """Holds the default execution options and turns options into flags."""

    def __init__(self, default_options: ExecutionOptions | None = None) -> None:
        self._default = default_options or ExecutionOptions()

    def get_default_options(self) -> ExecutionOptions:
        return ExecutionOptions(
            args=list(self._default.args),
            timeout_ms=self._default.timeout_ms,
        )

    def set_default_options(self, options: ExecutionOptions) -> None:
        self._default = options
        logger.info("options.default_updated", args=options.args, timeout_ms=options.timeout_ms)

    def build_command_args(self, options: ExecutionOptions | None = None) -> list[str]:
        """Flags appended after the ``--var`` pairs, in the given order."""
        if options is None:
            return []
        return list(options.args)

    def resolve_timeout_ms(self, options: ExecutionOptions | None, default_ms: int) -> int:
        """Timeout for one execution: explicit option, then default options, then ``default_ms``."""
        if options is not None and options.timeout_ms is not None:
            return options.timeout_ms
        if self._default.timeout_ms is not None:
            return self._default.timeout_ms
        return default_ms
