"""Core primitives shared by the execution layer and the CLI."""

from runbook_admin.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    ExecutionError,
    ExecutionInProgressError,
    InvalidTransitionError,
    RunbookAdminError,
    StorageError,
    ToolNotFoundError,
)
from runbook_admin.core.hashing import compute_runbook_id, generate_execution_id
from runbook_admin.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "ExecutionError",
    "ExecutionInProgressError",
    "InvalidTransitionError",
    "RunbookAdminError",
    "StorageError",
    "ToolNotFoundError",
    "compute_runbook_id",
    "generate_execution_id",
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
]
