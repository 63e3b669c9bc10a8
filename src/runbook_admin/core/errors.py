"""
Structured error types for Runbook Admin.

Only programmer misuse escapes the execution core as an exception; every
process-level failure (missing tool, nonzero exit, timeout) is turned into
a terminal ``ExecutionResult`` instead. The types here cover the cases
that do raise, plus the storage and tool-resolution errors that are raised
internally and converted at the Registry/Runner boundary.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                    RunbookAdminError                          │
        │            (category, context, cause)                         │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  ExecutionError          StorageError        ConfigError      │
        │  (EXECUTION)             (STORAGE)           (CONFIG)         │
        │       │                                                       │
        │  ExecutionInProgressError                                     │
        │  InvalidTransitionError                                       │
        │  ToolNotFoundError                                            │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = ExecutionInProgressError()
    >>> error.category
    <ErrorCategory.EXECUTION: 'EXECUTION'>
    >>> error.with_context(execution_id="k3f9a0xz").context.execution_id
    'k3f9a0xz'

Tags:
    error-handling, exception-hierarchy, error-context, runbook-admin

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and logging."""

    EXECUTION = "EXECUTION"   # Process supervision, lifecycle misuse
    STORAGE = "STORAGE"       # History file read/write
    CONFIG = "CONFIG"         # Invalid settings
    INTERNAL = "INTERNAL"     # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Any key that is not a named field lands in ``metadata``.
    """

    execution_id: str | None = None
    runbook_path: str | None = None
    command: str | None = None
    path: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["execution_id", "runbook_path", "command", "path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class RunbookAdminError(Exception):
    """
    Base exception for all Runbook Admin errors.

    Subclasses set ``default_category``; callers may override it per
    instance. ``cause`` is chained as ``__cause__`` so tracebacks keep the
    original exception.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RunbookAdminError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StorageError("Failed to write").with_context(path=str(path))
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class ExecutionError(RunbookAdminError):
    """Error raised by the execution core."""

    default_category = ErrorCategory.EXECUTION


class ExecutionInProgressError(ExecutionError):
    """A Process Runner was asked to execute while already supervising a process.

    Runners are single-use; the Registry always creates a fresh one per
    execution, so this only fires on direct misuse.
    """

    def __init__(self, message: str = "Execution already in progress", **kwargs: Any):
        super().__init__(message, **kwargs)


class InvalidTransitionError(ExecutionError):
    """Raised when an execution status change is not allowed."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid ExecutionStatus transition: {current} → {target}")


class ToolNotFoundError(ExecutionError):
    """The external runbook tool could not be spawned because it is missing."""

    def __init__(self, command: str, cause: Exception | None = None):
        super().__init__(
            f"{command} command not found. Please install runn: "
            "go install github.com/k1LoW/runn/cmd/runn@latest",
            context=ErrorContext(command=command),
            cause=cause,
        )


# =============================================================================
# STORAGE / CONFIG ERRORS
# =============================================================================


class StorageError(RunbookAdminError):
    """History could not be read or written."""

    default_category = ErrorCategory.STORAGE


class ConfigError(RunbookAdminError):
    """A configuration value is invalid."""

    default_category = ErrorCategory.CONFIG


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "RunbookAdminError",
    "ExecutionError",
    "ExecutionInProgressError",
    "InvalidTransitionError",
    "ToolNotFoundError",
    "StorageError",
    "ConfigError",
]
