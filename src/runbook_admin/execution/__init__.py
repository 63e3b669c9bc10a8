"""Execution core: Process Runner, Execution Registry and their collaborators.

Example::

    registry = create_registry()
    execution_id = await registry.start_execution("runbooks/health.yml", {"host": "api"})
    result = registry.get_execution(execution_id)
"""

from runbook_admin.execution.command import check_tool_available, reset_command_cache
from runbook_admin.execution.environment import EnvironmentManager, EnvironmentVariable
from runbook_admin.execution.events import RunnerEvent, RunnerEventType
from runbook_admin.execution.models import (
    ClearResult,
    ExecutionOptions,
    ExecutionOutcome,
    ExecutionResult,
    ExecutionStatus,
)
from runbook_admin.execution.options import ExecutionOptionsManager
from runbook_admin.execution.registry import ExecutionRegistry, create_registry
from runbook_admin.execution.runner import STOPPED_BY_USER, ProcessRunner
from runbook_admin.execution.storage import DurabilityBridge, JsonHistoryStore
from runbook_admin.execution.termination import TerminationState, TerminationTimer

__all__ = [
    "check_tool_available",
    "reset_command_cache",
    "EnvironmentManager",
    "EnvironmentVariable",
    "RunnerEvent",
    "RunnerEventType",
    "ClearResult",
    "ExecutionOptions",
    "ExecutionOutcome",
    "ExecutionResult",
    "ExecutionStatus",
    "ExecutionOptionsManager",
    "ExecutionRegistry",
    "create_registry",
    "STOPPED_BY_USER",
    "ProcessRunner",
    "DurabilityBridge",
    "JsonHistoryStore",
    "TerminationState",
    "TerminationTimer",
]
