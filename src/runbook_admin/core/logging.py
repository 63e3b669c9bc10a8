"""
Runbook Admin Logging - structured logging for the execution core and CLI.

Manifesto:
    An execution orchestrator is only debuggable if every lifecycle step
    leaves a trace that can be correlated back to one execution. This
    module gives every component the same structlog configuration:

    - **Structured:** dotted event names plus key/value context
    - **Correlated:** execution_id / runbook_path bound through contextvars
    - **Flexible:** JSON for log shipping, colored console for terminals

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="runbook-admin")
              │
              ▼
        structlog processor chain:
          1. TimeStamper(iso)
          2. merge_contextvars
          3. add_logger_name
          4. add_log_level
          5. add_service_metadata
          6. elasticsearch_compatible   (JSON only)
          7. JSONRenderer | ConsoleRenderer

        logger = get_logger(__name__)
        logger.info("execution.completed", execution_id="k3f9a0xz", status="success")

Examples:
    >>> from runbook_admin.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.info("execution.started", execution_id="k3f9a0xz")

Tags:
    logging, structlog, observability, runbook-admin

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Store service name for metadata
_SERVICE_NAME = "runbook-admin"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Make field names Elasticsearch/ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")

    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")

    return event_dict


def resolve_json_format(log_format: str) -> bool | None:
    """Map a ``log_format`` setting (json/console/auto) to ``json_format``."""
    value = log_format.strip().lower()
    if value == "json":
        return True
    if value == "console":
        return False
    return None


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "runbook-admin",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        shared_processors.append(_elasticsearch_compatible)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=_stderr_logger,
        # stderr is looked up per logger so redirected streams are honored
        cache_logger_on_first_use=False,
    )

    logging.getLogger().setLevel(getattr(logging, level.upper()))


class _NamedPrintLogger(structlog.PrintLogger):
    """PrintLogger that carries a name for ``add_logger_name``."""

    def __init__(self, file: Any, name: str = "") -> None:
        super().__init__(file)
        self.name = name


def _stderr_logger(*args: Any) -> _NamedPrintLogger:
    return _NamedPrintLogger(sys.stderr, args[0] if args else "")


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__), rendered as the ``logger`` field
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs.

    Example:
        bind_context(execution_id="k3f9a0xz")
        logger.info("execution.started")  # Includes execution_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(execution_id="k3f9a0xz", runbook_path="api.yml"):
            logger.info("execution.started")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "resolve_json_format",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
