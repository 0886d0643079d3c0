"""
Shipwright Logging - Structured logging for deployment runs.

Every module logs through ``get_logger(__name__)`` and emits dotted event
names (``stage.started``, ``readiness.attempt``, ``image.pushed``) with
key/value fields. The CLI calls ``configure_logging()`` once at startup.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="shipwright")

            ↓
        structlog processor chain:
          1. TimeStamper (iso)
          2. merge_contextvars        run_id / build_id / stage from LogContext
          3. add_log_level
          4. add_service_metadata
          5. redact_sensitive          password / secret / token / credential
          6. JSONRenderer (or ConsoleRenderer for a tty)

Key Concepts:
    LogContext: Binds run-scoped fields for the duration of a ``with`` block,
        so every line a stage emits carries the run and build identifiers.
    Redaction: Any field whose key mentions a credential word is masked
        before rendering. Credential values also travel as ``SecretStr``,
        so they render masked even when logged under an innocent key.

Examples:
    >>> from shipwright.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True)
    >>> logger = get_logger(__name__)
    >>> logger.info("image.pushed", image="registry.example/petclinic:20240101120000")

Tags:
    logging, structlog, observability, shipwright
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Store service name for metadata
_SERVICE_NAME = "shipwright"

_SENSITIVE_WORDS = ("password", "secret", "token", "credential")
REDACTED = "**********"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(word in lowered for word in _SENSITIVE_WORDS)


def redact_sensitive(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask values whose key names a credential, including one level of nesting."""
    for key, value in list(event_dict.items()):
        if key == "event":
            continue
        if is_sensitive_key(key):
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: (REDACTED if is_sensitive_key(str(k)) else v) for k, v in value.items()
            }
    return event_dict


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    return structlog.PrintLogger(sys.stderr)


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "shipwright",
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

    # Auto-detect format if not specified
    if json_format is None:
        json_format = not sys.stderr.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
        redact_sensitive,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        # stdout is reserved for command output (--json summaries); resolve stderr per call
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
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
        with LogContext(run_id="3f9a0c1b2d4e", build_id="20240101120000"):
            logger.info("stage.started", stage="Build")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "is_sensitive_key",
    "redact_sensitive",
    "LogContext",
    "REDACTED",
]
