"""Structured logging infrastructure for cadence.

Provides structured logging using structlog with cadence-specific context
such as session_id, item_id, and component names. Supports console and
JSON output, with optional file output and rotation.

Example usage:
    from cadence.core.logging import get_logger, configure_logging, with_context

    # Configure once at startup
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("detector")

    # Log with auto-context
    logger.info("detector.busy", elapsed_seconds=3.0)

    # Correlate everything a session logs
    ctx = LogContext(session_id="item-17")
    with with_context(ctx):
        logger.info("runner.attempt_started")  # includes session_id
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Sensitive field patterns that should never be logged
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "credential",
    "cookie",
    "authorization",
})

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console", "both"]


@dataclass(frozen=True)
class LogContext:
    """Immutable context for correlating log entries of one retry session.

    Attributes:
        session_id: Identifier of the logical retry session (one per work item).
        item_id: Work item being processed, if any.
        component: Component name for the current operation.
        run_id: Unique identifier of the enclosing loop run.
    """

    session_id: str
    item_id: str | None = None
    component: str = "unknown"
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def with_item(self, item_id: str) -> LogContext:
        """Return a copy bound to a work item."""
        return replace(self, item_id=item_id)

    def with_component(self, component: str) -> LogContext:
        """Return a copy bound to another component."""
        return replace(self, component=component)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging (None values dropped)."""
        result: dict[str, Any] = {
            "session_id": self.session_id,
            "run_id": self.run_id,
        }
        if self.item_id is not None:
            result["item_id"] = self.item_id
        return result


# ContextVar keeps concurrent sessions isolated from each other
_current_context: ContextVar[LogContext | None] = ContextVar(
    "cadence_log_context", default=None
)


def get_current_context() -> LogContext | None:
    """Get the current LogContext if set."""
    return _current_context.get()


@contextmanager
def with_context(ctx: LogContext) -> Iterator[LogContext]:
    """Set a LogContext for the duration of a block.

    Args:
        ctx: The LogContext to use for the block.

    Yields:
        The LogContext that was set.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _sanitize_value(key: str, value: Any) -> Any:
    """Redact values whose key looks sensitive."""
    key_lower = key.lower()
    if any(pattern in key_lower for pattern in SENSITIVE_PATTERNS):
        return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Processor that redacts sensitive fields, including one level of nesting."""
    for key in list(event_dict.keys()):
        value = event_dict[key]
        if isinstance(value, dict):
            event_dict[key] = {k: _sanitize_value(k, v) for k, v in value.items()}
        else:
            event_dict[key] = _sanitize_value(key, value)
    return event_dict


def _add_timestamp(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Processor that adds an ISO8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Processor that merges the current LogContext (explicit keys win)."""
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            event_dict.setdefault(key, value)
    return event_dict


class CadenceLogger:
    """Component logger wrapping structlog.

    The underlying structlog logger is fetched lazily on every call so that
    loggers created at import time still honour a later configure_logging().
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> CadenceLogger:
        """Create a new logger with additional bound context."""
        new_logger = CadenceLogger.__new__(CadenceLogger)
        new_logger._component = self._component
        new_logger._context = {**self._context, **context}
        return new_logger

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log an exception with traceback. Call from an exception handler."""
        self._get_logger().exception(event, **kw)


def _build_processors(include_timestamps: bool) -> list[Processor]:
    """Shared chain; rendering happens per handler in ``_formatter``."""
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
        _add_context,
    ]
    if include_timestamps:
        processors.append(_add_timestamp)
    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ])
    return processors


def _formatter(renderer: Processor) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=[structlog.stdlib.add_log_level],
    )


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 50,
    backup_count: int = 5,
    include_timestamps: bool = True,
) -> None:
    """Configure cadence structured logging.

    Should be called once at application startup before any logging occurs.

    Args:
        level: Minimum log level to capture.
        format: "console" for human-readable stderr output, "json" for
            structured output (to file_path if given, else stdout), "both"
            for console on stderr plus JSON in file_path.
        file_path: Optional log file. Required if format="both".
        max_file_size_mb: Maximum log file size before rotation (MB).
        backup_count: Number of rotated log files to keep.
        include_timestamps: Whether to add ISO8601 timestamps.

    Raises:
        ValueError: If format="both" but file_path is not provided.
    """
    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    log_level = getattr(logging, level)
    handlers: list[logging.Handler] = []

    if format in ("console", "both"):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(
            _formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
        )
        handlers.append(console_handler)

    if format in ("json", "both"):
        json_handler: logging.Handler
        if file_path is not None:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            json_handler = RotatingFileHandler(
                file_path,
                maxBytes=max_file_size_mb * 1024 * 1024,
                backupCount=backup_count,
                encoding="utf-8",
            )
        else:
            json_handler = logging.StreamHandler(sys.stdout)
        json_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        handlers.append(json_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    # cache_logger_on_first_use=False so import-time loggers follow this config
    structlog.configure(
        processors=_build_processors(include_timestamps),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> CadenceLogger:
    """Get a cadence logger for a component.

    Args:
        component: The component name (e.g., "detector", "runner", "loop").
        **initial_context: Additional context to bind.
    """
    return CadenceLogger(component, **initial_context)


__all__ = [
    "CadenceLogger",
    "LogContext",
    "LogFormat",
    "LogLevel",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
