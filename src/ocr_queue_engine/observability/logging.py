"""Structured logging for ocr-queue-engine.

Every trigger (HTTP request, CLI run, poll iteration) gets a short
``invocation_id`` bound through contextvars so all log lines emitted while
processing a job can be correlated. Job-level fields (``job_id``,
``document_id``, ``attempt``) are bound the same way once a job is claimed.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from structlog.contextvars import (
    bind_contextvars,
    bound_contextvars,
    clear_contextvars,
    merge_contextvars,
)
from structlog.processors import TimeStamper, add_log_level


if TYPE_CHECKING:
    from collections.abc import Iterator

    from structlog.typing import EventDict, WrappedLogger

__all__ = [
    "LogLevel",
    "clear_invocation_context",
    "configure_logging",
    "generate_invocation_id",
    "get_invocation_id",
    "get_logger",
    "job_log_context",
    "set_invocation_id",
]


class LogLevel(StrEnum):
    """Supported log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_stdlib_level(self) -> int:
        """Return the matching stdlib ``logging`` level constant."""
        level: int = getattr(logging, self.name)
        return level


_invocation_id_var: ContextVar[str | None] = ContextVar(
    "invocation_id",
    default=None,
)


def generate_invocation_id() -> str:
    """Return a new 8-character hex invocation ID."""
    return uuid.uuid4().hex[:8]


def get_invocation_id() -> str | None:
    """Return the invocation ID bound to the current context, if any."""
    return _invocation_id_var.get()


def set_invocation_id(invocation_id: str | None = None) -> str:
    """Bind an invocation ID to the current context.

    Args:
        invocation_id: ID to bind. A new one is generated when None.

    Returns:
        The bound invocation ID.
    """
    if invocation_id is None:
        invocation_id = generate_invocation_id()

    _invocation_id_var.set(invocation_id)
    bind_contextvars(invocation_id=invocation_id)
    return invocation_id


@contextmanager
def job_log_context(
    *,
    job_id: str,
    document_id: str | None = None,
    attempt: int | None = None,
) -> Iterator[None]:
    """Bind job fields to every log line emitted inside the block.

    Previous values are restored on exit, so nested blocks can add
    ``attempt`` once it is known.
    """
    fields: dict[str, object] = {"job_id": job_id}
    if document_id is not None:
        fields["document_id"] = document_id
    if attempt is not None:
        fields["attempt"] = attempt
    with bound_contextvars(**fields):
        yield


def clear_invocation_context() -> None:
    """Drop the invocation ID and any other bound contextvars."""
    _invocation_id_var.set(None)
    clear_contextvars()


def add_invocation_id(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Processor: ensure ``invocation_id`` is present when one is bound."""
    del logger, method_name
    if "invocation_id" not in event_dict:
        invocation_id = get_invocation_id()
        if invocation_id is not None:
            event_dict["invocation_id"] = invocation_id
    return event_dict


def _create_renderer(
    log_format: str | None,
    *,
    colors: bool,
) -> structlog.typing.Processor:
    """Pick the final renderer for the processor chain."""
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    if log_format == "console" or (log_format in {None, "logfmt"} and colors):
        return structlog.dev.ConsoleRenderer(
            colors=colors,
            exception_formatter=structlog.dev.plain_traceback,
        )
    return structlog.processors.LogfmtRenderer(
        key_order=["timestamp", "level", "event", "invocation_id", "job_id"],
        drop_missing=True,
        bool_as_flag=False,
    )


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    *,
    log_format: str | None = None,
    force_colors: bool | None = None,
) -> None:
    """Configure structlog and stdlib logging for the process.

    Args:
        level: Minimum log level, as enum or case-insensitive string.
        log_format: ``"logfmt"``, ``"json"`` or ``"console"``. Logfmt is
            rendered with colors when stderr is a TTY.
        force_colors: Force color output on/off instead of TTY detection.
    """
    if isinstance(level, str):
        level = LogLevel(level.lower())
    if log_format is not None:
        log_format = str(log_format).lower()

    if force_colors is not None:
        use_colors = force_colors
    else:
        use_colors = (
            sys.stderr is not None
            and hasattr(sys.stderr, "isatty")
            and sys.stderr.isatty()
        )

    processors: list[structlog.typing.Processor] = [
        merge_contextvars,
        add_invocation_id,
        add_log_level,
        TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
    processors.append(_create_renderer(log_format, colors=use_colors))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level.to_stdlib_level()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # asyncpg, httpx and uvicorn log through the stdlib
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level.to_stdlib_level(),
        force=True,
    )


def get_logger(
    name: str | None = None,
    **initial_context: object,
) -> structlog.BoundLogger:
    """Return a structlog logger, optionally with bound initial context.

    Example:
        >>> logger = get_logger(__name__, component="processor")
        >>> logger.info("job_claimed", job_id="9f2c")
    """
    log: structlog.BoundLogger = structlog.get_logger(name)
    if initial_context:
        log = log.bind(**initial_context)
    return log
