"""Observability module (structured logging)."""

from __future__ import annotations

from ocr_queue_engine.observability.logging import (
    LogLevel,
    clear_invocation_context,
    configure_logging,
    generate_invocation_id,
    get_invocation_id,
    get_logger,
    job_log_context,
    set_invocation_id,
)


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
