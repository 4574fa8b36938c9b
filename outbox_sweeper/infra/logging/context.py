"""Context management for structured logging.

Fields set with :func:`set_log_context` are copied onto every log record
emitted from the same asyncio task, so a sweep cycle only has to call
``set_log_context(cycle_id=...)`` once for all of its logs to carry it.
Each task gets its own copy of the context.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
import logging
from typing import Any

from opentelemetry import trace

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Add fields to the logging context of the current task.

    Example:
        ```python
        set_log_context(cycle_id="c-17")
        logger.info("Sweep started")  # record carries cycle_id
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Drop every field from the current logging context."""
    _log_context.set({})


def remove_from_log_context(*keys: str) -> None:
    """Remove specific keys from the logging context."""
    current = _log_context.get().copy()
    for key in keys:
        current.pop(key, None)
    _log_context.set(current)


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Scope logging context fields to a block.

    The previous context is restored on exit, even on error.

    Example:
        ```python
        with log_context(cycle_id=cycle_id):
            await sweeper.sweep_once()
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    token = _log_context.set(current)
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextInjectingFilter(logging.Filter):
    """Copy the contextvars log context onto each LogRecord.

    Attached to the queue handler so it runs in the emitting task, before
    the record crosses to the listener thread.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            # Explicit extra= fields win over context
            if not hasattr(record, key):
                setattr(record, key, value)

        # Listener thread has no active span; capture it here
        span = trace.get_current_span()
        if span.get_span_context().is_valid and not hasattr(record, "trace_id"):
            ctx = span.get_span_context()
            record.trace_id = format(ctx.trace_id, "032x")
            record.span_id = format(ctx.span_id, "016x")
        return True


__all__ = [
    "ContextInjectingFilter",
    "clear_log_context",
    "get_log_context",
    "log_context",
    "remove_from_log_context",
    "set_log_context",
]
