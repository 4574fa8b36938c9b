"""Structured logging: dictConfig, queue-based handlers, JSONL and log context.

Usage:
    from outbox_sweeper.infra.logging import setup_logging, log_context

    setup_logging()
    with log_context(cycle_id="c-1"):
        logger.info("Sweep started")
"""

from outbox_sweeper.infra.logging.config import configure_logging, setup_logging, shutdown
from outbox_sweeper.infra.logging.context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    log_context,
    set_log_context,
)
from outbox_sweeper.infra.logging.formatters import JSONFormatter

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "clear_log_context",
    "configure_logging",
    "get_log_context",
    "log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
