"""CLI utilities for running async operations and formatting output."""

from outbox_sweeper.cli.utils.async_runner import coro
from outbox_sweeper.cli.utils.formatters import (
    error,
    header,
    info,
    print_mapping,
    success,
    warning,
)
from outbox_sweeper.cli.utils.validation import require_valid_config

__all__ = [
    "coro",
    "error",
    "header",
    "info",
    "print_mapping",
    "require_valid_config",
    "success",
    "warning",
]
