"""Logging configuration setup.

Provides production-ready logging configuration using:
- dictConfig for root and third-party logger levels
- QueueHandler + QueueListener so the event loop never blocks on log I/O
- ContextInjectingFilter for cycle-scoped context fields
- JSONL output for machine parsing, or plain text for local runs
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import TYPE_CHECKING, Any

from outbox_sweeper.infra.logging.context import ContextInjectingFilter
from outbox_sweeper.infra.logging.formatters import JSONFormatter

if TYPE_CHECKING:
    from outbox_sweeper.core.settings.logs import LoggingSettings

_log_queue: Queue[logging.LogRecord] | None = None
_listener: QueueListener | None = None
_LOGGING_INITIALIZED = False
logger = logging.getLogger(__name__)

SERVICE_NAME = "outbox-sweeper"
TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO/DEBUG
NOISY_LOGGERS = {
    "botocore": "WARNING",
    "aiobotocore": "WARNING",
    "aioboto3": "WARNING",
    "urllib3": "WARNING",
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
}


def shutdown() -> None:
    """Stop the QueueListener, flushing pending records.

    Registered with atexit; safe to call more than once.
    """
    global _log_queue, _listener, _LOGGING_INITIALIZED

    if _listener is not None:
        # QueueListener.stop() drains the queue before joining its thread
        _listener.stop()
        _listener = None

    _log_queue = None
    _LOGGING_INITIALIZED = False


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **configure_kwargs: Any,
) -> None:
    """Ensure logging is configured once across entrypoints.

    Args:
        log_settings: Optional logging settings instance. If omitted, settings
            are loaded via get_logging_settings().
        force: Reconfigure logging even if it was already initialized.
        **configure_kwargs: Explicit overrides for configure_logging().
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    settings_obj = log_settings
    if settings_obj is None:
        from outbox_sweeper.core.settings import get_logging_settings

        settings_obj = get_logging_settings()

    log_config = {**settings_obj.to_logging_kwargs(), **configure_kwargs}
    configure_logging(**log_config)
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    file_path: str | Path | None = None,
    json_logs: bool = True,
    console_enabled: bool = True,
    include_context: bool = True,
    capture_warnings: bool = True,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
) -> None:
    """Configure logging with dictConfig and the QueueHandler pattern.

    All output handlers hang off a QueueListener thread; the root logger
    gets a single QueueHandler.

    Args:
        log_level: Root logger level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file_path: Path to a rotating log file. None disables file logging.
        json_logs: Emit JSON Lines instead of text.
        console_enabled: Log to stderr.
        include_context: Inject contextvars fields (cycle_id, ...) into records.
        capture_warnings: Forward Python warnings to logging.
        file_max_bytes: Maximum log file size before rotation.
        file_backup_count: Number of rotated log files to keep.

    Example:
        configure_logging(log_level="DEBUG", json_logs=False)
    """
    global _log_queue, _listener

    # Replace any listener from a previous configuration
    shutdown()

    if capture_warnings:
        logging.captureWarnings(True)

    file_path = Path(file_path) if file_path else None
    if file_path:
        file_path.parent.mkdir(parents=True, exist_ok=True)

    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "root": {"level": log_level.upper(), "handlers": []},
        "loggers": {name: {"level": level} for name, level in NOISY_LOGGERS.items()},
    }
    logging.config.dictConfig(logging_config)

    handlers: list[logging.Handler] = []
    formatter = _make_formatter(json_logs)

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if file_path:
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=file_max_bytes,
            backupCount=file_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    _log_queue = Queue()
    if handlers:
        _listener = QueueListener(_log_queue, *handlers, respect_handler_level=True)
        _listener.start()
        atexit.register(shutdown)

    queue_handler = QueueHandler(_log_queue)
    if include_context:
        # Handler-level filter: runs for records propagated from child loggers too
        queue_handler.addFilter(ContextInjectingFilter())
    logging.getLogger().addHandler(queue_handler)

    logger.debug(
        "Logging configured",
        extra={"root_level": log_level.upper(), "json_logs": json_logs, "file": str(file_path or "")},
    )


def _make_formatter(json_logs: bool) -> logging.Formatter:
    if json_logs:
        return JSONFormatter(
            fmt_keys={"level": "levelname", "logger": "name", "message": "message"},
            static={"service": SERVICE_NAME},
        )
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=TEXT_DATEFMT)


__all__ = ["configure_logging", "setup_logging", "shutdown"]
