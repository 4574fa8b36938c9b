"""Custom exception classes for the outbox sweeper."""

from __future__ import annotations

from typing import Any


class SweeperError(Exception):
    """Base sweeper exception.

    All custom exceptions should inherit from this class so callers can
    catch the whole family at the cycle boundary.

    Attributes:
        detail: Human-readable error message.
        code: Error code identifier for programmatic handling and metrics labels.
        extra: Additional context-specific information about the error.

    Example:
            raise SweeperError(
            "Outbox query failed",
            code="STORE_QUERY_FAILED",
            extra={"operation": "fetch_pending"},
        )
    """

    default_code = "SWEEPER_ERROR"

    def __init__(
        self,
        detail: str,
        code: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize sweeper exception.

        Args:
            detail: Human-readable error message.
            code: Error code, defaults to the class's ``default_code``.
            extra: Additional context about the error.
        """
        self.detail = detail
        self.code = code or self.default_code
        self.extra = extra or {}
        super().__init__(detail)


class ConfigurationError(SweeperError):
    """Raised when configuration cannot be loaded or is inconsistent.

    This is the only error kind that is fatal to the process, and only at
    startup.
    """

    default_code = "CONFIGURATION_ERROR"


class StoreUnavailableError(SweeperError):
    """Raised when the outbox store cannot be queried or updated.

    Transient. The scheduler reacts by entering its backoff state.

    Example:
            raise StoreUnavailableError(
            "Failed to fetch pending messages",
            extra={"operation": "fetch_pending", "error": str(exc)},
        )
    """

    default_code = "STORE_UNAVAILABLE"

    @property
    def operation(self) -> str:
        """Store operation that failed (fetch_pending, mark_dispatched, ...)."""
        return str(self.extra.get("operation", "unknown"))


class DispatchError(SweeperError):
    """Raised by a dispatch client when a whole batch could not be sent.

    Never escapes the dispatcher: it is converted into a failed outcome for
    every message in the batch.
    """

    default_code = "DISPATCH_FAILED"


class DispatchClientNotReadyError(DispatchError):
    """Raised when a dispatch client is used before ``startup()``."""

    default_code = "DISPATCH_CLIENT_NOT_READY"


class InvalidStateTransitionError(SweeperError):
    """Raised when the scheduler receives an event its current state cannot handle."""

    default_code = "INVALID_STATE_TRANSITION"


__all__ = [
    "ConfigurationError",
    "DispatchClientNotReadyError",
    "DispatchError",
    "InvalidStateTransitionError",
    "StoreUnavailableError",
    "SweeperError",
]
