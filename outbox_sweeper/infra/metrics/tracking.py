"""Helper functions for tracking sweeper metrics."""

from __future__ import annotations

from contextlib import contextmanager
import logging
import time
from typing import TYPE_CHECKING

from outbox_sweeper.infra.metrics import prometheus

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)


# ============================================================================
# Cycle Tracking
# ============================================================================


def track_cycle(outcome: str, duration: float, fetched: int = 0) -> None:
    """Track a finished sweep cycle.

    Args:
        outcome: empty, completed, degraded, store_unavailable or error
        duration: Cycle wall-clock time in seconds
        fetched: Pending messages the cycle fetched

    Example:
            track_cycle("completed", 0.42, fetched=17)
    """
    prometheus.sweep_cycles_total.labels(outcome=outcome).inc()
    prometheus.sweep_cycle_duration_seconds.observe(duration)
    if fetched:
        prometheus.messages_fetched_total.inc(fetched)


# ============================================================================
# Dispatch Tracking
# ============================================================================


def track_batch_sent(backend: str, size: int, duration: float) -> None:
    """Track one backend batch request, successful or not."""
    prometheus.batch_size.labels(backend=backend).observe(size)
    prometheus.send_duration_seconds.labels(backend=backend).observe(duration)


def track_delivered(backend: str, ages: Iterable[float]) -> None:
    """Track messages accepted by a backend.

    Args:
        backend: queue or topic
        ages: Age in seconds of each delivered message
    """
    count = 0
    for age in ages:
        prometheus.dispatch_age_seconds.labels(backend=backend, result="delivered").observe(age)
        count += 1
    if count:
        prometheus.messages_dispatched_total.labels(backend=backend).inc(count)


def track_failed(backend: str, reason: str, ages: Iterable[float]) -> None:
    """Track messages that stay pending after a send attempt.

    Args:
        backend: queue or topic
        reason: backend, transport or missing
        ages: Age in seconds of each failed message
    """
    count = 0
    for age in ages:
        prometheus.dispatch_age_seconds.labels(backend=backend, result="failed").observe(age)
        count += 1
    if count:
        prometheus.messages_failed_total.labels(backend=backend, reason=reason).inc(count)


def track_channel_skipped() -> None:
    """Track a channel left for the next process because shutdown began."""
    prometheus.channels_skipped_total.inc()


# ============================================================================
# Store Tracking
# ============================================================================


def track_store_error(operation: str) -> None:
    """Track a failed store operation (fetch_pending, mark_dispatched, commit, ...)."""
    prometheus.store_errors_total.labels(operation=operation).inc()


def track_mark_failure(count: int) -> None:
    """Track delivered messages whose dispatched mark was lost."""
    prometheus.mark_failures_total.inc(count)


@contextmanager
def track_store_query(operation: str) -> Iterator[None]:
    """Time a store operation.

    Example:
            with track_store_query("fetch_pending"):
            rows = await repo.fetch_pending(session, limit=100)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        prometheus.store_query_duration_seconds.labels(operation=operation).observe(
            time.perf_counter() - start
        )


def update_pending_status(pending: int, oldest_age_seconds: float | None) -> None:
    """Publish the current backlog size and the age of its oldest message."""
    prometheus.pending_messages.set(pending)
    prometheus.oldest_pending_age_seconds.set(oldest_age_seconds or 0.0)


# ============================================================================
# Scheduler Tracking
# ============================================================================


def update_scheduler_state(state: str, all_states: Iterable[str]) -> None:
    """Set the one-hot scheduler state gauge."""
    for candidate in all_states:
        prometheus.scheduler_state.labels(state=candidate).set(1 if candidate == state else 0)

    logger.debug("Scheduler state gauge updated", extra={"state": state})


def track_backoff(delay: float, consecutive_failures: int) -> None:
    """Track a store-failure backoff delay."""
    prometheus.scheduler_backoff_seconds.observe(delay)
    prometheus.scheduler_consecutive_store_failures.set(consecutive_failures)


def reset_consecutive_failures() -> None:
    prometheus.scheduler_consecutive_store_failures.set(0)
