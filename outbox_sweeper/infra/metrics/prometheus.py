"""Prometheus metrics for the outbox sweeper."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Custom registry so tests and embedding processes get a clean namespace
REGISTRY = CollectorRegistry()

# Covers store round-trips and backend sends from 5ms to 30s
DEFAULT_LATENCY_BUCKETS = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
)

# Pending-message age buckets (1s to 1 day)
MESSAGE_AGE_BUCKETS = (1, 5, 15, 60, 300, 900, 3600, 21600, 86400)

# Batch size buckets up to the AWS batch limit
BATCH_SIZE_BUCKETS = (1, 2, 3, 5, 8, 10)

# ──────────────────────────────────────────────────────────────
# Sweep cycles
# ──────────────────────────────────────────────────────────────

sweep_cycles_total = Counter(
    "outbox_sweep_cycles_total",
    "Total sweep cycles by outcome. "
    "outcome: empty, completed, degraded (some sends or marks failed), "
    "store_unavailable, error.",
    ["outcome"],
    registry=REGISTRY,
)

sweep_cycle_duration_seconds = Histogram(
    "outbox_sweep_cycle_duration_seconds",
    "Wall-clock duration of one sweep cycle (fetch, dispatch, mark, commit).",
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=REGISTRY,
)

messages_fetched_total = Counter(
    "outbox_messages_fetched_total",
    "Pending messages returned by the store across all cycles.",
    registry=REGISTRY,
)

# ──────────────────────────────────────────────────────────────
# Dispatch
# ──────────────────────────────────────────────────────────────

messages_dispatched_total = Counter(
    "outbox_messages_dispatched_total",
    "Messages accepted by a backend, by backend kind (queue, topic).",
    ["backend"],
    registry=REGISTRY,
)

messages_failed_total = Counter(
    "outbox_messages_failed_total",
    "Messages a backend did not accept; they stay pending and are retried. "
    "reason: backend (rejected entry), transport (whole batch failed), missing (no outcome).",
    ["backend", "reason"],
    registry=REGISTRY,
)

batch_size = Histogram(
    "outbox_batch_size",
    "Number of messages per backend batch request.",
    ["backend"],
    buckets=BATCH_SIZE_BUCKETS,
    registry=REGISTRY,
)

send_duration_seconds = Histogram(
    "outbox_send_duration_seconds",
    "Duration of one backend batch request.",
    ["backend"],
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=REGISTRY,
)

dispatch_age_seconds = Histogram(
    "outbox_dispatch_age_seconds",
    "Age of messages (since placed in the outbox) when dispatched or failed.",
    ["backend", "result"],
    buckets=MESSAGE_AGE_BUCKETS,
    registry=REGISTRY,
)

channels_skipped_total = Counter(
    "outbox_channels_skipped_total",
    "Channels not started because shutdown was requested mid-cycle.",
    registry=REGISTRY,
)

# ──────────────────────────────────────────────────────────────
# Store
# ──────────────────────────────────────────────────────────────

store_errors_total = Counter(
    "outbox_store_errors_total",
    "Store operations that failed, by operation.",
    ["operation"],
    registry=REGISTRY,
)

mark_failures_total = Counter(
    "outbox_mark_failures_total",
    "Delivered messages whose dispatched mark could not be written; they will be re-sent.",
    registry=REGISTRY,
)

store_query_duration_seconds = Histogram(
    "outbox_store_query_duration_seconds",
    "Duration of store operations.",
    ["operation"],
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=REGISTRY,
)

pending_messages = Gauge(
    "outbox_pending_messages",
    "Pending messages in the outbox at the last status refresh.",
    registry=REGISTRY,
)

oldest_pending_age_seconds = Gauge(
    "outbox_oldest_pending_age_seconds",
    "Age of the oldest pending message at the last status refresh (0 when none).",
    registry=REGISTRY,
)

# ──────────────────────────────────────────────────────────────
# Scheduler
# ──────────────────────────────────────────────────────────────

scheduler_state = Gauge(
    "outbox_scheduler_state",
    "1 for the scheduler's current state, 0 for the others.",
    ["state"],
    registry=REGISTRY,
)

scheduler_consecutive_store_failures = Gauge(
    "outbox_scheduler_consecutive_store_failures",
    "Consecutive cycles that ended in store backoff.",
    registry=REGISTRY,
)

scheduler_backoff_seconds = Histogram(
    "outbox_scheduler_backoff_seconds",
    "Backoff delays applied after store failures.",
    buckets=(0.5, 1, 2, 4, 8, 16, 32, 60, 120, 300),
    registry=REGISTRY,
)

# ──────────────────────────────────────────────────────────────
# Database pool
# ──────────────────────────────────────────────────────────────

database_connections_active = Gauge(
    "outbox_database_connections_active",
    "Open database connections in the pool.",
    registry=REGISTRY,
)

database_pool_checkedout = Gauge(
    "outbox_database_pool_checkedout",
    "Connections currently checked out of the pool.",
    registry=REGISTRY,
)

database_pool_invalidations_total = Counter(
    "outbox_database_pool_invalidations_total",
    "Connections invalidated, by reason (error, explicit).",
    ["reason"],
    registry=REGISTRY,
)
