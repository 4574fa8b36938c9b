"""Per-channel delivery of batches and write-back of delivered messages.

Distinct channels are dispatched concurrently, bounded by a semaphore. The
batches of one channel are sent and marked one after another, in fetch
order. Send failures of any kind become failed outcomes; the affected
messages stay pending and are picked up by a later cycle.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import time
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.trace import Link, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from outbox_sweeper.core.database.base import utcnow
from outbox_sweeper.core.exceptions import StoreUnavailableError
from outbox_sweeper.infra.messaging.protocol import DeliveryOutcome
from outbox_sweeper.infra.metrics.tracking import (
    track_batch_sent,
    track_channel_skipped,
    track_delivered,
    track_failed,
    track_mark_failure,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Collection, Mapping, Sequence

    from outbox_sweeper.infra.messaging.protocol import DispatchClient
    from outbox_sweeper.infra.messaging.routing import ChannelKind
    from outbox_sweeper.infra.outbox.models import OutboxMessage
    from outbox_sweeper.sweeper.batching import ChannelBatch

    MarkDispatched = Callable[[Collection[str]], Awaitable[int]]

logger = logging.getLogger(__name__)

_propagator = TraceContextTextMapPropagator()

# Failure reasons used in metrics
REASON_BACKEND = "backend"
REASON_TRANSPORT = "transport"
REASON_MISSING = "missing"

MESSAGING_SYSTEMS = {"queue": "aws_sqs", "topic": "aws_sns"}


def get_dispatch_tracer() -> trace.Tracer:
    """Tracer for batch send spans (no-op unless an SDK is installed)."""
    return trace.get_tracer("outbox_sweeper.dispatch")


def trace_links(messages: Sequence[OutboxMessage]) -> list[Link]:
    """Span links to the traces that produced the messages.

    Messages without a valid W3C traceparent are skipped.
    """
    links: list[Link] = []
    for message in messages:
        if not message.trace_parent:
            continue
        ctx = _propagator.extract({"traceparent": message.trace_parent})
        span_context = trace.get_current_span(ctx).get_span_context()
        if span_context.is_valid:
            links.append(Link(span_context, {"outbox.message_id": message.message_id}))
    return links


@dataclass
class DispatchSummary:
    """Counters for one dispatch run.

    Attributes:
        batches: Batches attempted
        delivered: Messages the backends accepted
        failed: Messages left pending after a send attempt
        marked: Rows updated to dispatched
        mark_failures: Delivered messages whose mark was lost (will be re-sent)
        skipped_channels: Channels not started because shutdown was requested
        failures: Failed outcomes, for reporting
    """

    batches: int = 0
    delivered: int = 0
    failed: int = 0
    marked: int = 0
    mark_failures: int = 0
    skipped_channels: int = 0
    failures: list[DeliveryOutcome] = field(default_factory=list)


class Dispatcher:
    """Sends channel batches through the client registered for their kind.

    Args:
        clients: Dispatch client per backend kind
        max_concurrency: Maximum number of channels in flight at once
    """

    def __init__(
        self,
        clients: Mapping[ChannelKind, DispatchClient],
        *,
        max_concurrency: int = 4,
        tracer: trace.Tracer | None = None,
    ) -> None:
        if max_concurrency < 1:
            msg = "max_concurrency must be at least 1"
            raise ValueError(msg)
        self._clients = dict(clients)
        self._max_concurrency = max_concurrency
        self._tracer = tracer or get_dispatch_tracer()

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    async def dispatch(
        self,
        batches: Sequence[ChannelBatch],
        mark_dispatched: MarkDispatched,
        should_continue: Callable[[], bool] | None = None,
    ) -> DispatchSummary:
        """Deliver every batch and mark the delivered messages.

        Args:
            batches: Batches from ``batch_messages``
            mark_dispatched: Coroutine marking message ids dispatched
            should_continue: Checked before a channel starts; when it returns
                False the channel is skipped and its messages stay pending

        Returns:
            Counters for the run
        """
        summary = DispatchSummary()
        channels: dict[str, list[ChannelBatch]] = {}
        for batch in batches:
            channels.setdefault(batch.channel_address, []).append(batch)

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run_channel(channel_batches: list[ChannelBatch]) -> None:
            async with semaphore:
                if should_continue is not None and not should_continue():
                    summary.skipped_channels += 1
                    track_channel_skipped()
                    logger.info(
                        "Shutdown requested, leaving channel for a later cycle",
                        extra={
                            "channel_address": channel_batches[0].channel_address,
                            "messages": sum(len(b) for b in channel_batches),
                        },
                    )
                    return
                for batch in channel_batches:
                    await self._dispatch_batch(batch, mark_dispatched, summary)

        results = await asyncio.gather(
            *(run_channel(channel_batches) for channel_batches in channels.values()),
            return_exceptions=True,
        )
        # Every channel has settled; surface the first unexpected error
        for result in results:
            if isinstance(result, BaseException):
                raise result

        return summary

    async def _dispatch_batch(
        self,
        batch: ChannelBatch,
        mark_dispatched: MarkDispatched,
        summary: DispatchSummary,
    ) -> None:
        summary.batches += 1
        kind = str(batch.kind)

        with self._tracer.start_as_current_span(
            f"outbox.dispatch {kind}",
            kind=trace.SpanKind.PRODUCER,
            links=trace_links(batch.messages),
        ) as span:
            span.set_attribute("messaging.system", MESSAGING_SYSTEMS.get(kind, kind))
            span.set_attribute("messaging.destination.name", batch.channel_address)
            span.set_attribute("messaging.batch.message_count", len(batch))

            outcomes = await self._send(batch)

            delivered_ids = [o.message_id for o in outcomes if o.delivered]
            failed = [o for o in outcomes if not o.delivered]
            span.set_attribute("outbox.delivered", len(delivered_ids))
            span.set_attribute("outbox.failed", len(failed))
            if failed:
                span.set_status(Status(StatusCode.ERROR, f"{len(failed)} message(s) not delivered"))

        self._record_outcomes(batch, outcomes, summary)

        if delivered_ids:
            await self._mark(batch, delivered_ids, mark_dispatched, summary)

    async def _send(self, batch: ChannelBatch) -> list[DeliveryOutcome]:
        """Send a batch and return exactly one outcome per message in it."""
        client = self._clients.get(batch.kind)
        if client is None:
            reason = f"No dispatch client registered for {batch.kind} channels"
            logger.error(reason, extra={"channel_address": batch.channel_address})
            return [
                DeliveryOutcome.failure(m.message_id, reason, code=REASON_TRANSPORT)
                for m in batch.messages
            ]

        start = time.perf_counter()
        try:
            reported = await client.send(batch.channel_address, batch.messages)
        except Exception as e:
            logger.warning(
                "Batch send failed, messages stay pending",
                extra={
                    "channel_address": batch.channel_address,
                    "backend": str(batch.kind),
                    "batch_size": len(batch),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            error_code = getattr(e, "code", None) or type(e).__name__
            reason = f"{error_code}: {e}"
            return [
                DeliveryOutcome.failure(m.message_id, reason, code=REASON_TRANSPORT)
                for m in batch.messages
            ]
        finally:
            track_batch_sent(str(batch.kind), len(batch), time.perf_counter() - start)

        by_id: dict[str, DeliveryOutcome] = {}
        for outcome in reported:
            # First outcome wins; ids outside the batch are ignored
            by_id.setdefault(outcome.message_id, outcome)

        outcomes = []
        for message in batch.messages:
            outcome = by_id.get(message.message_id)
            if outcome is None:
                outcome = DeliveryOutcome.failure(
                    message.message_id,
                    "Backend reported no outcome for message",
                    code=REASON_MISSING,
                )
            outcomes.append(outcome)
        return outcomes

    def _record_outcomes(
        self,
        batch: ChannelBatch,
        outcomes: list[DeliveryOutcome],
        summary: DispatchSummary,
    ) -> None:
        now = utcnow()
        backend = str(batch.kind)
        messages = {m.message_id: m for m in batch.messages}

        delivered = [o for o in outcomes if o.delivered]
        failed = [o for o in outcomes if not o.delivered]
        summary.delivered += len(delivered)
        summary.failed += len(failed)
        summary.failures.extend(failed)

        track_delivered(backend, (messages[o.message_id].age_seconds(now) for o in delivered))

        by_reason: dict[str, list[float]] = {}
        for outcome in failed:
            message = messages[outcome.message_id]
            age = message.age_seconds(now)
            reason = outcome.code if outcome.code in (REASON_TRANSPORT, REASON_MISSING) else REASON_BACKEND
            by_reason.setdefault(reason, []).append(age)
            logger.warning(
                "Message not delivered, will retry on a later cycle",
                extra={
                    "message_id": outcome.message_id,
                    "message_type": message.message_type,
                    "channel_address": batch.channel_address,
                    "reason": outcome.reason,
                    "age_seconds": round(age, 3),
                },
            )
        for reason, ages in by_reason.items():
            track_failed(backend, reason, ages)

    async def _mark(
        self,
        batch: ChannelBatch,
        delivered_ids: list[str],
        mark_dispatched: MarkDispatched,
        summary: DispatchSummary,
    ) -> None:
        try:
            summary.marked += await mark_dispatched(delivered_ids)
        except StoreUnavailableError as e:
            summary.mark_failures += len(delivered_ids)
            track_mark_failure(len(delivered_ids))
            logger.error(
                "Failed to mark delivered messages as dispatched. These messages WILL be re-sent",
                extra={
                    "channel_address": batch.channel_address,
                    "message_ids": delivered_ids,
                    "error": e.detail,
                },
            )


__all__ = ["DispatchSummary", "Dispatcher", "get_dispatch_tracer", "trace_links"]
