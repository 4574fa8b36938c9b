"""One sweep cycle: claim pending rows, batch them, dispatch, write back."""

from __future__ import annotations

from dataclasses import dataclass, field
import itertools
import logging
import time
from typing import TYPE_CHECKING

from outbox_sweeper.core.database.base import utcnow
from outbox_sweeper.core.exceptions import StoreUnavailableError
from outbox_sweeper.infra.logging.context import log_context
from outbox_sweeper.infra.metrics.tracking import track_cycle, update_pending_status
from outbox_sweeper.sweeper.batching import batch_limits, batch_messages
from outbox_sweeper.sweeper.dispatcher import DispatchSummary

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from outbox_sweeper.core.settings import SweeperSettings
    from outbox_sweeper.infra.outbox.store import OutboxStore
    from outbox_sweeper.sweeper.dispatcher import Dispatcher

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Result of one sweep cycle.

    Attributes:
        cycle_id: Process-local cycle identifier, also set in the log context
        fetched: Pending rows the cycle claimed
        fetch_limit: Page size the cycle asked for
        started_at: When the cycle began (UTC)
        duration_seconds: Wall-clock time of the cycle
        dispatch: Dispatch counters
    """

    cycle_id: str
    fetched: int
    fetch_limit: int
    started_at: datetime
    duration_seconds: float = 0.0
    dispatch: DispatchSummary = field(default_factory=DispatchSummary)

    @property
    def delivered(self) -> int:
        return self.dispatch.delivered

    @property
    def failed(self) -> int:
        return self.dispatch.failed

    @property
    def marked(self) -> int:
        return self.dispatch.marked

    @property
    def mark_failures(self) -> int:
        return self.dispatch.mark_failures

    @property
    def skipped_channels(self) -> int:
        return self.dispatch.skipped_channels

    @property
    def is_full(self) -> bool:
        """The page was full, so more pending rows are likely waiting."""
        return self.fetched >= self.fetch_limit

    @property
    def made_progress(self) -> bool:
        """At least one row left the pending set."""
        return self.marked > 0

    @property
    def outcome(self) -> str:
        """empty, completed or degraded (some sends or marks failed)."""
        if self.fetched == 0:
            return "empty"
        if self.failed or self.mark_failures or self.skipped_channels:
            return "degraded"
        return "completed"

    def to_dict(self) -> dict[str, object]:
        return {
            "cycle_id": self.cycle_id,
            "outcome": self.outcome,
            "fetched": self.fetched,
            "batches": self.dispatch.batches,
            "delivered": self.delivered,
            "failed": self.failed,
            "marked": self.marked,
            "mark_failures": self.mark_failures,
            "skipped_channels": self.skipped_channels,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 4),
        }


class OutboxSweeper:
    """Runs sweep cycles against an outbox store.

    Example:
        sweeper = OutboxSweeper(store, dispatcher, settings)
        report = await sweeper.sweep_once()
    """

    def __init__(
        self,
        store: OutboxStore,
        dispatcher: Dispatcher,
        settings: SweeperSettings,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.settings = settings
        self._limits = batch_limits(settings)
        self._cycle_counter = itertools.count(1)

    async def sweep_once(
        self,
        should_continue: Callable[[], bool] | None = None,
    ) -> SweepReport:
        """Run one sweep cycle.

        Claims up to ``fetch_limit`` pending rows, groups them into channel
        batches and dispatches them. Delivered messages are marked within the
        claim; the claim commits when dispatch finishes.

        Args:
            should_continue: Shutdown probe handed to the dispatcher

        Raises:
            StoreUnavailableError: If the fetch or the final commit failed
        """
        cycle_id = f"c-{next(self._cycle_counter)}"
        started_at = utcnow()
        start = time.perf_counter()

        with log_context(cycle_id=cycle_id):
            report = SweepReport(
                cycle_id=cycle_id,
                fetched=0,
                fetch_limit=self.settings.fetch_limit,
                started_at=started_at,
            )
            try:
                async with self.store.claim(limit=self.settings.fetch_limit) as claim:
                    report.fetched = len(claim.messages)
                    if claim.messages:
                        batches = batch_messages(claim.messages, self._limits)
                        logger.debug(
                            "Dispatching claimed messages",
                            extra={"fetched": report.fetched, "batches": len(batches)},
                        )
                        report.dispatch = await self.dispatcher.dispatch(
                            batches,
                            claim.mark_dispatched,
                            should_continue,
                        )
            except StoreUnavailableError as e:
                report.duration_seconds = time.perf_counter() - start
                track_cycle("store_unavailable", report.duration_seconds, report.fetched)
                logger.warning(
                    "Sweep cycle aborted, outbox store unavailable",
                    extra={"operation": e.operation, "error": e.detail},
                )
                raise
            except Exception:
                # Logged by the caller
                report.duration_seconds = time.perf_counter() - start
                track_cycle("error", report.duration_seconds, report.fetched)
                raise

            report.duration_seconds = time.perf_counter() - start
            track_cycle(report.outcome, report.duration_seconds, report.fetched)

            if report.fetched:
                log = logger.warning if report.outcome == "degraded" else logger.info
                log("Sweep cycle finished", extra=report.to_dict())
            else:
                logger.debug("Sweep cycle found nothing to dispatch")

        return report

    async def refresh_backlog_metrics(self) -> tuple[int, float | None]:
        """Publish pending count and oldest pending age gauges.

        Returns:
            (pending count, age in seconds of the oldest pending message)

        Raises:
            StoreUnavailableError: If the store cannot be queried
        """
        pending = await self.store.count_pending()
        oldest = await self.store.oldest_pending_timestamp()
        oldest_age = max(0.0, (utcnow() - oldest).total_seconds()) if oldest else None
        update_pending_status(pending, oldest_age)
        return pending, oldest_age


__all__ = ["OutboxSweeper", "SweepReport"]
