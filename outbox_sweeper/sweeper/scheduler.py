"""Sweep scheduler: drives periodic sweep cycles through an explicit state machine.

States and the events that move between them:

    IDLE      --TICK-------------->  SWEEPING
    SWEEPING  --CYCLE_COMPLETED--->  IDLE
    SWEEPING  --STORE_UNAVAILABLE->  BACKOFF
    BACKOFF   --BACKOFF_ELAPSED--->  IDLE
    any       --STOP-------------->  STOPPED

Any other (state, event) pair is a programming error and raises
InvalidStateTransitionError. STOPPED is terminal.

Backoff is entered only when the store is unavailable for a cycle; failed
deliveries are ordinary and retried by the next cycle.
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import StrEnum
import logging
from typing import TYPE_CHECKING, Any

from outbox_sweeper.core.database.base import utcnow
from outbox_sweeper.core.exceptions import InvalidStateTransitionError, StoreUnavailableError
from outbox_sweeper.infra.metrics.tracking import (
    reset_consecutive_failures,
    track_backoff,
    update_scheduler_state,
)
from outbox_sweeper.sweeper.backoff import BackoffPolicy

if TYPE_CHECKING:
    from datetime import datetime

    from outbox_sweeper.core.settings import SweeperSettings
    from outbox_sweeper.sweeper.service import OutboxSweeper, SweepReport

logger = logging.getLogger(__name__)


class SchedulerState(StrEnum):
    """Scheduler states."""

    IDLE = "idle"  # Waiting for the next tick
    SWEEPING = "sweeping"  # A cycle is in flight
    BACKOFF = "backoff"  # Waiting out a store outage
    STOPPED = "stopped"  # Terminal


class SchedulerEvent(StrEnum):
    """Events that drive scheduler transitions."""

    TICK = "tick"
    CYCLE_COMPLETED = "cycle_completed"
    STORE_UNAVAILABLE = "store_unavailable"
    BACKOFF_ELAPSED = "backoff_elapsed"
    STOP = "stop"


TRANSITIONS: dict[tuple[SchedulerState, SchedulerEvent], SchedulerState] = {
    (SchedulerState.IDLE, SchedulerEvent.TICK): SchedulerState.SWEEPING,
    (SchedulerState.SWEEPING, SchedulerEvent.CYCLE_COMPLETED): SchedulerState.IDLE,
    (SchedulerState.SWEEPING, SchedulerEvent.STORE_UNAVAILABLE): SchedulerState.BACKOFF,
    (SchedulerState.BACKOFF, SchedulerEvent.BACKOFF_ELAPSED): SchedulerState.IDLE,
}


def next_state(state: SchedulerState, event: SchedulerEvent) -> SchedulerState:
    """Resolve a transition.

    Raises:
        InvalidStateTransitionError: If ``event`` is not valid in ``state``
    """
    if event is SchedulerEvent.STOP:
        return SchedulerState.STOPPED
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        msg = f"Invalid scheduler transition: {state} --{event}-->"
        raise InvalidStateTransitionError(
            msg,
            extra={"state": str(state), "event": str(event)},
        ) from None


class SweepScheduler:
    """Runs sweep cycles until stopped.

    After a cycle the scheduler waits ``poll_interval_seconds``, starts the
    next cycle at once when the page was full (``drain_when_full``), or
    backs off when the store was unavailable. ``stop()`` interrupts the
    wait, lets the in-flight cycle finish the channels it already started
    and cancels it after ``shutdown_grace_seconds``.

    Example:
        scheduler = SweepScheduler(sweeper, settings)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        sweeper: OutboxSweeper,
        settings: SweeperSettings,
        *,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        self.sweeper = sweeper
        self.settings = settings
        self.backoff = backoff or BackoffPolicy.from_settings(settings)

        self._state = SchedulerState.IDLE
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._crashed = False
        self._consecutive_failures = 0
        self._cycles = 0
        self._last_report: SweepReport | None = None
        self._last_cycle_at: datetime | None = None
        self._last_error: str | None = None
        update_scheduler_state(str(self._state), [str(s) for s in SchedulerState])

    # ========================================================================
    # State
    # ========================================================================

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def last_report(self) -> SweepReport | None:
        return self._last_report

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def crashed(self) -> bool:
        return self._crashed

    @property
    def is_healthy(self) -> bool:
        """False once the scheduler is stopped or its loop crashed."""
        return not self._crashed and self._state is not SchedulerState.STOPPED

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def _transition(self, event: SchedulerEvent) -> SchedulerState:
        previous = self._state
        self._state = next_state(previous, event)
        update_scheduler_state(str(self._state), [str(s) for s in SchedulerState])
        logger.debug(
            "Scheduler transition",
            extra={"from_state": str(previous), "event": str(event), "to_state": str(self._state)},
        )
        return self._state

    def snapshot(self) -> dict[str, Any]:
        """Health/status view of the scheduler."""
        return {
            "state": str(self._state),
            "healthy": self.is_healthy,
            "crashed": self._crashed,
            "cycles": self._cycles,
            "consecutive_store_failures": self._consecutive_failures,
            "last_cycle_at": self._last_cycle_at.isoformat() if self._last_cycle_at else None,
            "last_cycle": self._last_report.to_dict() if self._last_report else None,
            "last_error": self._last_error,
        }

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        """Start the scheduler loop as a background task."""
        if self.is_running:
            logger.warning("Sweep scheduler already running")
            return
        if self._state is SchedulerState.STOPPED:
            msg = "A stopped scheduler cannot be restarted"
            raise InvalidStateTransitionError(msg, extra={"state": str(self._state)})

        self._task = asyncio.create_task(self.run(), name="outbox-sweep-scheduler")
        logger.info(
            "Sweep scheduler started",
            extra={
                "poll_interval_seconds": self.settings.poll_interval_seconds,
                "fetch_limit": self.settings.fetch_limit,
                "claim_mode": self.settings.claim_mode,
                "max_concurrent_channels": self.settings.max_concurrent_channels,
            },
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully.

        Waits up to ``shutdown_grace_seconds`` for the in-flight cycle, then
        cancels it; a cancelled cycle rolls its claim back.
        """
        self._stop_event.set()

        if self._task is None:
            if self._state is not SchedulerState.STOPPED:
                self._transition(SchedulerEvent.STOP)
            return

        grace = self.settings.shutdown_grace_seconds
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=grace)
        except TimeoutError:
            logger.warning(
                "Sweep cycle did not finish within the shutdown grace period, cancelling",
                extra={"shutdown_grace_seconds": grace},
            )
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        except Exception:
            # Crash already logged by run()
            pass
        finally:
            self._task = None

        logger.info("Sweep scheduler stopped", extra={"cycles": self._cycles})

    async def wait(self) -> None:
        """Wait until the scheduler loop exits."""
        if self._task is not None:
            # Outcome is collected by stop(); a crash was already logged by run()
            await asyncio.wait({self._task})

    # ========================================================================
    # Loop
    # ========================================================================

    async def run(self) -> None:
        """Run cycles until ``stop()``; ends in STOPPED whatever happens."""
        try:
            await self._loop()
        except asyncio.CancelledError:
            logger.info("Sweep scheduler cancelled")
            raise
        except Exception as e:
            self._crashed = True
            self._last_error = str(e)
            logger.exception("Sweep scheduler crashed")
            raise
        finally:
            self._transition(SchedulerEvent.STOP)

    async def _loop(self) -> None:
        while not self.stop_requested:
            self._transition(SchedulerEvent.TICK)
            try:
                report = await self.sweeper.sweep_once(should_continue=self._should_continue)
            except StoreUnavailableError as e:
                delay = self._enter_backoff(e)
                await self._wait(delay)
                if self.stop_requested:
                    break
                self._transition(SchedulerEvent.BACKOFF_ELAPSED)
                continue
            except Exception as e:
                self._last_error = str(e)
                logger.exception("Unexpected error in sweep cycle")
                self._transition(SchedulerEvent.CYCLE_COMPLETED)
                await self._wait(self.settings.poll_interval_seconds)
                continue

            self._record_cycle(report)
            self._transition(SchedulerEvent.CYCLE_COMPLETED)

            if self.settings.drain_when_full and report.is_full and report.made_progress:
                # More rows are likely waiting; yield once and sweep again.
                # A full page that marked nothing waits out the interval.
                await asyncio.sleep(0)
                continue

            await self._refresh_backlog()
            await self._wait(self.settings.poll_interval_seconds)

    def _enter_backoff(self, error: StoreUnavailableError) -> float:
        self._consecutive_failures += 1
        self._last_error = error.detail
        self._transition(SchedulerEvent.STORE_UNAVAILABLE)

        delay = self.backoff.delay(self._consecutive_failures)
        track_backoff(delay, self._consecutive_failures)
        logger.warning(
            "Outbox store unavailable, backing off",
            extra={
                "operation": error.operation,
                "consecutive_failures": self._consecutive_failures,
                "backoff_seconds": round(delay, 3),
            },
        )
        return delay

    def _record_cycle(self, report: SweepReport) -> None:
        self._cycles += 1
        self._last_report = report
        self._last_cycle_at = utcnow()
        self._last_error = None
        if self._consecutive_failures:
            logger.info(
                "Outbox store recovered",
                extra={"after_failures": self._consecutive_failures},
            )
        self._consecutive_failures = 0
        reset_consecutive_failures()

    async def _refresh_backlog(self) -> None:
        try:
            await self.sweeper.refresh_backlog_metrics()
        except StoreUnavailableError as e:
            logger.debug("Backlog metrics not refreshed", extra={"error": e.detail})

    def _should_continue(self) -> bool:
        return not self.stop_requested

    async def _wait(self, delay: float) -> None:
        """Sleep for ``delay`` seconds or until stop is requested."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)


__all__ = [
    "TRANSITIONS",
    "SchedulerEvent",
    "SchedulerState",
    "SweepScheduler",
    "next_state",
]
