"""Sweep cycle: batching, dispatch, backoff and the scheduler that drives them."""

from outbox_sweeper.sweeper.backoff import BackoffPolicy
from outbox_sweeper.sweeper.batching import ChannelBatch, batch_limits, batch_messages
from outbox_sweeper.sweeper.dispatcher import Dispatcher, DispatchSummary
from outbox_sweeper.sweeper.scheduler import SchedulerEvent, SchedulerState, SweepScheduler
from outbox_sweeper.sweeper.service import OutboxSweeper, SweepReport

__all__ = [
    "BackoffPolicy",
    "ChannelBatch",
    "DispatchSummary",
    "Dispatcher",
    "OutboxSweeper",
    "SchedulerEvent",
    "SchedulerState",
    "SweepReport",
    "SweepScheduler",
    "batch_limits",
    "batch_messages",
]
