"""Grouping a page of pending messages into per-channel backend batches."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from outbox_sweeper.infra.messaging.routing import ChannelKind, route_channel

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from outbox_sweeper.core.settings import SweeperSettings
    from outbox_sweeper.infra.outbox.models import OutboxMessage


@dataclass(frozen=True, slots=True)
class ChannelBatch:
    """Messages bound for one channel, small enough for one backend request.

    Attributes:
        channel_address: Raw outbox channel address
        kind: Backend kind the address routes to
        messages: Messages in fetch order
    """

    channel_address: str
    kind: ChannelKind
    messages: tuple[OutboxMessage, ...]

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def message_ids(self) -> list[str]:
        return [message.message_id for message in self.messages]


def batch_limits(settings: SweeperSettings) -> dict[ChannelKind, int]:
    """Per-kind batch size limits from sweeper settings."""
    return {
        ChannelKind.QUEUE: settings.max_queue_batch_size,
        ChannelKind.TOPIC: settings.max_topic_batch_size,
    }


def batch_messages(
    messages: Iterable[OutboxMessage],
    limits: Mapping[ChannelKind, int],
) -> list[ChannelBatch]:
    """Group messages by channel and split each group by its backend limit.

    Channels appear in order of their first message; within a channel the
    input order is kept and batches are consecutive slices of it. Every
    input message lands in exactly one batch.

    Args:
        messages: Pending messages, oldest first
        limits: Maximum batch size per backend kind

    Returns:
        Batches for all channels

    Raises:
        ValueError: If a limit is below 1 or a needed kind has no limit

    Example:
        >>> batches = batch_messages(rows, {ChannelKind.QUEUE: 10, ChannelKind.TOPIC: 10})
    """
    for kind, limit in limits.items():
        if limit < 1:
            msg = f"Batch limit for {kind} must be at least 1, got {limit}"
            raise ValueError(msg)

    groups: dict[str, list[OutboxMessage]] = {}
    for message in messages:
        groups.setdefault(message.channel_address, []).append(message)

    batches: list[ChannelBatch] = []
    for channel_address, group in groups.items():
        kind = route_channel(channel_address)
        if kind not in limits:
            msg = f"No batch limit configured for {kind} channels"
            raise ValueError(msg)
        limit = limits[kind]
        batches.extend(
            ChannelBatch(channel_address, kind, tuple(group[start : start + limit]))
            for start in range(0, len(group), limit)
        )

    return batches


__all__ = ["ChannelBatch", "batch_limits", "batch_messages"]
