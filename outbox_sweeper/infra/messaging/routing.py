"""Channel address routing.

An outbox row names its destination in ``channel_address``. Addresses that
start with the literal ``SNS::`` are SNS topics (the rest of the address is
the topic ARN); everything else is an SQS queue URL.
"""

from __future__ import annotations

from enum import StrEnum

# Case-sensitive marker for topic addresses
TOPIC_PREFIX = "SNS::"


class ChannelKind(StrEnum):
    """Backend kind a channel address resolves to."""

    QUEUE = "queue"
    TOPIC = "topic"


def route_channel(channel_address: str) -> ChannelKind:
    """Classify a channel address.

    Total and pure: any string routes somewhere. Empty or malformed
    addresses route to QUEUE and fail at send time.

    Example:
        >>> route_channel("SNS::arn:aws:sns:eu-west-1:123456789012:orders")
        <ChannelKind.TOPIC: 'topic'>
        >>> route_channel("https://sqs.eu-west-1.amazonaws.com/123456789012/orders")
        <ChannelKind.QUEUE: 'queue'>
    """
    if channel_address.startswith(TOPIC_PREFIX):
        return ChannelKind.TOPIC
    return ChannelKind.QUEUE


def topic_arn(channel_address: str) -> str:
    """Topic ARN of a topic address (the address without the ``SNS::`` marker)."""
    return channel_address.removeprefix(TOPIC_PREFIX)


def is_fifo(destination: str) -> bool:
    """FIFO queues and topics are named with a ``.fifo`` suffix."""
    return destination.endswith(".fifo")


__all__ = ["TOPIC_PREFIX", "ChannelKind", "is_fifo", "route_channel", "topic_arn"]
