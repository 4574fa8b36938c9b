"""Delivery of outbox messages to SQS queues and SNS topics."""

from outbox_sweeper.infra.messaging.base import AwsDispatchClient
from outbox_sweeper.infra.messaging.factory import build_dispatch_clients, open_dispatch_clients
from outbox_sweeper.infra.messaging.protocol import DeliveryOutcome, DispatchClient
from outbox_sweeper.infra.messaging.routing import (
    TOPIC_PREFIX,
    ChannelKind,
    route_channel,
    topic_arn,
)
from outbox_sweeper.infra.messaging.sns import SnsDispatchClient
from outbox_sweeper.infra.messaging.sqs import SqsDispatchClient

__all__ = [
    "TOPIC_PREFIX",
    "AwsDispatchClient",
    "ChannelKind",
    "DeliveryOutcome",
    "DispatchClient",
    "SnsDispatchClient",
    "SqsDispatchClient",
    "build_dispatch_clients",
    "open_dispatch_clients",
    "route_channel",
    "topic_arn",
]
