"""SQS dispatch client (``SendMessageBatch``)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from outbox_sweeper.infra.messaging.base import (
    DEFAULT_MESSAGE_GROUP,
    AwsDispatchClient,
    message_attributes,
)
from outbox_sweeper.infra.messaging.routing import ChannelKind, is_fifo

if TYPE_CHECKING:
    from outbox_sweeper.infra.outbox.models import OutboxMessage


class SqsDispatchClient(AwsDispatchClient):
    """Sends batches to an SQS queue; the channel address is the queue URL."""

    service_name = "sqs"
    kind = ChannelKind.QUEUE

    def _build_entry(
        self,
        entry_id: str,
        message: OutboxMessage,
        channel_address: str,
    ) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "Id": entry_id,
            "MessageBody": message.body,
            "MessageAttributes": message_attributes(message),
        }
        if is_fifo(channel_address):
            entry["MessageDeduplicationId"] = message.message_id
            entry["MessageGroupId"] = message.message_type or DEFAULT_MESSAGE_GROUP
        return entry

    async def _send_batch(
        self,
        client: Any,
        channel_address: str,
        entries: list[dict[str, Any]],
    ) -> dict[str, Any]:
        return await client.send_message_batch(QueueUrl=channel_address, Entries=entries)


__all__ = ["SqsDispatchClient"]
