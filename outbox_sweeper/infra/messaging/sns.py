"""SNS dispatch client (``PublishBatch``)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from outbox_sweeper.infra.messaging.base import (
    DEFAULT_MESSAGE_GROUP,
    AwsDispatchClient,
    message_attributes,
)
from outbox_sweeper.infra.messaging.routing import ChannelKind, is_fifo, topic_arn

if TYPE_CHECKING:
    from outbox_sweeper.infra.outbox.models import OutboxMessage


class SnsDispatchClient(AwsDispatchClient):
    """Publishes batches to an SNS topic.

    The channel address is ``SNS::<topic arn>``; the marker is stripped
    before the request.
    """

    service_name = "sns"
    kind = ChannelKind.TOPIC

    def _build_entry(
        self,
        entry_id: str,
        message: OutboxMessage,
        channel_address: str,
    ) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "Id": entry_id,
            "Message": message.body,
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
        return await client.publish_batch(
            TopicArn=topic_arn(channel_address),
            PublishBatchRequestEntries=entries,
        )


__all__ = ["SnsDispatchClient"]
