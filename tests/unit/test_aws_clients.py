"""Tests for the SQS and SNS dispatch clients.

The aioboto3 session is replaced with a mock whose client records requests,
so no AWS endpoint is needed.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from botocore.config import Config
from botocore.exceptions import ClientError, EndpointConnectionError
import pytest

from outbox_sweeper.core.exceptions import DispatchClientNotReadyError, DispatchError
from outbox_sweeper.core.settings import AwsSettings
from outbox_sweeper.infra.messaging import (
    AwsDispatchClient,
    ChannelKind,
    SnsDispatchClient,
    SqsDispatchClient,
    build_dispatch_clients,
    open_dispatch_clients,
)
from outbox_sweeper.infra.messaging.base import message_attributes
from tests.conftest import QUEUE_URL, TOPIC_ADDRESS

FIFO_QUEUE_URL = "https://sqs.eu-west-1.amazonaws.com/123456789012/orders.fifo"
TOPIC_ARN = "arn:aws:sns:eu-west-1:123456789012:order-events"


@pytest.fixture
def aws_settings() -> AwsSettings:
    return AwsSettings(region="eu-west-1", endpoint_url="http://localhost:4566", max_retries=2)


@pytest.fixture
def boto_client() -> AsyncMock:
    client = AsyncMock()
    client.send_message_batch.return_value = {"Successful": [], "Failed": []}
    client.publish_batch.return_value = {"Successful": [], "Failed": []}
    return client


@pytest.fixture
def boto_session(boto_client: AsyncMock) -> MagicMock:
    """aioboto3.Session stand-in; ``client()`` returns an async context manager."""
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=boto_client)
    context.__aexit__ = AsyncMock(return_value=None)
    session = MagicMock()
    session.client.return_value = context
    return session


@pytest.mark.unit
class TestClientLifecycle:
    """Test suite for the shared client lifecycle."""

    @pytest.mark.asyncio
    async def test_startup_builds_client_from_settings(self, aws_settings, boto_session):
        client = SqsDispatchClient(aws_settings, session=boto_session)

        await client.startup()

        assert client.is_ready
        args, kwargs = boto_session.client.call_args
        assert args == ("sqs",)
        assert kwargs["region_name"] == "eu-west-1"
        assert kwargs["endpoint_url"] == "http://localhost:4566"
        assert isinstance(kwargs["config"], Config)
        assert kwargs["config"].retries == {"max_attempts": 2, "mode": "standard"}

        await client.shutdown()
        assert not client.is_ready
        boto_session.client.return_value.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_startup_is_idempotent(self, aws_settings, boto_session):
        client = SnsDispatchClient(aws_settings, session=boto_session)

        await client.startup()
        await client.startup()

        assert boto_session.client.call_count == 1
        await client.shutdown()

    @pytest.mark.asyncio
    async def test_send_before_startup(self, aws_settings, boto_session, make_message):
        client = SqsDispatchClient(aws_settings, session=boto_session)

        with pytest.raises(DispatchClientNotReadyError):
            await client.send(QUEUE_URL, [make_message()])

    @pytest.mark.asyncio
    async def test_empty_batch_sends_nothing(self, aws_settings, boto_session, boto_client):
        async with SqsDispatchClient(aws_settings, session=boto_session) as client:
            assert await client.send(QUEUE_URL, []) == []

        boto_client.send_message_batch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_open_dispatch_clients(self, aws_settings, boto_session):
        async with open_dispatch_clients(aws_settings, session=boto_session) as clients:
            assert set(clients) == {ChannelKind.QUEUE, ChannelKind.TOPIC}
            assert all(c.is_ready for c in clients.values())

        assert not any(c.is_ready for c in clients.values())
        services = [call.args[0] for call in boto_session.client.call_args_list]
        assert sorted(services) == ["sns", "sqs"]

    def test_build_dispatch_clients_kinds(self, aws_settings, boto_session):
        clients = build_dispatch_clients(aws_settings, session=boto_session)

        assert isinstance(clients[ChannelKind.QUEUE], SqsDispatchClient)
        assert isinstance(clients[ChannelKind.TOPIC], SnsDispatchClient)
        assert clients[ChannelKind.QUEUE].kind is ChannelKind.QUEUE

    def test_client_without_send_hooks_cannot_be_built(self, aws_settings, boto_session):
        class HalfClient(AwsDispatchClient):
            service_name = "sqs"
            kind = ChannelKind.QUEUE

            def _build_entry(self, entry_id, message, channel_address):
                return {"Id": entry_id}

        with pytest.raises(TypeError, match="_send_batch"):
            HalfClient(aws_settings, session=boto_session)


@pytest.mark.unit
class TestSqsDispatchClient:
    """Test suite for SqsDispatchClient."""

    @pytest.mark.asyncio
    async def test_send_maps_partial_response(self, aws_settings, boto_session, boto_client, make_message):
        messages = [make_message(), make_message(), make_message()]
        boto_client.send_message_batch.return_value = {
            "Successful": [
                {"Id": "msg-0", "MessageId": "sqs-0"},
                {"Id": "msg-2", "MessageId": "sqs-2"},
            ],
            "Failed": [
                {"Id": "msg-1", "SenderFault": False, "Code": "InternalError", "Message": "try again"},
            ],
        }

        async with SqsDispatchClient(aws_settings, session=boto_session) as client:
            outcomes = await client.send(QUEUE_URL, messages)

        by_id = {o.message_id: o for o in outcomes}
        assert by_id["m-1"].delivered is True
        assert by_id["m-1"].backend_message_id == "sqs-0"
        assert by_id["m-3"].delivered is True
        assert by_id["m-2"].delivered is False
        assert by_id["m-2"].code == "InternalError"
        assert by_id["m-2"].reason == "InternalError: try again"

        kwargs = boto_client.send_message_batch.await_args.kwargs
        assert kwargs["QueueUrl"] == QUEUE_URL
        assert [e["Id"] for e in kwargs["Entries"]] == ["msg-0", "msg-1", "msg-2"]
        assert kwargs["Entries"][0]["MessageBody"] == messages[0].body
        assert "MessageGroupId" not in kwargs["Entries"][0]

    @pytest.mark.asyncio
    async def test_fifo_queue_entries(self, aws_settings, boto_session, boto_client, make_message):
        messages = [make_message(message_type="OrderPlaced"), make_message(message_type="")]

        async with SqsDispatchClient(aws_settings, session=boto_session) as client:
            await client.send(FIFO_QUEUE_URL, messages)

        entries = boto_client.send_message_batch.await_args.kwargs["Entries"]
        assert entries[0]["MessageDeduplicationId"] == "m-1"
        assert entries[0]["MessageGroupId"] == "OrderPlaced"
        assert entries[1]["MessageGroupId"] == "default"

    @pytest.mark.asyncio
    async def test_client_error_becomes_dispatch_error(
        self, aws_settings, boto_session, boto_client, make_message
    ):
        boto_client.send_message_batch.side_effect = ClientError(
            {"Error": {"Code": "AWS.SimpleQueueService.NonExistentQueue", "Message": "no queue"}},
            "SendMessageBatch",
        )

        async with SqsDispatchClient(aws_settings, session=boto_session) as client:
            with pytest.raises(DispatchError) as exc_info:
                await client.send(QUEUE_URL, [make_message()])

        assert exc_info.value.code == "AWS.SimpleQueueService.NonExistentQueue"
        assert "no queue" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_connection_error_becomes_dispatch_error(
        self, aws_settings, boto_session, boto_client, make_message
    ):
        boto_client.send_message_batch.side_effect = EndpointConnectionError(
            endpoint_url="http://localhost:4566"
        )

        async with SqsDispatchClient(aws_settings, session=boto_session) as client:
            with pytest.raises(DispatchError) as exc_info:
                await client.send(QUEUE_URL, [make_message()])

        assert exc_info.value.code == "EndpointConnectionError"

    @pytest.mark.asyncio
    async def test_unknown_entry_ids_are_ignored(
        self, aws_settings, boto_session, boto_client, make_message
    ):
        boto_client.send_message_batch.return_value = {
            "Successful": [{"Id": "msg-7", "MessageId": "x"}],
            "Failed": [],
        }

        async with SqsDispatchClient(aws_settings, session=boto_session) as client:
            outcomes = await client.send(QUEUE_URL, [make_message()])

        assert outcomes == []


@pytest.mark.unit
class TestSnsDispatchClient:
    """Test suite for SnsDispatchClient."""

    @pytest.mark.asyncio
    async def test_publish_batch_strips_marker(self, aws_settings, boto_session, boto_client, make_message):
        messages = [make_message(channel_address=TOPIC_ADDRESS), make_message(channel_address=TOPIC_ADDRESS)]
        boto_client.publish_batch.return_value = {
            "Successful": [{"Id": "msg-0", "MessageId": "sns-0"}, {"Id": "msg-1", "MessageId": "sns-1"}],
            "Failed": [],
        }

        async with SnsDispatchClient(aws_settings, session=boto_session) as client:
            outcomes = await client.send(TOPIC_ADDRESS, messages)

        assert [o.delivered for o in outcomes] == [True, True]
        kwargs = boto_client.publish_batch.await_args.kwargs
        assert kwargs["TopicArn"] == TOPIC_ARN
        entries = kwargs["PublishBatchRequestEntries"]
        assert entries[0]["Message"] == messages[0].body
        assert "MessageGroupId" not in entries[0]

    @pytest.mark.asyncio
    async def test_fifo_topic_entries(self, aws_settings, boto_session, boto_client, make_message):
        address = f"SNS::{TOPIC_ARN}.fifo"

        async with SnsDispatchClient(aws_settings, session=boto_session) as client:
            await client.send(address, [make_message(channel_address=address)])

        entry = boto_client.publish_batch.await_args.kwargs["PublishBatchRequestEntries"][0]
        assert entry["MessageDeduplicationId"] == "m-1"
        assert entry["MessageGroupId"] == "OrderPlaced"


@pytest.mark.unit
def test_message_attributes_skip_empty_values(make_message):
    traceparent = "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"

    with_trace = message_attributes(make_message(trace_parent=traceparent))
    without_trace = message_attributes(make_message(trace_parent=None))

    assert with_trace["traceparent"] == {"DataType": "String", "StringValue": traceparent}
    assert with_trace["message_id"]["StringValue"] == "m-1"
    assert "traceparent" not in without_trace
