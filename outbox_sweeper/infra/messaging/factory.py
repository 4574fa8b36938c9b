"""Construction and lifecycle of the per-kind dispatch clients."""

from __future__ import annotations

from contextlib import AsyncExitStack, asynccontextmanager
import logging
from typing import TYPE_CHECKING

import aioboto3

from outbox_sweeper.core.settings import get_aws_settings
from outbox_sweeper.infra.messaging.routing import ChannelKind
from outbox_sweeper.infra.messaging.sns import SnsDispatchClient
from outbox_sweeper.infra.messaging.sqs import SqsDispatchClient

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from outbox_sweeper.core.settings import AwsSettings
    from outbox_sweeper.infra.messaging.base import AwsDispatchClient

logger = logging.getLogger(__name__)


def build_dispatch_clients(
    aws_settings: AwsSettings | None = None,
    session: aioboto3.Session | None = None,
) -> dict[ChannelKind, AwsDispatchClient]:
    """One client per backend kind, sharing a single aioboto3 session.

    Clients are returned unstarted.
    """
    settings = aws_settings or get_aws_settings()
    shared_session = session or aioboto3.Session()
    return {
        ChannelKind.QUEUE: SqsDispatchClient(settings, session=shared_session),
        ChannelKind.TOPIC: SnsDispatchClient(settings, session=shared_session),
    }


@asynccontextmanager
async def open_dispatch_clients(
    aws_settings: AwsSettings | None = None,
    session: aioboto3.Session | None = None,
) -> AsyncIterator[dict[ChannelKind, AwsDispatchClient]]:
    """Start every dispatch client and shut them down on exit.

    Example:
        async with open_dispatch_clients() as clients:
            dispatcher = Dispatcher(clients)
    """
    clients = build_dispatch_clients(aws_settings, session)
    async with AsyncExitStack() as stack:
        for client in clients.values():
            await stack.enter_async_context(client)
        logger.info("Dispatch clients ready", extra={"kinds": [str(kind) for kind in clients]})
        yield clients


__all__ = ["build_dispatch_clients", "open_dispatch_clients"]
