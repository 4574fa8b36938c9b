"""Shared aioboto3 client lifecycle for the SQS and SNS dispatch clients.

Both backends take batches of up to 10 entries, answer with
``Successful`` / ``Failed`` lists keyed by the entry ``Id`` and accept the
same ``MessageAttributes`` shape, so only entry construction and the API
call differ between them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import TYPE_CHECKING, Any, ClassVar

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from outbox_sweeper.core.exceptions import DispatchClientNotReadyError, DispatchError
from outbox_sweeper.infra.messaging.protocol import DeliveryOutcome

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from outbox_sweeper.core.settings import AwsSettings
    from outbox_sweeper.infra.messaging.routing import ChannelKind
    from outbox_sweeper.infra.outbox.models import OutboxMessage

logger = logging.getLogger(__name__)

ENTRY_ID_PREFIX = "msg-"

# Group used for FIFO destinations when a message has no type
DEFAULT_MESSAGE_GROUP = "default"


def entry_id(position: int) -> str:
    """Positional batch entry id (``msg-0``, ``msg-1``, ...)."""
    return f"{ENTRY_ID_PREFIX}{position}"


def message_attributes(message: OutboxMessage) -> dict[str, dict[str, str]]:
    """String message attributes carried with every dispatched message.

    Empty values are omitted; both services reject empty string attributes.
    """
    values = {
        "message_id": message.message_id,
        "message_type": message.message_type,
        "traceparent": message.trace_parent,
    }
    return {
        name: {"DataType": "String", "StringValue": value}
        for name, value in values.items()
        if value
    }


class AwsDispatchClient(ABC):
    """Base class for aioboto3-backed dispatch clients.

    Subclasses set ``service_name`` and ``kind`` and implement
    :meth:`_build_entry` and :meth:`_send_batch`.

    Example:
        client = SqsDispatchClient(aws_settings)
        await client.startup()
        outcomes = await client.send(queue_url, messages)
        await client.shutdown()
    """

    service_name: ClassVar[str] = ""
    kind: ChannelKind

    def __init__(self, settings: AwsSettings, session: aioboto3.Session | None = None) -> None:
        self.settings = settings
        self._session = session or aioboto3.Session()
        self._client: Any = None
        self._client_context: Any = None

    @property
    def is_ready(self) -> bool:
        """Check if the client is initialized and ready."""
        return self._client is not None

    # ========================================================================
    # Lifecycle Management
    # ========================================================================

    async def startup(self) -> None:
        """Create the aioboto3 client and its connection pool."""
        if self._client is not None:
            logger.debug("%s client already initialized", self.service_name.upper())
            return

        logger.info(
            "Initializing %s dispatch client",
            self.service_name.upper(),
            extra={"region": self.settings.region, "endpoint": self.settings.endpoint_url},
        )

        self._client_context = self._session.client(
            self.service_name,
            **self._get_client_config(),
            config=self._get_boto_config(),
        )
        try:
            self._client = await self._client_context.__aenter__()
        except Exception:
            self._client_context = None
            raise

    async def shutdown(self) -> None:
        """Close the aioboto3 client."""
        if self._client_context is None:
            return

        try:
            await self._client_context.__aexit__(None, None, None)
        except Exception as e:
            logger.warning(
                "Error closing %s client",
                self.service_name.upper(),
                extra={"error": str(e)},
            )
        finally:
            self._client = None
            self._client_context = None

        logger.info("%s dispatch client shut down", self.service_name.upper())

    async def __aenter__(self) -> AwsDispatchClient:
        await self.startup()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    def _get_client_config(self) -> dict[str, Any]:
        return self.settings.client_kwargs()

    def _get_boto_config(self) -> Config:
        return Config(
            retries={
                "max_attempts": self.settings.max_retries,
                "mode": self.settings.retry_mode,
            },
            connect_timeout=self.settings.connect_timeout,
            read_timeout=self.settings.read_timeout,
            max_pool_connections=self.settings.max_pool_connections,
        )

    # ========================================================================
    # Sending
    # ========================================================================

    async def send(
        self,
        channel_address: str,
        batch: Sequence[OutboxMessage],
    ) -> list[DeliveryOutcome]:
        """Send one batch and map the response back to outbox message ids.

        Raises:
            DispatchClientNotReadyError: If called before ``startup()``
            DispatchError: If the request as a whole failed
        """
        if not batch:
            return []
        if self._client is None:
            msg = f"{self.service_name.upper()} client used before startup()"
            raise DispatchClientNotReadyError(msg, extra={"channel_address": channel_address})

        by_entry_id = {entry_id(i): message for i, message in enumerate(batch)}
        entries = [
            self._build_entry(eid, message, channel_address) for eid, message in by_entry_id.items()
        ]

        try:
            response = await self._send_batch(self._client, channel_address, entries)
        except ClientError as e:
            error = e.response.get("Error", {})
            raise DispatchError(
                f"{self.service_name.upper()} batch request failed: {error.get('Message', e)}",
                code=error.get("Code") or DispatchError.default_code,
                extra={"channel_address": channel_address, "batch_size": len(batch)},
            ) from e
        except BotoCoreError as e:
            raise DispatchError(
                f"{self.service_name.upper()} batch request failed: {e}",
                code=type(e).__name__,
                extra={"channel_address": channel_address, "batch_size": len(batch)},
            ) from e

        return self._map_response(response, by_entry_id)

    def _map_response(
        self,
        response: dict[str, Any],
        by_entry_id: dict[str, OutboxMessage],
    ) -> list[DeliveryOutcome]:
        outcomes: list[DeliveryOutcome] = []

        for entry in response.get("Successful", []):
            message = by_entry_id.get(entry.get("Id", ""))
            if message is None:
                logger.warning("Backend reported an unknown entry id", extra={"entry_id": entry})
                continue
            outcomes.append(DeliveryOutcome.success(message.message_id, entry.get("MessageId")))

        for entry in response.get("Failed", []):
            message = by_entry_id.get(entry.get("Id", ""))
            if message is None:
                logger.warning("Backend reported an unknown entry id", extra={"entry_id": entry})
                continue
            code = entry.get("Code")
            reason = f"{code}: {entry.get('Message', '')}" if code else entry.get("Message", "")
            outcomes.append(DeliveryOutcome.failure(message.message_id, reason, code=code))

        return outcomes

    @abstractmethod
    def _build_entry(
        self,
        entry_id: str,
        message: OutboxMessage,
        channel_address: str,
    ) -> dict[str, Any]:
        """Backend request entry for one message."""

    @abstractmethod
    async def _send_batch(
        self,
        client: Any,
        channel_address: str,
        entries: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Issue the batch API call and return the raw response."""


__all__ = [
    "DEFAULT_MESSAGE_GROUP",
    "ENTRY_ID_PREFIX",
    "AwsDispatchClient",
    "entry_id",
    "message_attributes",
]
