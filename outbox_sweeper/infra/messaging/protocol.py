"""Base protocol and types for dispatch clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from outbox_sweeper.infra.messaging.routing import ChannelKind
    from outbox_sweeper.infra.outbox.models import OutboxMessage


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    """Result of delivering one message.

    Attributes:
        message_id: Outbox message id the outcome refers to
        delivered: Whether the backend accepted the message
        reason: Failure description, None when delivered
        code: Backend error code for failures, if the backend gave one
        backend_message_id: Id the backend assigned on success
    """

    message_id: str
    delivered: bool
    reason: str | None = None
    code: str | None = None
    backend_message_id: str | None = None

    @classmethod
    def success(cls, message_id: str, backend_message_id: str | None = None) -> DeliveryOutcome:
        return cls(message_id=message_id, delivered=True, backend_message_id=backend_message_id)

    @classmethod
    def failure(cls, message_id: str, reason: str, code: str | None = None) -> DeliveryOutcome:
        return cls(message_id=message_id, delivered=False, reason=reason, code=code)


class DispatchClient(Protocol):
    """Protocol for backend dispatch clients.

    Each backend kind (queue, topic) implements this protocol so the
    dispatcher can send any batch the same way.
    """

    @property
    def kind(self) -> ChannelKind:
        """Backend kind this client serves."""
        ...

    async def send(
        self,
        channel_address: str,
        batch: Sequence[OutboxMessage],
    ) -> list[DeliveryOutcome]:
        """Send one batch to one channel.

        Args:
            channel_address: Raw outbox channel address
            batch: Messages for that channel, at most the backend batch limit

        Returns:
            One outcome per message the backend reported on. Partial
            success is normal.

        Raises:
            DispatchError: If the whole request failed (transport, auth, throttling)
        """
        ...


__all__ = ["DeliveryOutcome", "DispatchClient"]
