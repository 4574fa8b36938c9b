"""Transactional outbox table access.

The outbox table is written by upstream services in the same transaction as
their business change; the sweeper reads pending rows through
:class:`OutboxStore` and marks them dispatched after delivery.
"""

from outbox_sweeper.infra.outbox.models import OUTBOX_SCHEMA, OutboxMessage
from outbox_sweeper.infra.outbox.repository import OutboxRepository
from outbox_sweeper.infra.outbox.store import OutboxClaim, OutboxStore

__all__ = [
    "OUTBOX_SCHEMA",
    "OutboxClaim",
    "OutboxMessage",
    "OutboxRepository",
    "OutboxStore",
]
