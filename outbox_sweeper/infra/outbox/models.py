"""OutboxMessage SQLAlchemy model for the transactional outbox table.

Rows are written by upstream services in the same transaction as their
business change. The sweeper only reads pending rows and sets ``dispatched``
once a backend has accepted the message; it never inserts or deletes.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from outbox_sweeper.core.database.base import Base, ensure_utc, utcnow

# Logical schema name; remapped per engine via schema_translate_map.
OUTBOX_SCHEMA = "core"


class OutboxMessage(Base):
    """One message waiting in (or already dispatched from) the outbox.

    Attributes:
        id: Auto-incrementing surrogate key, used only for storage ordering
        message_id: Caller-assigned unique identity, used as the dedup key
        message_type: Free-text classification, forwarded as metadata
        channel_address: Destination queue URL, or ``SNS::<topic arn>``
        dispatched: When the message was dispatched; NULL while pending
        timestamp: When the message was placed in the outbox (UTC)
        body: Opaque payload, forwarded verbatim
        trace_parent: W3C traceparent of the producing request, if any
    """

    __tablename__ = "outbox"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    message_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        comment="The id of the message",
    )
    message_type: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        comment="The Type of message",
    )
    channel_address: Mapped[str] = mapped_column(
        String(2048),
        nullable=False,
        comment="The queue URL or SNS::<topic ARN> of the destination channel",
    )
    dispatched: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
        comment="The time that the message was dispatched from the outbox",
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="The time that this message was placed in the outbox",
    )
    body: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="The payload of the message",
    )
    trace_parent: Mapped[str | None] = mapped_column(
        String(55),
        nullable=True,
        default=None,
        comment="The Open Telemetry Parent Trace Id",
    )

    __table_args__ = (
        Index("idx_outbox_dispatched", "dispatched"),
        {"schema": OUTBOX_SCHEMA},
    )

    @property
    def is_dispatched(self) -> bool:
        """Check if the message has been handed to its backend."""
        return self.dispatched is not None

    def age_seconds(self, now: datetime | None = None) -> float:
        """Seconds since the message was placed in the outbox."""
        if self.timestamp is None:
            return 0.0
        reference = now or utcnow()
        return max(0.0, (reference - ensure_utc(self.timestamp)).total_seconds())

    def __repr__(self) -> str:
        """Human-readable representation."""
        status = "dispatched" if self.is_dispatched else "pending"
        return (
            f"OutboxMessage("
            f"message_id={self.message_id!r}, "
            f"channel_address={self.channel_address!r}, "
            f"status={status}"
            f")"
        )


__all__ = ["OUTBOX_SCHEMA", "OutboxMessage"]
