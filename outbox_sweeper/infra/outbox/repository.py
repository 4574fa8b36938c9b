"""Queries against the outbox table.

Provides methods for:
- Fetching pending messages, oldest first
- Marking delivered messages as dispatched
- Backlog statistics for status output and metrics

The repository is stateless; every method takes the session whose
transaction it should run in.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update

from outbox_sweeper.core.database.base import ensure_utc, utcnow
from outbox_sweeper.infra.outbox.models import OutboxMessage

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence

    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession


class OutboxRepository:
    """SQL for the outbox sweep and its observability queries."""

    async def fetch_pending(
        self,
        session: AsyncSession,
        *,
        limit: int = 100,
        older_than: datetime | None = None,
        lock_rows: bool = True,
    ) -> Sequence[OutboxMessage]:
        """Fetch pending messages ready for dispatch.

        Returns messages that:
        - Have not been dispatched (dispatched is NULL)
        - Were placed in the outbox at or before ``older_than``

        Messages are returned oldest first, ties broken by id.

        Args:
            session: Database session
            limit: Maximum number of messages to fetch
            older_than: Upper bound on ``timestamp`` (defaults to now)
            lock_rows: Select FOR UPDATE SKIP LOCKED so concurrent sweepers
                skip rows this transaction holds

        Returns:
            Sequence of pending OutboxMessage records
        """
        stmt = self.pending_query(limit=limit, older_than=older_than, lock_rows=lock_rows)
        result = await session.execute(stmt)
        return result.scalars().all()

    def pending_query(
        self,
        *,
        limit: int = 100,
        older_than: datetime | None = None,
        lock_rows: bool = True,
    ) -> Select[tuple[OutboxMessage]]:
        """SELECT behind ``fetch_pending``."""
        cutoff = older_than or utcnow()

        stmt = (
            select(OutboxMessage)
            .where(
                OutboxMessage.dispatched.is_(None),
                OutboxMessage.timestamp <= cutoff,
            )
            .order_by(OutboxMessage.timestamp.asc(), OutboxMessage.id.asc())
            .limit(limit)
        )
        if lock_rows:
            stmt = stmt.with_for_update(skip_locked=True)
        return stmt

    async def mark_dispatched(
        self,
        session: AsyncSession,
        message_ids: Collection[str],
        *,
        dispatched_at: datetime | None = None,
    ) -> int:
        """Set ``dispatched`` on the given messages if still pending.

        Rows already dispatched (by this or another sweeper) are left
        untouched, so repeating the call is harmless.

        Args:
            session: Database session
            message_ids: Message ids to mark
            dispatched_at: Dispatch time to record (defaults to now)

        Returns:
            Number of rows actually updated
        """
        if not message_ids:
            return 0

        stmt = (
            update(OutboxMessage)
            .where(
                OutboxMessage.message_id.in_(list(message_ids)),
                OutboxMessage.dispatched.is_(None),
            )
            .values(dispatched=dispatched_at or utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

    async def count_pending(self, session: AsyncSession) -> int:
        """Count messages waiting to be dispatched."""
        stmt = (
            select(func.count())
            .select_from(OutboxMessage)
            .where(OutboxMessage.dispatched.is_(None))
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def oldest_pending_timestamp(self, session: AsyncSession) -> datetime | None:
        """Creation time of the oldest pending message, or None when the backlog is empty."""
        stmt = select(func.min(OutboxMessage.timestamp)).where(OutboxMessage.dispatched.is_(None))
        result = await session.execute(stmt)
        oldest = result.scalar_one_or_none()
        if oldest is None:
            return None
        # SQLite hands aggregates back as text
        if isinstance(oldest, str):
            oldest = datetime.fromisoformat(oldest)
        return ensure_utc(oldest)

    async def pending_channels(self, session: AsyncSession) -> list[tuple[str, int]]:
        """Distinct channels with pending messages and their pending counts.

        Returns:
            (channel_address, count) pairs, largest backlog first
        """
        pending = func.count(OutboxMessage.id).label("pending")
        stmt = (
            select(OutboxMessage.channel_address, pending)
            .where(OutboxMessage.dispatched.is_(None))
            .group_by(OutboxMessage.channel_address)
            .order_by(pending.desc(), OutboxMessage.channel_address.asc())
        )
        result = await session.execute(stmt)
        return [(address, count) for address, count in result.all()]


__all__ = ["OutboxRepository"]
