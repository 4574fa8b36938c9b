"""Outbox store: transactional access to pending messages.

The store owns sessions and transactions; ``OutboxRepository`` owns the SQL.
Every database failure surfaces as ``StoreUnavailableError`` so the
scheduler can back off without knowing about SQLAlchemy.

A sweep cycle uses :meth:`OutboxStore.claim`::

    async with store.claim(limit=100) as claim:
        for batch in batch_messages(claim.messages, limits):
            ...
            await claim.mark_dispatched(delivered_ids)

With row locking enabled the fetched rows stay locked (FOR UPDATE SKIP
LOCKED) until the ``async with`` block exits, so a concurrent sweeper skips
them. The claim commits on clean exit and rolls back when the block raises
or is cancelled.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from outbox_sweeper.core.exceptions import StoreUnavailableError
from outbox_sweeper.infra.metrics.tracking import track_store_error, track_store_query
from outbox_sweeper.infra.outbox.repository import OutboxRepository

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Collection, Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from outbox_sweeper.infra.outbox.models import OutboxMessage

logger = logging.getLogger(__name__)

# Driver-level failures that escape SQLAlchemy's exception wrapping
STORE_ERRORS: tuple[type[BaseException], ...] = (SQLAlchemyError, OSError)


def _unavailable(operation: str, exc: BaseException) -> StoreUnavailableError:
    track_store_error(operation)
    return StoreUnavailableError(
        f"Outbox store {operation} failed: {exc}",
        extra={"operation": operation, "error_type": type(exc).__name__},
    )


class OutboxClaim:
    """A page of pending messages bound to the transaction that fetched them.

    Mark calls are serialised because an AsyncSession must not be used by
    two tasks at once.
    """

    def __init__(
        self,
        session: AsyncSession,
        repository: OutboxRepository,
        messages: Sequence[OutboxMessage],
        *,
        commit_each_mark: bool = False,
    ) -> None:
        self.messages = messages
        self._session = session
        self._repository = repository
        self._commit_each_mark = commit_each_mark
        self._lock = asyncio.Lock()
        self.marked = 0

    def __len__(self) -> int:
        return len(self.messages)

    async def mark_dispatched(self, message_ids: Collection[str]) -> int:
        """Mark delivered messages as dispatched within this claim.

        Returns:
            Number of rows actually updated

        Raises:
            StoreUnavailableError: If the update (or its commit) fails
        """
        if not message_ids:
            return 0

        async with self._lock:
            try:
                with track_store_query("mark_dispatched"):
                    updated = await self._repository.mark_dispatched(self._session, message_ids)
                    if self._commit_each_mark:
                        await self._session.commit()
            except STORE_ERRORS as e:
                raise _unavailable("mark_dispatched", e) from e

        self.marked += updated
        if updated < len(message_ids):
            logger.debug(
                "Some messages were already dispatched",
                extra={"requested": len(message_ids), "updated": updated},
            )
        return updated


class OutboxStore:
    """Session and transaction management around :class:`OutboxRepository`.

    Args:
        session_factory: Factory for AsyncSession instances
        lock_rows: Hold FOR UPDATE SKIP LOCKED row locks for the whole claim.
            When False each mark commits on its own.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        lock_rows: bool = True,
        repository: OutboxRepository | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._lock_rows = lock_rows
        self._repository = repository or OutboxRepository()

    @property
    def lock_rows(self) -> bool:
        return self._lock_rows

    @asynccontextmanager
    async def claim(
        self,
        limit: int,
        older_than: datetime | None = None,
    ) -> AsyncIterator[OutboxClaim]:
        """Fetch a page of pending messages and hold them for one sweep cycle.

        Raises:
            StoreUnavailableError: If the fetch or the final commit fails
        """
        async with self._session_factory() as session:
            try:
                with track_store_query("fetch_pending"):
                    messages = await self._repository.fetch_pending(
                        session,
                        limit=limit,
                        older_than=older_than,
                        lock_rows=self._lock_rows,
                    )
                    if not self._lock_rows:
                        # Nothing to hold; end the read transaction now
                        await session.commit()
            except STORE_ERRORS as e:
                raise _unavailable("fetch_pending", e) from e

            claim = OutboxClaim(
                session,
                self._repository,
                messages,
                commit_each_mark=not self._lock_rows,
            )
            # Exceptions and cancellation propagate; closing the session rolls back
            yield claim

            try:
                with track_store_query("commit"):
                    await session.commit()
            except STORE_ERRORS as e:
                raise _unavailable("commit", e) from e

    async def fetch_pending(
        self,
        limit: int,
        older_than: datetime | None = None,
    ) -> list[OutboxMessage]:
        """Fetch pending messages without holding them.

        Rows are read without locks; use :meth:`claim` for a sweep cycle.
        """
        try:
            async with self._session_factory() as session:
                with track_store_query("fetch_pending"):
                    messages = await self._repository.fetch_pending(
                        session,
                        limit=limit,
                        older_than=older_than,
                        lock_rows=False,
                    )
                return list(messages)
        except STORE_ERRORS as e:
            raise _unavailable("fetch_pending", e) from e

    async def mark_dispatched(self, message_ids: Collection[str]) -> int:
        """Mark messages dispatched in a transaction of their own.

        Returns:
            Number of rows actually updated (0 for an empty set)
        """
        if not message_ids:
            return 0
        try:
            async with self._session_factory() as session:
                with track_store_query("mark_dispatched"):
                    updated = await self._repository.mark_dispatched(session, message_ids)
                    await session.commit()
                return updated
        except STORE_ERRORS as e:
            raise _unavailable("mark_dispatched", e) from e

    async def count_pending(self) -> int:
        try:
            async with self._session_factory() as session:
                return await self._repository.count_pending(session)
        except STORE_ERRORS as e:
            raise _unavailable("count_pending", e) from e

    async def oldest_pending_timestamp(self) -> datetime | None:
        try:
            async with self._session_factory() as session:
                return await self._repository.oldest_pending_timestamp(session)
        except STORE_ERRORS as e:
            raise _unavailable("oldest_pending_timestamp", e) from e

    async def pending_channels(self) -> list[tuple[str, int]]:
        try:
            async with self._session_factory() as session:
                return await self._repository.pending_channels(session)
        except STORE_ERRORS as e:
            raise _unavailable("pending_channels", e) from e


__all__ = ["STORE_ERRORS", "OutboxClaim", "OutboxStore"]
