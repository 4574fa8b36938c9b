"""Pytest configuration and shared fixtures.

Organization:
    - Settings Fixtures: isolated, cache-free settings per test
    - Database Fixtures: SQLite outbox table, store and row factory
    - Dispatch Fixtures: in-memory dispatch clients standing in for SQS/SNS

Tests never talk to PostgreSQL or AWS. The outbox table lives in a SQLite
file per test with the ``core`` schema mapped away.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Sequence
import asyncio
from datetime import timedelta
import itertools
import os
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from outbox_sweeper.core.database.base import utcnow
from outbox_sweeper.core.exceptions import DispatchError
from outbox_sweeper.core.settings import SweeperSettings, clear_all_caches
from outbox_sweeper.infra.database import create_session_factory, ensure_outbox_table
from outbox_sweeper.infra.messaging import ChannelKind, DeliveryOutcome
from outbox_sweeper.infra.outbox import OutboxMessage, OutboxStore

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

QUEUE_URL = "https://sqs.eu-west-1.amazonaws.com/123456789012/orders"
OTHER_QUEUE_URL = "https://sqs.eu-west-1.amazonaws.com/123456789012/invoices"
TOPIC_ADDRESS = "SNS::arn:aws:sns:eu-west-1:123456789012:order-events"

# Keep settings from picking up a developer's environment
for _var in [v for v in os.environ if v.startswith(("SWEEPER_", "DB_", "AWS_", "HEALTH_", "LOG_"))]:
    os.environ.pop(_var)
os.environ.pop("DATABASE_URL", None)


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point YAML config at an empty directory and reset settings caches."""
    monkeypatch.setenv("SWEEPER_CONFIG_DIR", str(tmp_path / "conf"))
    monkeypatch.chdir(tmp_path)
    clear_all_caches()
    yield
    clear_all_caches()


@pytest.fixture
def sweeper_settings() -> SweeperSettings:
    """Small, fast settings for cycle and scheduler tests."""
    return SweeperSettings(
        poll_interval_seconds=0.01,
        fetch_limit=100,
        backoff_base_seconds=0.01,
        backoff_max_seconds=0.05,
        backoff_jitter=False,
        shutdown_grace_seconds=1.0,
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """SQLite engine with the outbox table created.

    A file database is used so that concurrent sessions get their own
    connections.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'outbox.db'}",
        execution_options={"schema_translate_map": {"core": None}},
    )
    await ensure_outbox_table(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest.fixture
def outbox_store(session_factory: async_sessionmaker[AsyncSession]) -> OutboxStore:
    """Store without row locks (SQLite has no FOR UPDATE)."""
    return OutboxStore(session_factory, lock_rows=False)


@pytest.fixture
def make_message() -> Callable[..., OutboxMessage]:
    """Factory for unsaved OutboxMessage rows with unique ids and increasing age.

    Example:
        def test_batch(make_message):
            message = make_message(channel_address=TOPIC_ADDRESS)
    """
    counter = itertools.count(1)
    base_time = utcnow() - timedelta(minutes=10)

    def factory(**overrides: Any) -> OutboxMessage:
        n = next(counter)
        values: dict[str, Any] = {
            "message_id": f"m-{n}",
            "message_type": "OrderPlaced",
            "channel_address": QUEUE_URL,
            "timestamp": base_time + timedelta(seconds=n),
            "body": f'{{"order": {n}}}',
            "trace_parent": None,
        }
        values.update(overrides)
        return OutboxMessage(**values)

    return factory


@pytest.fixture
def insert_messages(session_factory: async_sessionmaker[AsyncSession]):
    """Persist OutboxMessage rows in one transaction."""

    async def insert(*messages: OutboxMessage) -> list[OutboxMessage]:
        async with session_factory() as session:
            session.add_all(messages)
            await session.commit()
        return list(messages)

    return insert


# ============================================================================
# Dispatch Fixtures
# ============================================================================


class FakeDispatchClient:
    """In-memory dispatch client recording every batch it is given.

    Attributes:
        sent: (channel_address, message_ids) per call, in call order
        reject: message ids the backend reports as failed
        fail_channels: channel addresses whose whole request raises
        omit: message ids the backend leaves out of its response
        delay: seconds each call takes
    """

    def __init__(self, kind: ChannelKind, *, delay: float = 0.0) -> None:
        self.kind = kind
        self.delay = delay
        self.sent: list[tuple[str, list[str]]] = []
        self.reject: set[str] = set()
        self.fail_channels: set[str] = set()
        self.omit: set[str] = set()
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def delivered_ids(self) -> list[str]:
        return [
            message_id
            for _, ids in self.sent
            for message_id in ids
            if message_id not in self.reject and message_id not in self.omit
        ]

    async def send(
        self,
        channel_address: str,
        batch: Sequence[OutboxMessage],
    ) -> list[DeliveryOutcome]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if channel_address in self.fail_channels:
                msg = "Connection reset by peer"
                raise DispatchError(msg, code="RequestError")
            self.sent.append((channel_address, [m.message_id for m in batch]))
            outcomes = []
            for message in batch:
                if message.message_id in self.omit:
                    continue
                if message.message_id in self.reject:
                    outcomes.append(
                        DeliveryOutcome.failure(
                            message.message_id, "InternalError: try again", code="InternalError"
                        )
                    )
                else:
                    outcomes.append(
                        DeliveryOutcome.success(message.message_id, f"aws-{message.message_id}")
                    )
            return outcomes
        finally:
            self.in_flight -= 1


@pytest.fixture
def queue_client() -> FakeDispatchClient:
    return FakeDispatchClient(ChannelKind.QUEUE)


@pytest.fixture
def topic_client() -> FakeDispatchClient:
    return FakeDispatchClient(ChannelKind.TOPIC)


@pytest.fixture
def dispatch_clients(
    queue_client: FakeDispatchClient,
    topic_client: FakeDispatchClient,
) -> dict[ChannelKind, FakeDispatchClient]:
    return {ChannelKind.QUEUE: queue_client, ChannelKind.TOPIC: topic_client}
