"""End-to-end sweep cycles: SQLite outbox, real store and dispatcher, fake backends."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from outbox_sweeper.core.exceptions import StoreUnavailableError
from outbox_sweeper.infra.database import create_session_factory
from outbox_sweeper.infra.messaging import ChannelKind
from outbox_sweeper.infra.metrics.prometheus import REGISTRY
from outbox_sweeper.infra.outbox import OutboxMessage, OutboxStore
from outbox_sweeper.sweeper import Dispatcher, OutboxSweeper, SchedulerState, SweepScheduler
from tests.conftest import OTHER_QUEUE_URL, QUEUE_URL, TOPIC_ADDRESS, FakeDispatchClient


def build(store, clients, settings) -> OutboxSweeper:
    dispatcher = Dispatcher(clients, max_concurrency=settings.max_concurrent_channels)
    return OutboxSweeper(store, dispatcher, settings)


async def pending_ids(session_factory) -> set[str]:
    async with session_factory() as session:
        stmt = select(OutboxMessage.message_id).where(OutboxMessage.dispatched.is_(None))
        return set((await session.execute(stmt)).scalars().all())


@pytest.mark.integration
class TestSweepOnce:
    """Test suite for OutboxSweeper.sweep_once."""

    @pytest.mark.asyncio
    async def test_delivers_queue_and_topic_messages(
        self,
        outbox_store,
        session_factory,
        dispatch_clients,
        queue_client,
        topic_client,
        sweeper_settings,
        make_message,
        insert_messages,
    ):
        await insert_messages(
            make_message(channel_address=QUEUE_URL),
            make_message(channel_address=QUEUE_URL),
            make_message(channel_address=QUEUE_URL),
            make_message(channel_address=TOPIC_ADDRESS),
            make_message(channel_address=TOPIC_ADDRESS),
        )
        sweeper = build(outbox_store, dispatch_clients, sweeper_settings)

        report = await sweeper.sweep_once()

        assert queue_client.sent == [(QUEUE_URL, ["m-1", "m-2", "m-3"])]
        assert topic_client.sent == [(TOPIC_ADDRESS, ["m-4", "m-5"])]
        assert report.fetched == 5
        assert report.delivered == 5
        assert report.marked == 5
        assert report.outcome == "completed"
        assert report.cycle_id == "c-1"
        assert await pending_ids(session_factory) == set()

    @pytest.mark.asyncio
    async def test_failed_message_retried_next_cycle(
        self,
        outbox_store,
        session_factory,
        dispatch_clients,
        queue_client,
        sweeper_settings,
        make_message,
        insert_messages,
    ):
        await insert_messages(make_message(), make_message(), make_message())
        queue_client.reject = {"m-2"}
        sweeper = build(outbox_store, dispatch_clients, sweeper_settings)

        first = await sweeper.sweep_once()

        assert first.delivered == 2
        assert first.failed == 1
        assert first.outcome == "degraded"
        assert await pending_ids(session_factory) == {"m-2"}

        queue_client.reject = set()
        second = await sweeper.sweep_once()

        assert second.fetched == 1
        assert second.delivered == 1
        assert second.cycle_id == "c-2"
        assert await pending_ids(session_factory) == set()
        assert [ids for _, ids in queue_client.sent] == [["m-1", "m-2", "m-3"], ["m-2"]]

    @pytest.mark.asyncio
    async def test_empty_outbox(self, outbox_store, dispatch_clients, sweeper_settings, queue_client):
        sweeper = build(outbox_store, dispatch_clients, sweeper_settings)

        report = await sweeper.sweep_once()

        assert report.fetched == 0
        assert report.outcome == "empty"
        assert report.is_full is False
        assert queue_client.sent == []

    @pytest.mark.asyncio
    async def test_fetch_limit_pages_oldest_first(
        self,
        outbox_store,
        session_factory,
        dispatch_clients,
        queue_client,
        sweeper_settings,
        make_message,
        insert_messages,
    ):
        await insert_messages(*(make_message() for _ in range(5)))
        settings = sweeper_settings.model_copy(update={"fetch_limit": 2})
        sweeper = build(outbox_store, dispatch_clients, settings)

        report = await sweeper.sweep_once()

        assert report.is_full is True
        assert queue_client.sent == [(QUEUE_URL, ["m-1", "m-2"])]
        assert await pending_ids(session_factory) == {"m-3", "m-4", "m-5"}

    @pytest.mark.asyncio
    async def test_store_unavailable_propagates(self, dispatch_clients, sweeper_settings, tmp_path):
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'no-table.db'}",
            execution_options={"schema_translate_map": {"core": None}},
        )
        store = OutboxStore(create_session_factory(engine), lock_rows=False)
        sweeper = build(store, dispatch_clients, sweeper_settings)
        try:
            with pytest.raises(StoreUnavailableError):
                await sweeper.sweep_once()
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_unexpected_error_counted_as_error_cycle(
        self,
        outbox_store,
        session_factory,
        dispatch_clients,
        sweeper_settings,
        make_message,
        insert_messages,
        monkeypatch,
    ):
        await insert_messages(make_message())
        sweeper = build(outbox_store, dispatch_clients, sweeper_settings)

        async def explode(*args, **kwargs):
            raise RuntimeError("dispatcher bug")

        monkeypatch.setattr(sweeper.dispatcher, "dispatch", explode)
        before = REGISTRY.get_sample_value("outbox_sweep_cycles_total", {"outcome": "error"}) or 0.0

        with pytest.raises(RuntimeError, match="dispatcher bug"):
            await sweeper.sweep_once()

        after = REGISTRY.get_sample_value("outbox_sweep_cycles_total", {"outcome": "error"})
        assert after == before + 1
        assert await pending_ids(session_factory) == {"m-1"}

    @pytest.mark.asyncio
    async def test_backlog_metrics(
        self, outbox_store, dispatch_clients, sweeper_settings, make_message, insert_messages
    ):
        await insert_messages(make_message(), make_message(channel_address=OTHER_QUEUE_URL))
        sweeper = build(outbox_store, dispatch_clients, sweeper_settings)

        pending, oldest_age = await sweeper.refresh_backlog_metrics()

        assert pending == 2
        assert oldest_age is not None
        assert oldest_age >= 590


@pytest.mark.integration
class TestConcurrentSweepers:
    """Two sweepers over one outbox deliver every row at least once."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("claim_mode", ["skip_locked", "none"])
    async def test_all_rows_dispatched(
        self,
        claim_mode,
        session_factory,
        sweeper_settings,
        make_message,
        insert_messages,
    ):
        await insert_messages(
            *(
                make_message(channel_address=QUEUE_URL if i % 2 else TOPIC_ADDRESS)
                for i in range(40)
            )
        )
        settings = sweeper_settings.model_copy(update={"fetch_limit": 7, "claim_mode": claim_mode})
        fleets = []
        for _ in range(2):
            clients = {
                ChannelKind.QUEUE: FakeDispatchClient(ChannelKind.QUEUE, delay=0.001),
                ChannelKind.TOPIC: FakeDispatchClient(ChannelKind.TOPIC, delay=0.001),
            }
            store = OutboxStore(session_factory, lock_rows=settings.uses_row_locks)
            fleets.append((build(store, clients, settings), clients))

        reports = []

        async def drain(sweeper: OutboxSweeper) -> None:
            while True:
                try:
                    report = await sweeper.sweep_once()
                except StoreUnavailableError:
                    # SQLite write-lock contention; the claim rolled back
                    await asyncio.sleep(0.01)
                    continue
                reports.append(report)
                if not report.fetched:
                    return

        async with asyncio.timeout(30.0):
            await asyncio.gather(*(drain(sweeper) for sweeper, _ in fleets))

        assert fleets[0][0].store.lock_rows is (claim_mode == "skip_locked")
        assert await pending_ids(session_factory) == set()
        assert sum(report.marked for report in reports) == 40
        delivered = {
            mid
            for _, clients in fleets
            for client in clients.values()
            for mid in client.delivered_ids
        }
        assert len(delivered) == 40


@pytest.mark.integration
@pytest.mark.asyncio
async def test_scheduler_drains_outbox(
    outbox_store,
    session_factory,
    dispatch_clients,
    sweeper_settings,
    make_message,
    insert_messages,
):
    await insert_messages(*(make_message() for _ in range(12)))
    settings = sweeper_settings.model_copy(update={"fetch_limit": 5})
    scheduler = SweepScheduler(build(outbox_store, dispatch_clients, settings), settings)

    await scheduler.start()
    async with asyncio.timeout(5.0):
        while await pending_ids(session_factory):
            await asyncio.sleep(0.01)
    await scheduler.stop()

    assert scheduler.state is SchedulerState.STOPPED
    assert scheduler.crashed is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_rejected_full_page_sent_once_per_interval(
    outbox_store,
    session_factory,
    dispatch_clients,
    queue_client,
    sweeper_settings,
    make_message,
    insert_messages,
):
    await insert_messages(make_message(), make_message())
    queue_client.reject = {"m-1", "m-2"}
    settings = sweeper_settings.model_copy(
        update={"fetch_limit": 2, "poll_interval_seconds": 10.0}
    )
    scheduler = SweepScheduler(build(outbox_store, dispatch_clients, settings), settings)

    await scheduler.start()
    async with asyncio.timeout(5.0):
        while not queue_client.sent:
            await asyncio.sleep(0.01)
    await asyncio.sleep(0.3)
    await scheduler.stop()

    assert queue_client.sent == [(QUEUE_URL, ["m-1", "m-2"])]
    assert await pending_ids(session_factory) == {"m-1", "m-2"}
