"""Process wiring: settings, database, dispatch clients, scheduler and health server."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import TYPE_CHECKING

import uvicorn

from outbox_sweeper.app.health import create_health_app
from outbox_sweeper.core.settings import (
    get_aws_settings,
    get_db_settings,
    get_health_settings,
    get_sweeper_settings,
)
from outbox_sweeper.infra.database import close_engine, create_engine, create_session_factory
from outbox_sweeper.infra.messaging import open_dispatch_clients
from outbox_sweeper.infra.outbox import OutboxStore
from outbox_sweeper.sweeper import Dispatcher, OutboxSweeper, SweepScheduler

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from sqlalchemy.ext.asyncio import AsyncEngine

    from outbox_sweeper.core.settings import HealthSettings, SweeperSettings
    from outbox_sweeper.infra.messaging import ChannelKind, DispatchClient

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def build_sweeper(
    engine: AsyncEngine,
    clients: Mapping[ChannelKind, DispatchClient],
    settings: SweeperSettings,
) -> OutboxSweeper:
    """Assemble store, dispatcher and sweeper for an engine and client set."""
    store = OutboxStore(create_session_factory(engine), lock_rows=settings.uses_row_locks)
    dispatcher = Dispatcher(clients, max_concurrency=settings.max_concurrent_channels)
    return OutboxSweeper(store, dispatcher, settings)


def build_health_server(scheduler: SweepScheduler, settings: HealthSettings) -> uvicorn.Server:
    """Uvicorn server for the health app, sharing the sweeper's event loop."""
    app = create_health_app(scheduler, metrics_enabled=settings.metrics_enabled)
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=False,
        lifespan="off",
    )
    return uvicorn.Server(config)


@contextlib.asynccontextmanager
async def sweeper_resources(
    sweeper_settings: SweeperSettings | None = None,
) -> AsyncIterator[OutboxSweeper]:
    """Engine, dispatch clients and sweeper, torn down on exit."""
    settings = sweeper_settings or get_sweeper_settings()
    engine = create_engine(get_db_settings())
    try:
        async with open_dispatch_clients(get_aws_settings()) as clients:
            yield build_sweeper(engine, clients, settings)
    finally:
        await close_engine(engine)


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _on_signal, sig, stop)


def _on_signal(sig: signal.Signals, stop: asyncio.Event) -> None:
    logger.info("Shutdown signal received", extra={"signal": sig.name})
    stop.set()


async def run_service(
    sweeper_settings: SweeperSettings | None = None,
    health_settings: HealthSettings | None = None,
) -> bool:
    """Run the sweeper until SIGINT/SIGTERM, then shut down gracefully.

    Returns:
        True if the scheduler stopped cleanly, False if it crashed
    """
    settings = sweeper_settings or get_sweeper_settings()
    health = health_settings or get_health_settings()

    stop = asyncio.Event()
    _install_signal_handlers(stop)

    async with sweeper_resources(settings) as sweeper:
        scheduler = SweepScheduler(sweeper, settings)
        await scheduler.start()

        waiters: list[asyncio.Task[object]] = [
            asyncio.create_task(stop.wait(), name="shutdown-signal"),
            asyncio.create_task(scheduler.wait(), name="scheduler-exit"),
        ]

        server: uvicorn.Server | None = None
        server_task: asyncio.Task[None] | None = None
        if health.enabled:
            server = build_health_server(scheduler, health)
            server_task = asyncio.create_task(server.serve(), name="health-server")
            # Uvicorn captures SIGINT/SIGTERM while serving; its exit means shutdown
            waiters.append(server_task)
            logger.info(
                "Health endpoint listening",
                extra={"host": health.host, "port": health.port},
            )

        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

        await scheduler.stop()

        if server is not None and server_task is not None:
            server.should_exit = True
            with contextlib.suppress(asyncio.CancelledError):
                await server_task
        for waiter in waiters:
            if not waiter.done():
                waiter.cancel()

    logger.info("Outbox sweeper shut down", extra={"clean": not scheduler.crashed})
    return not scheduler.crashed


__all__ = ["build_health_server", "build_sweeper", "run_service", "sweeper_resources"]
