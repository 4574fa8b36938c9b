"""Async engine and session factory for the outbox database."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from outbox_sweeper.core.settings import get_db_settings
from outbox_sweeper.infra.metrics.prometheus import (
    database_connections_active,
    database_pool_checkedout,
    database_pool_invalidations_total,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from outbox_sweeper.core.settings import PostgresSettings

logger = logging.getLogger(__name__)


def create_engine(db_settings: PostgresSettings | None = None) -> AsyncEngine:
    """Create the async engine (psycopg3) from database settings.

    The ``core`` schema of the outbox model is remapped through the
    engine's ``schema_translate_map`` so deployments can keep the table
    elsewhere.
    """
    settings = db_settings or get_db_settings()
    engine = create_async_engine(settings.url, **settings.sqlalchemy_engine_kwargs())
    instrument_engine_pool(engine)

    logger.debug(
        "Database engine created",
        extra={"url": settings.masked_url, "pool_size": settings.pool_size},
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the outbox store.

    ``expire_on_commit`` is off so rows fetched by a claim stay readable after
    intermediate commits.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def check_connection(engine: AsyncEngine) -> bool:
    """Run ``SELECT 1`` against the database.

    Returns:
        True if the database answered, False otherwise
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Database connectivity check failed", extra={"error": str(e)})
        return False
    return True


async def close_engine(engine: AsyncEngine) -> None:
    """Dispose of the engine's pool. Call during shutdown."""
    logger.info("Closing database connections")
    await engine.dispose()


# ============================================================================
# Pool Metrics Instrumentation
# ============================================================================


def instrument_engine_pool(engine: AsyncEngine) -> None:
    """Attach pool event listeners that feed the database pool gauges."""
    pool = engine.sync_engine.pool

    @event.listens_for(pool, "connect")
    def _receive_connect(dbapi_conn: Any, connection_record: Any) -> None:
        _ = dbapi_conn, connection_record
        database_connections_active.inc()
        logger.debug("Database connection established")

    @event.listens_for(pool, "close")
    def _receive_close(dbapi_conn: Any, connection_record: Any) -> None:
        _ = dbapi_conn, connection_record
        database_connections_active.dec()
        logger.debug("Database connection closed")

    @event.listens_for(pool, "checkout")
    def _receive_checkout(dbapi_conn: Any, connection_record: Any, connection_proxy: Any) -> None:
        _ = dbapi_conn, connection_record, connection_proxy
        database_pool_checkedout.inc()

    @event.listens_for(pool, "checkin")
    def _receive_checkin(dbapi_conn: Any, connection_record: Any) -> None:
        _ = dbapi_conn, connection_record
        database_pool_checkedout.dec()

    @event.listens_for(pool, "invalidate")
    def _receive_invalidate(dbapi_conn: Any, connection_record: Any, exception: Any) -> None:
        _ = dbapi_conn, connection_record
        reason = "error" if exception else "explicit"
        database_pool_invalidations_total.labels(reason=reason).inc()
        logger.debug("Connection invalidated", extra={"reason": reason})


__all__ = [
    "check_connection",
    "close_engine",
    "create_engine",
    "create_session_factory",
    "instrument_engine_pool",
]
