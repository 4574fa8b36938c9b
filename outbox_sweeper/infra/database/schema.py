"""Development helper that creates the outbox table.

Production schemas are provisioned by the services that own the outbox.
This exists for local development, LocalStack setups and tests.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.schema import CreateSchema

from outbox_sweeper.infra.outbox.models import OUTBOX_SCHEMA, OutboxMessage

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


async def ensure_outbox_table(engine: AsyncEngine) -> None:
    """Create the outbox schema, table and index if they do not exist.

    Idempotent thanks to ``checkfirst``. The schema is resolved through the
    engine's ``schema_translate_map``; SQLite engines map it away.
    """
    translate_map = engine.sync_engine.get_execution_options().get("schema_translate_map") or {}
    schema = translate_map.get(OUTBOX_SCHEMA, OUTBOX_SCHEMA)

    async with engine.begin() as conn:
        if schema and conn.dialect.name == "postgresql":
            await conn.execute(CreateSchema(schema, if_not_exists=True))
        await conn.run_sync(
            lambda sync_conn: OutboxMessage.__table__.create(bind=sync_conn, checkfirst=True)
        )

    logger.info(
        "Outbox table ensured",
        extra={"schema": schema, "table": OutboxMessage.__tablename__},
    )


__all__ = ["ensure_outbox_table"]
