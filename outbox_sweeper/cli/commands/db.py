"""Database commands for the outbox table."""

import sys

import click

from outbox_sweeper.cli.utils import coro, error, info, require_valid_config, success
from outbox_sweeper.core.settings import get_db_settings
from outbox_sweeper.infra.database import (
    check_connection,
    close_engine,
    create_engine,
    ensure_outbox_table,
)


@click.group(name="db")
def db() -> None:
    """Outbox database commands."""


@db.command()
@coro
async def init() -> None:
    """Create the outbox schema, table and index if missing (development helper)."""
    require_valid_config()
    db_settings = get_db_settings()
    info(f"Connecting to: {db_settings.masked_url}")

    engine = create_engine(db_settings)
    try:
        await ensure_outbox_table(engine)
    except Exception as e:
        error(f"Failed to create the outbox table: {e}")
        sys.exit(1)
    finally:
        await close_engine(engine)

    success(f"Outbox table ready in schema '{db_settings.outbox_schema}'")


@db.command()
@coro
async def check() -> None:
    """Verify database connectivity."""
    require_valid_config()
    db_settings = get_db_settings()
    info(f"Connecting to: {db_settings.masked_url}")

    engine = create_engine(db_settings)
    try:
        reachable = await check_connection(engine)
    finally:
        await close_engine(engine)

    if not reachable:
        error("Database is not reachable")
        sys.exit(1)
    success("Database connected successfully!")
