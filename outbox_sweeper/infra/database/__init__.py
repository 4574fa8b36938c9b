"""Database engine, sessions and the outbox table helper."""

from outbox_sweeper.infra.database.schema import ensure_outbox_table
from outbox_sweeper.infra.database.session import (
    check_connection,
    close_engine,
    create_engine,
    create_session_factory,
)

__all__ = [
    "check_connection",
    "close_engine",
    "create_engine",
    "create_session_factory",
    "ensure_outbox_table",
]
