"""Database base classes."""

from outbox_sweeper.core.database.base import Base, ensure_utc, utcnow

__all__ = ["Base", "ensure_utc", "utcnow"]
