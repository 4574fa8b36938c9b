"""CLI command modules."""

from outbox_sweeper.cli.commands import config, db, sweep

__all__ = ["config", "db", "sweep"]
