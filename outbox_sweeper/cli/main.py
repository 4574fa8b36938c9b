"""Main CLI entry point for the outbox sweeper."""

import sys

import click
from pydantic import ValidationError

from outbox_sweeper import __version__
from outbox_sweeper.cli.commands import config, db, sweep
from outbox_sweeper.cli.utils import error
from outbox_sweeper.infra.logging.config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="outbox-sweeper")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Outbox Sweeper - delivers transactional outbox rows to SQS and SNS.

    \b
    Commands:
      run          Run the sweeper with its health endpoint
      sweep-once   Run a single sweep cycle
      status       Show the pending backlog
      db           Outbox table helpers
      config       Configuration inspection

    \b
    Quick Start:
      outbox-sweeper config show        # Effective configuration
      outbox-sweeper db init            # Create the outbox table (development)
      outbox-sweeper sweep-once         # Deliver one page of pending rows
      outbox-sweeper run                # Sweep until SIGTERM
    """
    ctx.ensure_object(dict)


cli.add_command(sweep.run)
cli.add_command(sweep.sweep_once)
cli.add_command(sweep.status)
cli.add_command(db.db)
cli.add_command(config.config)


def main() -> None:
    """Entry point for CLI."""
    try:
        setup_logging()
    except ValidationError as e:
        error(f"Invalid logging configuration: {e.error_count()} error(s)")
        sys.exit(1)
    cli(obj={})


if __name__ == "__main__":
    main()
