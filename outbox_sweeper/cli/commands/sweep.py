"""Sweeper commands: run the service, run one cycle, show the backlog."""

import sys

import click

from outbox_sweeper.cli.utils import (
    coro,
    error,
    header,
    info,
    print_mapping,
    require_valid_config,
    success,
    warning,
)
from outbox_sweeper.core.exceptions import StoreUnavailableError
from outbox_sweeper.core.settings import get_health_settings, get_sweeper_settings


@click.command(name="run")
@click.option("--port", type=int, default=None, help="Health endpoint port (overrides HEALTH_PORT)")
@click.option("--no-health", is_flag=True, help="Do not serve /health and /metrics")
@coro
async def run(port: int | None, no_health: bool) -> None:
    """Run the sweeper until SIGINT/SIGTERM.

    Examples:
        \b
        # Run with settings from the environment
        outbox-sweeper run

        # Health endpoint on another port
        outbox-sweeper run --port 9090
    """
    require_valid_config()
    from outbox_sweeper.app.runner import run_service

    health = get_health_settings()
    overrides: dict[str, object] = {}
    if port is not None:
        overrides["port"] = port
    if no_health:
        overrides["enabled"] = False
    if overrides:
        health = health.model_copy(update=overrides)

    clean = await run_service(get_sweeper_settings(), health)
    if not clean:
        sys.exit(1)


@click.command(name="sweep-once")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Override the fetch limit")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def sweep_once(limit: int | None, output_format: str) -> None:
    """Run a single sweep cycle and print its report."""
    require_valid_config()
    from outbox_sweeper.app.runner import sweeper_resources

    settings = get_sweeper_settings()
    if limit is not None:
        settings = settings.model_copy(update={"fetch_limit": limit})

    async with sweeper_resources(settings) as sweeper:
        try:
            report = await sweeper.sweep_once()
        except StoreUnavailableError as e:
            error(f"Outbox store unavailable: {e.detail}")
            sys.exit(1)

    print_mapping(report.to_dict(), output_format)
    if output_format == "table":
        for failure in report.dispatch.failures:
            warning(f"{failure.message_id}: {failure.reason}")
        if report.failed or report.mark_failures:
            warning("Some messages stay pending and will be retried")
        else:
            success("Sweep cycle completed")


@click.command(name="status")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def status(output_format: str) -> None:
    """Show pending count, oldest pending age and pending channels."""
    require_valid_config()
    from outbox_sweeper.app.runner import sweeper_resources

    async with sweeper_resources() as sweeper:
        try:
            pending, oldest_age = await sweeper.refresh_backlog_metrics()
            channels = await sweeper.store.pending_channels()
        except StoreUnavailableError as e:
            error(f"Outbox store unavailable: {e.detail}")
            sys.exit(1)

    data = {
        "pending": pending,
        "oldest_pending_age_seconds": round(oldest_age, 3) if oldest_age is not None else None,
        "channels": dict(channels),
    }
    if output_format == "json":
        print_mapping(data, "json")
        return

    info(f"Pending messages: {pending}")
    if oldest_age is not None:
        info(f"Oldest pending message: {oldest_age:.1f}s old")
    if channels:
        header("Pending by channel")
        for address, count in channels:
            click.echo(f"  {count:>8}  {address}")
