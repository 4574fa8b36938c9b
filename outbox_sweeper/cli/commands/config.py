"""Configuration management commands."""

import sys
from typing import Any

import click
from pydantic import SecretStr, ValidationError
from pydantic_settings import BaseSettings

from outbox_sweeper.cli.utils import error, info, print_mapping, require_valid_config, success, warning
from outbox_sweeper.core.settings import (
    get_aws_settings,
    get_db_settings,
    get_health_settings,
    get_logging_settings,
    get_sweeper_settings,
)


def _section(settings: BaseSettings, show_secrets: bool, exclude: set[str] | None = None) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name, value in settings.model_dump(exclude=exclude).items():
        if isinstance(value, SecretStr):
            value = value.get_secret_value() if show_secrets else "***"
        values[name] = value
    return values


def collect_config(show_secrets: bool = False) -> dict[str, dict[str, Any]]:
    """Effective configuration per section, secrets masked unless requested."""
    db = get_db_settings()
    db_section = _section(db, show_secrets, exclude={"dsn", "url"})
    db_section["url"] = db.url if show_secrets else db.masked_url

    return {
        "sweeper": _section(get_sweeper_settings(), show_secrets),
        "database": db_section,
        "aws": _section(get_aws_settings(), show_secrets),
        "logging": _section(get_logging_settings(), show_secrets),
        "health": _section(get_health_settings(), show_secrets),
    }


@click.group(name="config")
def config() -> None:
    """Configuration management commands."""


@config.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "yaml", "table"]),
    default="table",
    help="Output format",
)
@click.option(
    "--show-secrets/--hide-secrets",
    default=False,
    help="Show sensitive values (passwords, keys)",
)
def show(output_format: str, show_secrets: bool) -> None:
    """Display the effective configuration."""
    require_valid_config()

    if not show_secrets and output_format == "table":
        warning("Secrets are hidden. Use --show-secrets to display them.")

    print_mapping(collect_config(show_secrets), output_format)


@config.command()
def validate() -> None:
    """Validate every configuration section."""
    info("Validating configuration...")
    try:
        collect_config()
    except ValidationError as e:
        error(f"Invalid configuration: {e.error_count()} error(s)")
        click.echo(str(e), err=True)
        sys.exit(1)
    success("Configuration is valid")
