"""Output formatting utilities for CLI commands."""

import json
from typing import Any

import click
import yaml


def success(message: str) -> None:
    """Print a success message in green."""
    click.secho(f"✓ {message}", fg="green")


def error(message: str) -> None:
    """Print an error message in red."""
    click.secho(f"✗ {message}", fg="red", err=True)


def warning(message: str) -> None:
    """Print a warning message in yellow."""
    click.secho(f"⚠ {message}", fg="yellow")


def info(message: str) -> None:
    """Print an info message in blue."""
    click.secho(f"ℹ {message}", fg="blue")


def header(message: str) -> None:
    """Print a header message in cyan bold."""
    click.secho(f"\n{message}", fg="cyan", bold=True)


def print_mapping(data: dict[str, Any], output_format: str = "table") -> None:
    """Print a (possibly nested) mapping as json, yaml or an aligned table."""
    if output_format == "json":
        click.echo(json.dumps(data, indent=2, default=str))
        return
    if output_format == "yaml":
        click.echo(yaml.safe_dump(json.loads(json.dumps(data, default=str)), sort_keys=False))
        return

    for key, value in data.items():
        if isinstance(value, dict):
            header(f"[{key}]")
            for sub_key, sub_value in value.items():
                click.echo(f"  {sub_key:30} = {sub_value}")
        else:
            click.echo(f"{key:32} {value}")
