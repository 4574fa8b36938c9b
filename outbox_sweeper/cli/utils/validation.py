"""Configuration checks shared by CLI commands."""

import sys

from outbox_sweeper.cli.utils.formatters import error
from outbox_sweeper.core.exceptions import ConfigurationError
from outbox_sweeper.core.settings import validate_all


def require_valid_config() -> None:
    """Load every settings section or exit with status 1."""
    try:
        validate_all()
    except ConfigurationError as e:
        error(e.detail)
        for problem in e.extra.get("errors", []):
            location = ".".join(str(part) for part in problem.get("loc", ()))
            error(f"  {location or '<root>'}: {problem.get('msg')}")
        sys.exit(1)
