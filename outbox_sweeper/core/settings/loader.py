"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process.

Usage:
    from outbox_sweeper.core.settings import get_sweeper_settings

    settings = get_sweeper_settings()  # First call: loads and validates
    settings = get_sweeper_settings()  # Subsequent calls: cached instance

Testing:
    Clear the caches to force a reload after changing the environment:
    clear_all_caches()

    Or construct settings directly:
    settings = SweeperSettings(fetch_limit=5)
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import ValidationError

from outbox_sweeper.core.exceptions import ConfigurationError

from .aws import AwsSettings
from .health import HealthSettings
from .logs import LoggingSettings
from .postgres import PostgresSettings
from .sweeper import SweeperSettings


@lru_cache(maxsize=1)
def get_sweeper_settings() -> SweeperSettings:
    """Get cached sweep cycle settings.

    Returns:
        Validated and frozen SweeperSettings instance.
    """
    return SweeperSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> PostgresSettings:
    """Get cached database settings.

    Returns:
        Validated and frozen PostgresSettings instance.
    """
    return PostgresSettings()


@lru_cache(maxsize=1)
def get_aws_settings() -> AwsSettings:
    """Get cached AWS client settings.

    Returns:
        Validated and frozen AwsSettings instance.
    """
    return AwsSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_health_settings() -> HealthSettings:
    """Get cached health endpoint settings.

    Returns:
        Validated and frozen HealthSettings instance.
    """
    return HealthSettings()


def clear_all_caches() -> None:
    """Clear every settings cache (tests and config reloads)."""
    get_sweeper_settings.cache_clear()
    get_db_settings.cache_clear()
    get_aws_settings.cache_clear()
    get_logging_settings.cache_clear()
    get_health_settings.cache_clear()


def validate_all() -> None:
    """Load every settings section, converting validation errors.

    Raises:
        ConfigurationError: If any section fails validation.
    """
    loaders = {
        "sweeper": get_sweeper_settings,
        "db": get_db_settings,
        "aws": get_aws_settings,
        "logging": get_logging_settings,
        "health": get_health_settings,
    }
    for section, loader in loaders.items():
        try:
            loader()
        except ValidationError as e:
            msg = f"Invalid {section} configuration: {e.error_count()} error(s)"
            raise ConfigurationError(
                msg,
                extra={"section": section, "errors": e.errors(include_url=False)},
            ) from e
