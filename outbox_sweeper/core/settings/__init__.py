"""Modular Pydantic Settings v2 configuration.

Settings are split by concern and follow 12-factor principles:
- Single source of truth via environment variables
- Optional YAML/conf.d file support for local development
- LRU-cached loaders
- Immutable (frozen) settings models
- SecretStr for sensitive fields

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. YAML/conf.d files (optional, local/dev)
    3. Environment variables (production)
    4. .env file (development only)
    5. secrets_dir (Kubernetes/Docker secrets)
"""

from __future__ import annotations

from .aws import AwsSettings
from .health import HealthSettings
from .loader import (
    clear_all_caches,
    get_aws_settings,
    get_db_settings,
    get_health_settings,
    get_logging_settings,
    get_sweeper_settings,
    validate_all,
)
from .logs import LoggingSettings
from .postgres import PostgresSettings
from .sweeper import SweeperSettings

__all__ = [
    "AwsSettings",
    "HealthSettings",
    "LoggingSettings",
    "PostgresSettings",
    "SweeperSettings",
    "clear_all_caches",
    "get_aws_settings",
    "get_db_settings",
    "get_health_settings",
    "get_logging_settings",
    "get_sweeper_settings",
    "validate_all",
]
