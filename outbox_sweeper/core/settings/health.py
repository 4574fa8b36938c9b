"""Health endpoint settings."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sources import yaml_source


class HealthSettings(BaseSettings):
    """Liveness endpoint served next to the sweeper.

    Environment variables use HEALTH_ prefix.
    Example: HEALTH_PORT=8080
    """

    enabled: bool = Field(default=True, description="Serve GET /health")
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")
    metrics_enabled: bool = Field(default=True, description="Serve GET /metrics (Prometheus)")

    model_config = SettingsConfigDict(
        env_prefix="HEALTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        """Customize settings source precedence."""
        return (
            init_settings,
            yaml_source(settings_cls, "health"),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )
