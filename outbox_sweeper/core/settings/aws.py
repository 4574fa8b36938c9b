"""AWS client settings for the SQS and SNS dispatch clients.

Environment variables use AWS_ prefix, so the standard AWS variable names
apply: AWS_REGION, AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_ENDPOINT_URL.

Supports:
- AWS (default, no endpoint needed, credentials from the default chain)
- LocalStack (set AWS_ENDPOINT_URL=http://localhost:4566)
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sources import yaml_source


class AwsSettings(BaseSettings):
    """Connection settings shared by the SQS and SNS clients."""

    region: str = Field(
        default="eu-west-1",
        min_length=1,
        description="AWS region used for SQS and SNS requests.",
    )
    endpoint_url: str | None = Field(
        default=None,
        description="Custom endpoint (LocalStack). None for AWS.",
    )
    access_key_id: SecretStr | None = Field(
        default=None,
        description="Static access key. None uses the default credential chain.",
    )
    secret_access_key: SecretStr | None = Field(
        default=None,
        description="Static secret key. None uses the default credential chain.",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="botocore retry attempts per request.",
    )
    retry_mode: Literal["standard", "adaptive", "legacy"] = Field(
        default="standard",
        description="botocore retry mode.",
    )
    connect_timeout: float = Field(default=5.0, ge=0.1, le=120.0)
    read_timeout: float = Field(default=30.0, ge=0.1, le=300.0)
    max_pool_connections: int = Field(default=10, ge=1, le=200)

    model_config = SettingsConfigDict(
        env_prefix="AWS_",
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
        """Customize settings source precedence: init > yaml > env > dotenv > secrets."""
        return (
            init_settings,
            yaml_source(settings_cls, "aws"),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @property
    def has_static_credentials(self) -> bool:
        return self.access_key_id is not None and self.secret_access_key is not None

    def client_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``aioboto3.Session().client(...)`` (minus ``config``)."""
        kwargs: dict[str, Any] = {"region_name": self.region}

        if self.has_static_credentials:
            kwargs["aws_access_key_id"] = self.access_key_id.get_secret_value()  # type: ignore[union-attr]
            kwargs["aws_secret_access_key"] = self.secret_access_key.get_secret_value()  # type: ignore[union-attr]

        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url

        return kwargs
