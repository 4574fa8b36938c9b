"""Sweep cycle settings.

Environment variables use the SWEEPER_ prefix.
Example: SWEEPER_POLL_INTERVAL_SECONDS=2.5
         SWEEPER_CLAIM_MODE=skip_locked
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sources import yaml_source

# SQS SendMessageBatch and SNS PublishBatch both cap a request at 10 entries.
AWS_MAX_BATCH_ENTRIES = 10

ClaimMode = Literal["skip_locked", "none"]


class SweeperSettings(BaseSettings):
    """Tuning for the sweep scheduler, batcher and dispatcher.

    ``claim_mode`` states how concurrent sweepers avoid re-sending each
    other's rows:

    - ``skip_locked``: pending rows are selected FOR UPDATE SKIP LOCKED and
      stay locked until the cycle commits.
    - ``none``: no locking. Pure at-least-once; concurrent sweepers may send
      the same row twice.
    """

    # ─────────────────────────────────────────────────────
    # Polling
    # ─────────────────────────────────────────────────────
    poll_interval_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=3600.0,
        description="Seconds to wait between sweep cycles when idle.",
    )
    fetch_limit: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Maximum number of pending rows fetched per cycle.",
    )
    drain_when_full: bool = Field(
        default=True,
        description="Start the next cycle immediately when a cycle fetched a full page.",
    )

    # ─────────────────────────────────────────────────────
    # Batching
    # ─────────────────────────────────────────────────────
    max_queue_batch_size: int = Field(
        default=AWS_MAX_BATCH_ENTRIES,
        ge=1,
        le=AWS_MAX_BATCH_ENTRIES,
        description="Maximum messages per SQS SendMessageBatch request.",
    )
    max_topic_batch_size: int = Field(
        default=AWS_MAX_BATCH_ENTRIES,
        ge=1,
        le=AWS_MAX_BATCH_ENTRIES,
        description="Maximum messages per SNS PublishBatch request.",
    )

    # ─────────────────────────────────────────────────────
    # Store backoff
    # ─────────────────────────────────────────────────────
    backoff_base_seconds: float = Field(
        default=1.0,
        gt=0.0,
        le=600.0,
        description="Delay after the first consecutive store failure.",
    )
    backoff_max_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Upper bound for the store-failure backoff delay.",
    )
    backoff_jitter: bool = Field(
        default=True,
        description="Randomise backoff delays to avoid synchronised retries across sweepers.",
    )

    # ─────────────────────────────────────────────────────
    # Concurrency and shutdown
    # ─────────────────────────────────────────────────────
    claim_mode: ClaimMode = Field(
        default="skip_locked",
        description="Cross-sweeper coordination strategy (skip_locked|none).",
    )
    max_concurrent_channels: int = Field(
        default=4,
        ge=1,
        le=256,
        description="Maximum number of channels dispatched concurrently within a cycle.",
    )
    shutdown_grace_seconds: float = Field(
        default=30.0,
        ge=0.0,
        le=600.0,
        description="How long in-flight dispatches may run after a shutdown signal.",
    )

    model_config = SettingsConfigDict(
        env_prefix="SWEEPER_",
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
            yaml_source(settings_cls, "sweeper"),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> SweeperSettings:
        if self.backoff_max_seconds < self.backoff_base_seconds:
            msg = "backoff_max_seconds must be greater than or equal to backoff_base_seconds"
            raise ValueError(msg)
        return self

    @property
    def uses_row_locks(self) -> bool:
        """Whether pending rows are locked for the duration of a cycle."""
        return self.claim_mode == "skip_locked"
