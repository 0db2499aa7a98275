"""Outbox publisher settings.

Controls the fixed-delay publish schedule, the distributed lock, retry
budgets and destination routing.
"""

from __future__ import annotations

import os
import socket
from datetime import timedelta
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_outbox_yaml_source


def _default_instance_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class OutboxSettings(BaseSettings):
    """Outbox publisher configuration.

    Environment variables use OUTBOX_ prefix.
    Example: OUTBOX_POLL_INTERVAL=0.5, OUTBOX_BATCH_SIZE=100

    ``destinations`` maps logical names to physical queues and can be given
    as JSON: OUTBOX_DESTINATIONS='{"orders": "orders.v2"}'
    """

    # ─────────────────────────────────────────────────────
    # Scheduling
    # ─────────────────────────────────────────────────────
    enabled: bool = Field(
        default=True,
        description="Run the background publisher loop when the app starts.",
    )
    poll_interval: float = Field(
        default=1.0,
        gt=0.0,
        le=3600.0,
        description="Seconds to sleep after a cycle completes before the next one starts.",
    )
    batch_size: int = Field(
        default=50,
        ge=1,
        le=10_000,
        description="Maximum number of entries fetched per cycle.",
    )
    max_retries: int = Field(
        default=5,
        ge=1,
        le=1000,
        description="Default per-entry attempt ceiling for newly staged entries.",
    )

    # ─────────────────────────────────────────────────────
    # Distributed lock
    # ─────────────────────────────────────────────────────
    lock_name: str = Field(
        default="outbox-publisher",
        min_length=1,
        max_length=64,
        description="Name of the row in the shedlock table.",
    )
    lock_hold_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=86_400.0,
        description="Maximum time a holder may keep the lock without renewing (lockAtMostFor).",
    )
    lock_min_hold_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=3600.0,
        description="Minimum time the lock stays held after acquisition (lockAtLeastFor).",
    )
    instance_id: str = Field(
        default_factory=_default_instance_id,
        min_length=1,
        max_length=255,
        description="Identity written to shedlock.locked_by.",
    )

    # ─────────────────────────────────────────────────────
    # Delivery
    # ─────────────────────────────────────────────────────
    send_timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=600.0,
        description="Per-entry send deadline in seconds; exceeding it counts as a transient failure.",
    )
    delivery_concurrency: int = Field(
        default=1,
        ge=1,
        le=256,
        description="Maximum concurrent sends within one cycle.",
    )
    shutdown_timeout: float = Field(
        default=30.0,
        ge=0.0,
        le=600.0,
        description="Seconds to wait for an in-flight cycle on shutdown before cancelling it.",
    )

    # ─────────────────────────────────────────────────────
    # Retry backoff
    # ─────────────────────────────────────────────────────
    backoff_enabled: bool = Field(
        default=False,
        description="Delay re-attempts of transiently failed entries with exponential backoff.",
    )
    backoff_base_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Delay after the first transient failure.",
    )
    backoff_max_seconds: float = Field(
        default=3600.0,
        gt=0.0,
        description="Upper bound for the backoff delay.",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Growth factor between consecutive backoff delays.",
    )
    max_error_length: int = Field(
        default=1000,
        ge=32,
        le=100_000,
        description="last_error is truncated to this many characters.",
    )

    # ─────────────────────────────────────────────────────
    # Destination routing
    # ─────────────────────────────────────────────────────
    destinations: dict[str, str] = Field(
        default_factory=dict,
        description="Explicit logical destination to physical queue routes.",
    )
    use_queue_prefix: bool = Field(
        default=False,
        description="Prefix unrouted destinations with RABBIT_QUEUE_PREFIX.",
    )
    strict_destinations: bool = Field(
        default=False,
        description="Treat destinations missing from the route map as permanent failures.",
    )

    model_config = SettingsConfigDict(
        env_prefix="OUTBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Customize settings source precedence: init > yaml > env > dotenv > secrets."""
        return (
            init_settings,
            create_outbox_yaml_source(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def validate_lock_timing(self) -> OutboxSettings:
        """The lock must outlive one poll interval and one send."""
        if self.lock_hold_seconds <= self.poll_interval:
            msg = "lock_hold_seconds must be greater than poll_interval"
            raise ValueError(msg)
        if self.lock_hold_seconds <= self.send_timeout:
            msg = "lock_hold_seconds must be greater than send_timeout"
            raise ValueError(msg)
        if self.lock_min_hold_seconds > self.lock_hold_seconds:
            msg = "lock_min_hold_seconds cannot exceed lock_hold_seconds"
            raise ValueError(msg)
        if self.backoff_base_seconds > self.backoff_max_seconds:
            msg = "backoff_base_seconds cannot exceed backoff_max_seconds"
            raise ValueError(msg)
        return self

    @property
    def lock_hold(self) -> timedelta:
        return timedelta(seconds=self.lock_hold_seconds)

    @property
    def lock_min_hold(self) -> timedelta:
        return timedelta(seconds=self.lock_min_hold_seconds)
