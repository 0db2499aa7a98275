"""Core lifespan services: logging and the application info metric.

These run first and have no dependencies.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from outbox_publisher.infra.logging.config import setup_logging
from outbox_publisher.infra.metrics.prometheus import app_info

from .registry import lifespan_registry

if TYPE_CHECKING:
    from outbox_publisher.core.settings import AppSettings, LoggingSettings

logger = logging.getLogger(__name__)


@lifespan_registry.register(name="core", startup_order=1)
async def startup_core(
    app_settings: AppSettings,
    log_settings: LoggingSettings,
    **kwargs: object,
) -> None:
    setup_logging(log_settings=log_settings, force=True)
    logger.info(
        "Application starting",
        extra={"service": app_settings.service_name, "environment": app_settings.environment},
    )

    app_info.labels(
        service=app_settings.service_name,
        version=app_settings.version,
        environment=app_settings.environment,
    ).set(1)


@lifespan_registry.register(name="core")
async def shutdown_core(**kwargs: object) -> None:
    logger.debug("Core services shutdown (no cleanup needed)")
