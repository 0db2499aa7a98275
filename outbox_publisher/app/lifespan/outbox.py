"""Outbox publisher lifespan management."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from outbox_publisher.infra.outbox.processor import start_outbox_publisher, stop_outbox_publisher

from .registry import lifespan_registry

if TYPE_CHECKING:
    from outbox_publisher.core.settings import PostgresSettings, RabbitSettings

logger = logging.getLogger(__name__)


@lifespan_registry.register(name="outbox", startup_order=30, requires=["database", "messaging"])
async def startup_outbox(
    db_settings: PostgresSettings,
    rabbit_settings: RabbitSettings,
    **kwargs: object,
) -> None:
    """Create the publisher and start its loop when OUTBOX_ENABLED.

    Requires both PostgreSQL and RabbitMQ to be configured.
    """
    if not (db_settings.is_configured and rabbit_settings.is_configured):
        logger.info(
            "Outbox publisher not started: database and RabbitMQ must both be configured",
            extra={
                "database_enabled": db_settings.is_configured,
                "messaging_enabled": rabbit_settings.is_configured,
            },
        )
        return

    publisher = await start_outbox_publisher()
    if publisher is not None:
        logger.info("Outbox publisher ready", extra={"loop_running": publisher.is_running})


@lifespan_registry.register(name="outbox")
async def shutdown_outbox(**kwargs: object) -> None:
    # Stops before the broker closes
    await stop_outbox_publisher()
    logger.info("Outbox publisher stopped")
