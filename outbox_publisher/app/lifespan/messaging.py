"""RabbitMQ/FastStream broker lifespan management."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from outbox_publisher.infra.messaging.broker import start_broker, stop_broker

from .registry import lifespan_registry

if TYPE_CHECKING:
    from outbox_publisher.core.settings import RabbitSettings

logger = logging.getLogger(__name__)


@lifespan_registry.register(name="messaging", startup_order=25, requires=["core"])
async def startup_messaging(rabbit_settings: RabbitSettings, **kwargs: object) -> None:
    """Connect the broker with timeout protection.

    Unless RABBIT_STARTUP_REQUIRE_RABBIT is set, a failed connection leaves
    the service running; sends fail as transient until the broker is back.
    """
    if not rabbit_settings.is_configured:
        return

    try:
        await start_broker()
        logger.info("RabbitMQ/FastStream broker initialized")
    except Exception as e:
        if rabbit_settings.startup_require_rabbit:
            logger.error(
                "RabbitMQ required but unavailable, failing startup",
                extra={"error": str(e), "startup_require_rabbit": True},
            )
            raise
        logger.warning(
            "RabbitMQ unavailable, continuing in degraded mode",
            extra={"error": str(e), "startup_require_rabbit": False},
        )


@lifespan_registry.register(name="messaging")
async def shutdown_messaging(rabbit_settings: RabbitSettings, **kwargs: object) -> None:
    if rabbit_settings.is_configured:
        await stop_broker()
        logger.info("RabbitMQ broker closed")
