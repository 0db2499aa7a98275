"""Application lifespan management.

Importing the hook modules registers them with ``lifespan_registry``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING

from outbox_publisher.app.lifespan import core, database, messaging, outbox
from outbox_publisher.app.lifespan.registry import lifespan_registry
from outbox_publisher.core.settings import (
    get_app_settings,
    get_db_settings,
    get_logging_settings,
    get_outbox_settings,
    get_rabbit_settings,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

# Hook registration happens on import
_ = (core, database, messaging, outbox)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start database, broker and publisher; stop them in reverse order."""
    _ = app
    app_settings = get_app_settings()
    db_settings = get_db_settings()
    rabbit_settings = get_rabbit_settings()
    outbox_settings = get_outbox_settings()

    settings_dict = {
        "app_settings": app_settings,
        "db_settings": db_settings,
        "rabbit_settings": rabbit_settings,
        "log_settings": get_logging_settings(),
        "outbox_settings": outbox_settings,
    }

    await lifespan_registry.startup(**settings_dict)

    logger.info(
        "Application startup complete - listening on %s:%s",
        app_settings.host,
        app_settings.port,
        extra={
            "service": app_settings.service_name,
            "environment": app_settings.environment,
            "version": app_settings.version,
            "database_enabled": db_settings.is_configured,
            "messaging_enabled": rabbit_settings.is_configured,
            "outbox_loop_enabled": outbox_settings.enabled,
            "instance_id": outbox_settings.instance_id,
        },
    )

    yield

    logger.info("Application shutting down", extra={"service": app_settings.service_name})
    await lifespan_registry.shutdown(**settings_dict)
    logger.info("Application shutdown complete")


__all__ = ["lifespan"]
