"""Router registry and setup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from outbox_publisher.core.settings import get_app_settings
from outbox_publisher.features.metrics.router import router as metrics_router
from outbox_publisher.features.outbox.router import router as outbox_router

if TYPE_CHECKING:
    from fastapi import FastAPI

    from outbox_publisher.core.settings.app import AppSettings

logger = logging.getLogger(__name__)


def setup_routers(app: FastAPI, app_settings: AppSettings | None = None) -> None:
    """Register feature routers; the outbox API lives under ``APP_API_PREFIX``."""
    app_settings = app_settings or get_app_settings()
    api_prefix = app_settings.api_prefix

    # Metrics endpoint (no prefix - accessible at /metrics)
    app.include_router(metrics_router)
    app.include_router(outbox_router, prefix=api_prefix)

    logger.debug("Routers registered", extra={"api_prefix": api_prefix or "/"})
