"""Database connection lifespan management."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from outbox_publisher.infra.database.session import close_database, create_tables, init_database

from .registry import lifespan_registry

if TYPE_CHECKING:
    from outbox_publisher.core.settings import PostgresSettings

logger = logging.getLogger(__name__)


@lifespan_registry.register(name="database", startup_order=10, requires=["core"])
async def startup_database(db_settings: PostgresSettings, **kwargs: object) -> None:
    """Check PostgreSQL connectivity, or prepare the local SQLite fallback.

    With DB_STARTUP_REQUIRE_DB=false an unreachable database only degrades
    the service; publish cycles fail until it comes back.
    """
    if not db_settings.is_configured:
        await create_tables()
        logger.info("PostgreSQL not configured, using local SQLite database")
        return

    try:
        await init_database()
        logger.info("Database connection initialized")
    except Exception as e:
        if db_settings.startup_require_db:
            logger.exception(
                "Database required but unavailable, failing startup",
                extra={"error": str(e), "startup_require_db": True},
            )
            raise
        logger.warning(
            "Database unavailable, continuing in degraded mode",
            extra={"error": str(e), "startup_require_db": False},
        )


@lifespan_registry.register(name="database")
async def shutdown_database(**kwargs: object) -> None:
    await close_database()
    logger.info("Database connection closed")
