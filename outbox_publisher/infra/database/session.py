"""Database session management with psycopg3 async driver."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from outbox_publisher.core.settings import get_app_settings, get_db_settings
from outbox_publisher.infra.metrics.prometheus import (
    database_connections_active,
    database_query_duration_seconds,
)
from outbox_publisher.utils.retry import retry

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)

# Used when DB_ENABLED=false (local runs, tests)
FALLBACK_DATABASE_URL = "sqlite+aiosqlite:///./outbox.db"

db_settings = get_db_settings()
app_settings = get_app_settings()


def _build_engine() -> AsyncEngine:
    if not db_settings.is_configured:
        return create_async_engine(FALLBACK_DATABASE_URL, echo=db_settings.echo)
    # application_name travels in the URL query string for psycopg3
    return create_async_engine(
        db_settings.get_sqlalchemy_url(),
        **{**db_settings.sqlalchemy_engine_kwargs(), "echo": db_settings.echo or app_settings.debug},
    )


engine = _build_engine()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# ============================================================================
# Database Metrics Instrumentation
# ============================================================================


@event.listens_for(engine.sync_engine.pool, "connect")
def _receive_connect(dbapi_conn: Any, connection_record: Any) -> None:
    _ = dbapi_conn, connection_record
    database_connections_active.inc()


@event.listens_for(engine.sync_engine.pool, "close")
def _receive_close(dbapi_conn: Any, connection_record: Any) -> None:
    _ = dbapi_conn, connection_record
    database_connections_active.dec()


_SQL_OPERATIONS = ("SELECT", "INSERT", "UPDATE", "DELETE", "BEGIN", "COMMIT", "ROLLBACK")


@event.listens_for(engine.sync_engine, "before_cursor_execute")
def _before_cursor_execute(
    conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: Any
) -> None:
    _ = conn, cursor, statement, parameters, executemany
    context._query_start_time = time.perf_counter()


@event.listens_for(engine.sync_engine, "after_cursor_execute")
def _after_cursor_execute(
    conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: Any
) -> None:
    """Record query duration and link to current trace via exemplar."""
    _ = conn, cursor, parameters, executemany
    duration = time.perf_counter() - context._query_start_time

    head = statement.lstrip()[:8].upper() if statement else ""
    operation = next((op for op in _SQL_OPERATIONS if head.startswith(op)), "UNKNOWN")

    span = trace.get_current_span()
    if span and span.get_span_context().is_valid:
        trace_id = format(span.get_span_context().trace_id, "032x")
        database_query_duration_seconds.labels(operation=operation).observe(
            duration, exemplar={"trace_id": trace_id}
        )
    else:
        database_query_duration_seconds.labels(operation=operation).observe(duration)


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Get async database session.

    Example:
        async with get_async_session() as session:
            stats = await repo.count_unpublished(session)
    """
    async with AsyncSessionLocal() as session:
        yield session


def describe_database() -> dict[str, Any]:
    """Connection target without credentials, for logs and CLI output."""
    if not db_settings.is_configured:
        return {"url": FALLBACK_DATABASE_URL, "driver": "aiosqlite"}
    return {
        "host": db_settings.host,
        "port": db_settings.port,
        "database": db_settings.name,
        "driver": db_settings.driver,
    }


@retry(
    max_attempts=db_settings.startup_retry_attempts,
    initial_delay=db_settings.startup_retry_delay,
    max_delay=30.0,
    exponential_base=2.0,
    jitter=True,
    stop_after_delay=db_settings.startup_retry_timeout,
)
async def init_database() -> None:
    """Check database connectivity with startup retry.

    Raises:
        RetryError: If unable to connect after all retry attempts.
    """
    target = describe_database()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Failed to connect to database", extra={**target, "error": str(e)})
        raise

    logger.info("Database connection established successfully", extra=target)


async def create_tables() -> None:
    """Create the outbox and shedlock tables if they do not exist.

    Meant for local runs and tests; deployments use Alembic migrations.
    """
    from outbox_publisher.core.database import Base
    from outbox_publisher.infra.locks.models import LockRecord
    from outbox_publisher.infra.outbox.models import OutboxEntry

    tables = [OutboxEntry.__table__, LockRecord.__table__]
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=tables, checkfirst=True)
    logger.info("Ensured outbox tables exist", extra={"tables": [t.name for t in tables]})


async def close_database() -> None:
    """Dispose the engine. Called during application shutdown."""
    logger.info("Closing database connection")
    await engine.dispose()


__all__ = [
    "AsyncSessionLocal",
    "FALLBACK_DATABASE_URL",
    "close_database",
    "create_tables",
    "describe_database",
    "engine",
    "get_async_session",
    "init_database",
]
