"""Database dependencies for FastAPI route handlers.

Two session getters exist for different call sites:

1. `get_db_session()` (this module): FastAPI dependency, one session per request
2. `get_async_session()` (infra.database): context manager for the CLI and
   background work

Usage:
    @router.get("/outbox/stats")
    async def stats(session: Annotated[AsyncSession, Depends(get_db_session)]):
        ...
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from outbox_publisher.infra.database import get_async_session


async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """Yield a database session that is closed when the request completes."""
    async with get_async_session() as session:
        yield session
