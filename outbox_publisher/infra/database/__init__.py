"""Database infrastructure package.

- **Session Management**: Async SQLAlchemy engine and session factory
- **Alembic Commands**: Programmatic migration API

Example:
    from outbox_publisher.infra.database import get_async_session, get_alembic_commands

    async with get_async_session() as session:
        result = await session.execute(...)

    commands = get_alembic_commands()
    await commands.upgrade("head")
"""

from .alembic import (
    AlembicCommandConfig,
    AlembicCommands,
    get_alembic_commands,
)
from .session import (
    AsyncSessionLocal,
    close_database,
    create_tables,
    describe_database,
    engine,
    get_async_session,
    init_database,
)

__all__ = [
    "AlembicCommandConfig",
    "AlembicCommands",
    "AsyncSessionLocal",
    "close_database",
    "create_tables",
    "describe_database",
    "engine",
    "get_alembic_commands",
    "get_async_session",
    "init_database",
]
