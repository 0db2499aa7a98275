"""Alembic migration environment with async driver support.

- Batch mode auto-detection for SQLite
- Object filtering to skip Alembic's own table
- Empty migration detection to skip no-op revisions
- Configurable via AlembicCommandConfig attributes

When using the programmatic API (AlembicCommands), configuration is passed
via config.attributes. When using the alembic CLI, defaults are used.
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig
from typing import TYPE_CHECKING, Any

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# Register mapped tables on Base.metadata
from outbox_publisher.core.database.base import Base
from outbox_publisher.core.settings import get_db_settings
from outbox_publisher.infra.database.session import FALLBACK_DATABASE_URL
from outbox_publisher.infra.locks.models import LockRecord  # noqa: F401
from outbox_publisher.infra.outbox.models import OutboxEntry  # noqa: F401

if TYPE_CHECKING:
    from collections.abc import Iterable

    from alembic.operations.ops import MigrationScript
    from alembic.runtime.migration import MigrationContext
    from sqlalchemy.engine import Connection

config = context.config

# Programmatic runs bring their own logging
if config.config_file_name is not None and not config.attributes:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata

# CLI usage: take the URL from settings unless AlembicCommands already set it
if not config.get_main_option("sqlalchemy.url"):
    db_settings = get_db_settings()
    url = db_settings.get_sqlalchemy_url() if db_settings.is_configured else FALLBACK_DATABASE_URL
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))


def get_config_value(key: str, default: Any = None) -> Any:
    return config.attributes.get(key, default)


RENDER_AS_BATCH = get_config_value("render_as_batch", False)
VERSION_TABLE = get_config_value("version_table_name", "alembic_version")


def include_object(
    obj: Any,
    name: str | None,
    type_: str,
    reflected: bool,
    compare_to: Any,
) -> bool:
    """Skip Alembic's own version table during autogenerate."""
    _ = obj, reflected, compare_to
    return not (type_ == "table" and name == VERSION_TABLE)


def process_revision_directives(
    context: MigrationContext,
    revision: str | tuple[str, ...] | Iterable[str | None] | Iterable[str],
    directives: list[MigrationScript],
) -> None:
    """Drop autogenerated revisions that contain no changes."""
    _ = context, revision
    if getattr(config.cmd_opts, "autogenerate", False) and directives:
        script = directives[0]
        if script.upgrade_ops is not None and script.upgrade_ops.is_empty():
            directives[:] = []
            print("No changes detected, skipping migration creation")


def run_migrations_offline() -> None:
    """Emit SQL to the script output without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        include_object=include_object,
        version_table=VERSION_TABLE,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    use_batch_mode = connection.dialect.name == "sqlite" or RENDER_AS_BATCH

    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        include_object=include_object,
        render_as_batch=use_batch_mode,
        version_table=VERSION_TABLE,
        process_revision_directives=process_revision_directives,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations on a dedicated engine bound to this event loop."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
