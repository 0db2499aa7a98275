"""Programmatic Alembic command interface with async support.

Runs Alembic in a worker thread so the event loop is never blocked.
The migration environment builds its own short-lived engine from the URL,
so the application engine is never shared across event loops.

Example:
    commands = get_alembic_commands()
    output = await commands.upgrade("head")
    if await commands.is_up_to_date():
        ...
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url

from alembic import command

if TYPE_CHECKING:
    from sqlalchemy.engine import URL
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent

# Async driver -> sync driver for revision inspection
_SYNC_DRIVERS = {"sqlite+aiosqlite": "sqlite", "postgresql+asyncpg": "postgresql+psycopg"}


def sync_url(url: URL | str) -> URL:
    """Same database, reachable with a blocking driver."""
    url = make_url(url)
    drivername = _SYNC_DRIVERS.get(url.drivername)
    return url.set(drivername=drivername) if drivername else url


@dataclass
class AlembicCommandConfig:
    """Configuration for Alembic commands.

    Attributes:
        engine: Engine whose URL the migrations run against
        script_location: Path to the alembic scripts directory
        version_table_name: Table name for version tracking
        render_as_batch: Enable batch mode (SQLite is detected automatically)
    """

    engine: AsyncEngine
    script_location: str = str(PROJECT_ROOT / "alembic")
    version_table_name: str = "alembic_version"
    render_as_batch: bool = False

    def get_alembic_config(self, output_buffer: io.StringIO | None = None) -> Config:
        alembic_ini_path = PROJECT_ROOT / "alembic.ini"
        if not alembic_ini_path.exists():
            msg = f"alembic.ini not found at {alembic_ini_path}"
            raise FileNotFoundError(msg)

        config = Config(str(alembic_ini_path), stdout=output_buffer or io.StringIO())
        config.set_main_option("script_location", self.script_location)
        # render_as_string keeps the password (str() masks it)
        config.set_main_option(
            "sqlalchemy.url",
            self.engine.url.render_as_string(hide_password=False).replace("%", "%%"),
        )
        config.attributes["render_as_batch"] = self.render_as_batch
        config.attributes["version_table_name"] = self.version_table_name
        return config


class AlembicCommands:
    """Upgrade, downgrade and inspect the outbox schema from Python."""

    def __init__(self, config: AlembicCommandConfig) -> None:
        self.config = config

    async def upgrade(self, revision: str = "head", *, sql: bool = False) -> str:
        """Upgrade database to ``revision`` and return Alembic's output."""
        logger.info(f"Upgrading database to revision: {revision}")
        output = io.StringIO()
        alembic_config = self.config.get_alembic_config(output)

        await asyncio.to_thread(command.upgrade, alembic_config, revision, sql=sql)
        logger.info(f"Upgrade completed to: {revision}")
        return output.getvalue()

    async def downgrade(self, revision: str = "-1", *, sql: bool = False) -> str:
        """Downgrade database to ``revision`` (default: one step back)."""
        logger.info(f"Downgrading database to revision: {revision}")
        output = io.StringIO()
        alembic_config = self.config.get_alembic_config(output)

        await asyncio.to_thread(command.downgrade, alembic_config, revision, sql=sql)
        logger.info(f"Downgrade completed to: {revision}")
        return output.getvalue()

    async def current(self, *, verbose: bool = False) -> str:
        output = io.StringIO()
        alembic_config = self.config.get_alembic_config(output)
        await asyncio.to_thread(command.current, alembic_config, verbose=verbose)
        return output.getvalue()

    async def history(self, *, verbose: bool = False) -> str:
        output = io.StringIO()
        alembic_config = self.config.get_alembic_config(output)
        await asyncio.to_thread(command.history, alembic_config, verbose=verbose)
        return output.getvalue()

    async def get_current_revision(self) -> str | None:
        """Revision recorded in the database, or None before the first migration."""

        def _get() -> str | None:
            sync_engine = create_engine(sync_url(self.config.engine.url))
            try:
                with sync_engine.connect() as conn:
                    context = MigrationContext.configure(
                        conn,
                        opts={"version_table": self.config.version_table_name},
                    )
                    return context.get_current_revision()
            finally:
                sync_engine.dispose()

        return await asyncio.to_thread(_get)

    async def get_head_revision(self) -> str | None:
        def _get() -> str | None:
            script = ScriptDirectory.from_config(self.config.get_alembic_config())
            return script.get_current_head()

        return await asyncio.to_thread(_get)

    async def is_up_to_date(self) -> bool:
        current = await self.get_current_revision()
        head = await self.get_head_revision()
        return current == head


def get_alembic_commands(engine: AsyncEngine | None = None) -> AlembicCommands:
    """AlembicCommands bound to ``engine`` (the application engine by default)."""
    if engine is None:
        from outbox_publisher.infra.database.session import engine as default_engine

        engine = default_engine

    return AlembicCommands(AlembicCommandConfig(engine=engine))


__all__ = [
    "AlembicCommandConfig",
    "AlembicCommands",
    "get_alembic_commands",
    "sync_url",
]
