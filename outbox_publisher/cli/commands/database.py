"""Database management commands.

Example:bash
    # Check connectivity
    outbox-publisher db init

    # Apply all pending migrations
    outbox-publisher db upgrade

    # Rollback last migration
    outbox-publisher db downgrade
"""

import sys

import click

from outbox_publisher.cli.utils import coro, error, header, info, key_value, success, warning


def get_alembic_commands():
    """AlembicCommands bound to the application engine (imported lazily)."""
    from outbox_publisher.infra.database.alembic import get_alembic_commands

    return get_alembic_commands()


@click.group(name="db")
def db() -> None:
    """Database management commands."""


@db.command()
@coro
async def init() -> None:
    """Verify database connectivity."""
    from outbox_publisher.infra.database import close_database, describe_database, init_database

    target = describe_database()
    info(f"Connecting to: {', '.join(f'{k}={v}' for k, v in target.items())}")

    try:
        await init_database()
    except Exception as e:
        error(f"Failed to connect to database: {e}")
        sys.exit(1)
    finally:
        await close_database()

    success("Database connected successfully!")


@db.command(name="create-tables")
@coro
async def create_tables_cmd() -> None:
    """Create the outbox and shedlock tables without Alembic.

    Meant for local development; deployments should use 'db upgrade'.
    """
    from outbox_publisher.infra.database import close_database, create_tables

    try:
        await create_tables()
    except Exception as e:
        error(f"Failed to create tables: {e}")
        sys.exit(1)
    finally:
        await close_database()

    success("Tables outbox and shedlock are ready")


@db.command()
@click.option("--revision", default="head", help="Target revision (default: head)")
@click.option("--sql/--no-sql", default=False, help="Output SQL without executing")
@coro
async def upgrade(revision: str, sql: bool) -> None:
    """Apply database migrations."""
    info(f"Upgrading database to: {revision}")

    try:
        output = await get_alembic_commands().upgrade(revision, sql=sql)
    except Exception as e:
        error(f"Failed to upgrade database: {e}")
        sys.exit(1)

    if output:
        click.echo(output)
    if not sql:
        success("Database upgraded successfully!")


@db.command()
@click.option("--steps", default=1, type=int, help="Number of migrations to rollback")
@click.option("--sql/--no-sql", default=False, help="Output SQL without executing")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
@coro
async def downgrade(steps: int, sql: bool, yes: bool) -> None:
    """Rollback database migrations."""
    if not sql and not yes:
        warning(f"This will rollback {steps} migration(s)")
        if not click.confirm("Continue?"):
            info("Downgrade cancelled")
            return

    try:
        output = await get_alembic_commands().downgrade(f"-{steps}", sql=sql)
    except Exception as e:
        error(f"Failed to downgrade database: {e}")
        sys.exit(1)

    if output:
        click.echo(output)
    if not sql:
        success(f"Rolled back {steps} migration(s)")


@db.command()
@coro
async def current() -> None:
    """Show the current and head migration revisions."""
    header("Migration Status")
    commands = get_alembic_commands()

    try:
        current_rev = await commands.get_current_revision()
        head_rev = await commands.get_head_revision()
    except Exception as e:
        error(f"Failed to read migration status: {e}")
        sys.exit(1)

    key_value("Current", current_rev or "(none)")
    key_value("Head", head_rev or "(none)")
    if current_rev == head_rev:
        success("Database is up to date")
    else:
        warning("Database has pending migrations; run 'outbox-publisher db upgrade'")
