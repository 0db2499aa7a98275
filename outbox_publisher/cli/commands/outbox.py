"""Outbox operations from the command line.

Example:bash
    # Backlog counts
    outbox-publisher outbox stats --format json

    # Drain one batch now
    outbox-publisher outbox publish

    # Run the publish loop in the foreground
    outbox-publisher outbox worker

    # Can this process reach RabbitMQ?
    outbox-publisher outbox broker

    # Operator actions on stuck entries
    outbox-publisher outbox stuck
    outbox-publisher outbox reset 0190a5e2-...
"""

import asyncio
import sys
import uuid

import click

from outbox_publisher.cli.utils import (
    coro,
    echo_json,
    error,
    header,
    info,
    key_value,
    section,
    success,
    warning,
)
from outbox_publisher.core.exceptions import AppException

_FORMAT_OPTION = click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)


def _entry_row(entry) -> dict:
    return {
        "id": str(entry.id),
        "destination": entry.destination,
        "event_type": entry.event_type,
        "status": entry.status,
        "retry_count": entry.retry_count,
        "max_retries": entry.max_retries,
        "last_error": entry.last_error,
        "created_at": entry.created_at,
    }


@click.group(name="outbox")
def outbox() -> None:
    """Outbox publisher commands."""


@outbox.command()
@_FORMAT_OPTION
@coro
async def stats(output_format: str) -> None:
    """Show unpublished and stuck entry counts."""
    from outbox_publisher.features.outbox.service import OutboxService
    from outbox_publisher.infra.database import close_database, get_async_session

    try:
        async with get_async_session() as session:
            result = await OutboxService(session).get_stats()
    except Exception as e:
        error(f"Failed to read outbox stats: {e}")
        sys.exit(1)
    finally:
        await close_database()

    if output_format == "json":
        echo_json(result.model_dump())
        return

    header("Outbox Backlog")
    key_value("Unpublished", result.unpublished)
    key_value("Stuck", result.stuck)
    if result.stuck:
        warning("Stuck entries need attention: see 'outbox-publisher outbox stuck'")


@outbox.command()
@coro
async def publish() -> None:
    """Run a single publish cycle and report the counts."""
    from outbox_publisher.infra.database import close_database
    from outbox_publisher.infra.messaging import start_broker, stop_broker
    from outbox_publisher.infra.outbox import OutboxStorageError, build_outbox_publisher

    publisher = build_outbox_publisher()
    if publisher is None:
        error("RabbitMQ is not configured (set RABBIT_ENABLED / RABBIT_AMQP_URI)")
        sys.exit(1)

    try:
        await start_broker()
        result = await publisher.run_cycle()
    except (ConnectionError, OutboxStorageError) as e:
        error(f"Publish cycle failed: {e}")
        sys.exit(1)
    finally:
        await stop_broker()
        await close_database()

    if not result.lock_acquired:
        info("Another instance holds the outbox lock; nothing done")
        return
    success(f"Published {result.published}, failed {result.failed}")


@outbox.command()
@_FORMAT_OPTION
@coro
async def broker(output_format: str) -> None:
    """Connect to RabbitMQ once and report the connection state."""
    from outbox_publisher.infra.messaging import check_broker_health, start_broker, stop_broker

    try:
        await start_broker()
    except Exception as e:  # noqa: BLE001
        warning(f"Connection attempt failed: {e}")
    try:
        health = await check_broker_health()
    finally:
        await stop_broker()

    if output_format == "json":
        echo_json(health)
    else:
        header("RabbitMQ Broker")
        key_value("Status", health["status"])
        key_value("State", health["state"])
        if health.get("reason"):
            key_value("Reason", health["reason"])

    if health["status"] != "healthy":
        sys.exit(1)


async def _run_worker() -> None:
    from outbox_publisher.infra.database import close_database
    from outbox_publisher.infra.messaging import start_broker, stop_broker
    from outbox_publisher.infra.outbox import build_outbox_publisher

    publisher = build_outbox_publisher()
    if publisher is None:
        error("RabbitMQ is not configured (set RABBIT_ENABLED / RABBIT_AMQP_URI)")
        sys.exit(1)

    await start_broker()
    await publisher.start()
    try:
        await asyncio.Event().wait()
    finally:
        await publisher.stop()
        await stop_broker()
        await close_database()


@outbox.command()
def worker() -> None:
    """Run the publish loop in the foreground until interrupted."""
    from outbox_publisher.core.settings import get_outbox_settings

    settings = get_outbox_settings()
    info(
        f"Starting outbox worker {settings.instance_id} "
        f"(poll every {settings.poll_interval}s, batch {settings.batch_size})"
    )

    try:
        asyncio.run(_run_worker())
    except KeyboardInterrupt:
        info("Outbox worker stopped")
    except ConnectionError as e:
        error(f"Outbox worker failed to start: {e}")
        sys.exit(1)


@outbox.command()
@click.option("--limit", default=100, type=click.IntRange(1, 1000), help="Maximum entries to list")
@_FORMAT_OPTION
@coro
async def stuck(limit: int, output_format: str) -> None:
    """List PENDING entries that exhausted their retries."""
    from outbox_publisher.features.outbox.service import OutboxService
    from outbox_publisher.infra.database import close_database, get_async_session

    try:
        async with get_async_session() as session:
            entries = await OutboxService(session).list_stuck(limit=limit)
            rows = [_entry_row(entry) for entry in entries]
    except Exception as e:
        error(f"Failed to list stuck entries: {e}")
        sys.exit(1)
    finally:
        await close_database()

    if output_format == "json":
        echo_json(rows)
        return

    if not rows:
        success("No stuck entries")
        return

    section(f"Stuck entries ({len(rows)})")
    for row in rows:
        click.echo(f"  {row['id']}  {row['destination']}  {row['event_type']}")
        click.echo(f"      retries {row['retry_count']}/{row['max_retries']}: {row['last_error'] or '-'}")


async def _operator_action(entry_id: uuid.UUID, action: str) -> None:
    from outbox_publisher.features.outbox.service import OutboxService
    from outbox_publisher.infra.database import close_database, get_async_session

    try:
        async with get_async_session() as session:
            service = OutboxService(session)
            if action == "reset":
                entry = await service.reset_entry(entry_id)
            else:
                entry = await service.mark_failed(entry_id)
    except AppException as e:
        error(e.detail)
        sys.exit(1)
    finally:
        await close_database()

    success(f"Entry {entry.id} is now {entry.status} (retries {entry.retry_count}/{entry.max_retries})")


@outbox.command()
@click.argument("entry_id", type=click.UUID)
@coro
async def reset(entry_id: uuid.UUID) -> None:
    """Give a stuck or FAILED entry a fresh retry budget."""
    await _operator_action(entry_id, "reset")


@outbox.command()
@click.argument("entry_id", type=click.UUID)
@coro
async def fail(entry_id: uuid.UUID) -> None:
    """Mark an entry FAILED so it is never delivered."""
    await _operator_action(entry_id, "fail")
