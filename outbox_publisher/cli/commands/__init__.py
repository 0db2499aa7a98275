"""CLI command groups."""

from outbox_publisher.cli.commands import database, outbox

__all__ = ["database", "outbox"]
