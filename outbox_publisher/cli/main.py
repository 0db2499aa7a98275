"""Main CLI entry point for outbox-publisher management commands."""

import click

from outbox_publisher.cli.commands import database, outbox
from outbox_publisher.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="outbox-publisher")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Outbox Publisher CLI - run and operate the transactional outbox.

    \b
    Command Groups:
      db       Database connectivity and migrations
      outbox   Backlog stats, manual publishing, stuck entry handling

    \b
    Quick Start:
      outbox-publisher db upgrade       # Create the outbox and shedlock tables
      outbox-publisher outbox stats     # Show the backlog
      outbox-publisher outbox worker    # Run the publish loop
      outbox-publisher --server         # Run the HTTP API with the publisher
    """
    ctx.ensure_object(dict)


cli.add_command(database.db)
cli.add_command(outbox.outbox)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
