"""FastAPI dependencies for route handlers.

Features import dependencies from here rather than from ``infra`` directly.

Usage:
    from outbox_publisher.core.dependencies import OutboxPublisherDep, get_db_session
"""

from outbox_publisher.core.dependencies.database import get_db_session
from outbox_publisher.core.dependencies.outbox import (
    OutboxPublisherDep,
    OutboxRepositoryDep,
    get_outbox_repository,
    get_publisher,
)

__all__ = [
    "OutboxPublisherDep",
    "OutboxRepositoryDep",
    "get_db_session",
    "get_outbox_repository",
    "get_publisher",
]
