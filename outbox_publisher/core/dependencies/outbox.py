"""Outbox dependencies for FastAPI route handlers.

Usage:
    @router.post("/outbox/publish")
    async def publish(publisher: OutboxPublisherDep) -> PublishResponse:
        result = await publisher.run_cycle()
        ...

Tests swap the publisher with ``app.dependency_overrides[get_publisher]``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from outbox_publisher.core.exceptions import ServiceUnavailableException
from outbox_publisher.infra.outbox import OutboxPublisher, OutboxRepository, get_outbox_publisher


def get_publisher() -> OutboxPublisher:
    """The process-wide publisher created at startup.

    Raises:
        ServiceUnavailableException: If no publisher is configured.
    """
    publisher = get_outbox_publisher()
    if publisher is None:
        raise ServiceUnavailableException(
            detail="Outbox publisher is not configured",
            type="outbox-publisher-unavailable",
            extra={"service": "rabbitmq"},
        )
    return publisher


def get_outbox_repository() -> OutboxRepository:
    return OutboxRepository()


OutboxPublisherDep = Annotated[OutboxPublisher, Depends(get_publisher)]
OutboxRepositoryDep = Annotated[OutboxRepository, Depends(get_outbox_repository)]
