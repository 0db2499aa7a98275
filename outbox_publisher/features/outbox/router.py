"""API router for the outbox operational surface."""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from outbox_publisher.core.dependencies import (
    OutboxPublisherDep,
    OutboxRepositoryDep,
    get_db_session,
)
from outbox_publisher.features.outbox.schemas import (
    OutboxEntryResponse,
    OutboxHealthResponse,
    OutboxStatsResponse,
    PublishResponse,
)
from outbox_publisher.features.outbox.service import OutboxService, trigger_publish
from outbox_publisher.infra.logging import get_lazy_logger

router = APIRouter(prefix="/outbox", tags=["outbox"])

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


def get_outbox_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    repository: OutboxRepositoryDep,
) -> OutboxService:
    return OutboxService(session, repository)


OutboxServiceDep = Annotated[OutboxService, Depends(get_outbox_service)]


@router.get(
    "/stats",
    response_model=OutboxStatsResponse,
    summary="Outbox backlog",
    description="Number of entries awaiting delivery and number of entries that exhausted their retries.",
)
async def get_stats(service: OutboxServiceDep) -> OutboxStatsResponse:
    return await service.get_stats()


@router.post(
    "/publish",
    response_model=PublishResponse,
    summary="Run one publish cycle now",
    description=(
        "Runs a single cycle under the distributed lock. Returns zero counts "
        "when another instance currently holds the lock."
    ),
)
async def publish(publisher: OutboxPublisherDep) -> PublishResponse:
    response = await trigger_publish(publisher)
    lazy_logger.debug(lambda: f"manual publish -> {response.published} published, {response.failed} failed")
    return response


@router.get(
    "/health",
    response_model=OutboxHealthResponse,
    summary="Liveness",
    description="Always UP while the process serves requests; does not check the database or the lock.",
)
async def health() -> OutboxHealthResponse:
    return OutboxHealthResponse()


@router.get(
    "/stuck",
    response_model=list[OutboxEntryResponse],
    summary="List stuck entries",
    description="PENDING entries whose retry count reached max_retries, oldest first.",
)
async def list_stuck(
    service: OutboxServiceDep,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[OutboxEntryResponse]:
    entries = await service.list_stuck(limit=limit)
    return [OutboxEntryResponse.model_validate(entry) for entry in entries]


@router.post(
    "/entries/{entry_id}/reset",
    response_model=OutboxEntryResponse,
    summary="Reset an entry's retry budget",
    responses={404: {"description": "Entry not found"}, 409: {"description": "Entry already published"}},
)
async def reset_entry(entry_id: UUID, service: OutboxServiceDep) -> OutboxEntryResponse:
    entry = await service.reset_entry(entry_id)
    return OutboxEntryResponse.model_validate(entry)


@router.post(
    "/entries/{entry_id}/fail",
    response_model=OutboxEntryResponse,
    summary="Mark an entry FAILED",
    description="Stops all further delivery attempts for the entry.",
    responses={404: {"description": "Entry not found"}, 409: {"description": "Entry already published"}},
)
async def fail_entry(entry_id: UUID, service: OutboxServiceDep) -> OutboxEntryResponse:
    entry = await service.mark_failed(entry_id)
    return OutboxEntryResponse.model_validate(entry)
