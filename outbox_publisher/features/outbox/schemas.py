"""Pydantic schemas for the outbox operational API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from outbox_publisher.core.schemas.base import CustomBase


class OutboxStatsResponse(BaseModel):
    """Backlog counts."""

    unpublished: int = Field(..., ge=0, description="PENDING entries still within their retry budget")
    stuck: int = Field(..., ge=0, description="PENDING entries that used up their retry budget")


class PublishResponse(BaseModel):
    """Outcome of a manually triggered publish cycle.

    Both counts are zero when another instance held the lock.
    """

    published: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)


class OutboxHealthResponse(BaseModel):
    status: Literal["UP"] = "UP"


class OutboxEntryResponse(CustomBase):
    """An outbox entry as shown to operators. The payload is not included."""

    id: UUID
    aggregate_type: str
    aggregate_id: str
    event_type: str
    destination: str
    status: str
    retry_count: int
    max_retries: int
    last_error: str | None = None
    next_retry_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


__all__ = [
    "OutboxEntryResponse",
    "OutboxHealthResponse",
    "OutboxStatsResponse",
    "PublishResponse",
]
