"""Repository for OutboxEntry queries and status transitions.

Provides methods for:
- Fetching a batch of deliverable entries (skip-locked)
- Recording delivery outcomes with single-row conditional updates
- Backlog counts for the stats endpoint
- Operator actions on stuck entries

Status updates are conditional on the current row state so that a late or
duplicate write can never move an entry backwards.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Select, func, or_, select, update

from outbox_publisher.core.database.exceptions import RepositoryError
from outbox_publisher.core.database.repository import BaseRepository
from outbox_publisher.infra.outbox.models import OutboxEntry, OutboxStatus

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from outbox_publisher.infra.outbox.retry import RetryDecision


class InvalidStateTransitionError(RepositoryError):
    """Requested status change is not allowed from the entry's current status."""

    def __init__(self, entry_id: uuid.UUID, current: str, action: str) -> None:
        self.entry_id = entry_id
        self.current = current
        self.action = action
        super().__init__(
            f"Cannot {action} an entry in status {current}",
            details={"entry_id": str(entry_id), "status": current, "action": action},
        )


def fetch_pending_statement(*, limit: int, now: datetime) -> Select[tuple[OutboxEntry]]:
    """Oldest deliverable entries first, skipping rows locked by another fetcher.

    SQLite ignores the FOR UPDATE clause; PostgreSQL renders
    ``FOR UPDATE SKIP LOCKED``.
    """
    return (
        select(OutboxEntry)
        .where(
            OutboxEntry.status == OutboxStatus.PENDING.value,
            OutboxEntry.retry_count < OutboxEntry.max_retries,
            or_(OutboxEntry.next_retry_at.is_(None), OutboxEntry.next_retry_at <= now),
        )
        .order_by(OutboxEntry.created_at.asc(), OutboxEntry.id.asc())
        .limit(limit)
        .with_for_update(skip_locked=True)
    )


class OutboxRepository(BaseRepository[OutboxEntry]):
    """Outbox-specific queries on top of BaseRepository.

    Every method takes the session explicitly; committing is the caller's job.
    """

    def __init__(self) -> None:
        super().__init__(OutboxEntry)

    async def fetch_pending(
        self,
        session: AsyncSession,
        *,
        limit: int,
        now: datetime,
    ) -> Sequence[OutboxEntry]:
        """Fetch up to ``limit`` entries that are due for delivery.

        An empty result is the normal idle case.
        """
        result = await session.execute(fetch_pending_statement(limit=limit, now=now))
        entries = result.scalars().all()
        self._lazy.debug(lambda: f"outbox.fetch_pending: {len(entries)} of limit {limit}")
        return entries

    async def mark_published(self, session: AsyncSession, entry_id: uuid.UUID, *, now: datetime) -> bool:
        """PENDING -> PUBLISHED. Returns False if the row was no longer PENDING."""
        result = await session.execute(
            update(OutboxEntry)
            .where(OutboxEntry.id == entry_id, OutboxEntry.status == OutboxStatus.PENDING.value)
            .values(
                status=OutboxStatus.PUBLISHED.value,
                published_at=now,
                last_error=None,
                next_retry_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def apply_failure(
        self,
        session: AsyncSession,
        entry_id: uuid.UUID,
        decision: RetryDecision,
    ) -> bool:
        """Write a retry decision; retry_count can only grow."""
        result = await session.execute(
            update(OutboxEntry)
            .where(
                OutboxEntry.id == entry_id,
                OutboxEntry.status == OutboxStatus.PENDING.value,
                OutboxEntry.retry_count <= decision.retry_count,
            )
            .values(
                retry_count=decision.retry_count,
                last_error=decision.last_error,
                next_retry_at=decision.next_retry_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def count_unpublished(self, session: AsyncSession) -> int:
        """PENDING entries still within their retry budget."""
        stmt = (
            select(func.count())
            .select_from(OutboxEntry)
            .where(
                OutboxEntry.status == OutboxStatus.PENDING.value,
                OutboxEntry.retry_count < OutboxEntry.max_retries,
            )
        )
        return (await session.execute(stmt)).scalar_one()

    async def count_stuck(self, session: AsyncSession) -> int:
        """PENDING entries that used up their retry budget."""
        stmt = (
            select(func.count())
            .select_from(OutboxEntry)
            .where(
                OutboxEntry.status == OutboxStatus.PENDING.value,
                OutboxEntry.retry_count >= OutboxEntry.max_retries,
            )
        )
        return (await session.execute(stmt)).scalar_one()

    async def list_stuck(self, session: AsyncSession, *, limit: int = 100) -> Sequence[OutboxEntry]:
        stmt = (
            select(OutboxEntry)
            .where(
                OutboxEntry.status == OutboxStatus.PENDING.value,
                OutboxEntry.retry_count >= OutboxEntry.max_retries,
            )
            .order_by(OutboxEntry.created_at.asc(), OutboxEntry.id.asc())
            .limit(limit)
        )
        return (await session.execute(stmt)).scalars().all()

    async def reset_entry(self, session: AsyncSession, entry_id: uuid.UUID) -> OutboxEntry:
        """Give an entry a fresh retry budget.

        FAILED entries go back to PENDING.

        Raises:
            NotFoundError: No such entry.
            InvalidStateTransitionError: The entry is already PUBLISHED.
        """
        entry = await self.get_or_raise(session, entry_id)
        if entry.is_published:
            raise InvalidStateTransitionError(entry.id, entry.status, "reset")

        was_stuck = entry.is_stuck
        entry.status = OutboxStatus.PENDING.value
        entry.retry_count = 0
        entry.last_error = None
        entry.next_retry_at = None
        await session.flush()

        self._logger.info(
            "Outbox entry reset by operator",
            extra={"entry_id": str(entry.id), "destination": entry.destination, "was_stuck": was_stuck},
        )
        return entry

    async def mark_failed(self, session: AsyncSession, entry_id: uuid.UUID) -> OutboxEntry:
        """PENDING -> FAILED. Idempotent for FAILED entries.

        Raises:
            NotFoundError: No such entry.
            InvalidStateTransitionError: The entry is already PUBLISHED.
        """
        entry = await self.get_or_raise(session, entry_id)
        if entry.is_published:
            raise InvalidStateTransitionError(entry.id, entry.status, "fail")
        if entry.status == OutboxStatus.FAILED:
            return entry

        entry.status = OutboxStatus.FAILED.value
        await session.flush()

        self._logger.info(
            "Outbox entry marked FAILED by operator",
            extra={"entry_id": str(entry.id), "destination": entry.destination},
        )
        return entry


__all__ = ["InvalidStateTransitionError", "OutboxRepository", "fetch_pending_statement"]
