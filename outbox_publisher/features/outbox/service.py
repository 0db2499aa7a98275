"""Service layer for outbox operations exposed over HTTP."""

from __future__ import annotations

from typing import TYPE_CHECKING

from outbox_publisher.core.database import NotFoundError
from outbox_publisher.core.exceptions import (
    ConflictException,
    NotFoundException,
    ServiceUnavailableException,
)
from outbox_publisher.core.services.base import BaseService
from outbox_publisher.features.outbox.schemas import OutboxStatsResponse, PublishResponse
from outbox_publisher.infra.metrics.tracking import update_outbox_backlog
from outbox_publisher.infra.outbox import (
    InvalidStateTransitionError,
    OutboxRepository,
    OutboxStorageError,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from outbox_publisher.infra.outbox import OutboxEntry, OutboxPublisher


class OutboxService(BaseService):
    """Backlog statistics and operator actions on individual entries."""

    def __init__(
        self,
        session: AsyncSession,
        repository: OutboxRepository | None = None,
    ) -> None:
        super().__init__()
        self._session = session
        self._repository = repository or OutboxRepository()

    async def get_stats(self) -> OutboxStatsResponse:
        """Count unpublished and stuck entries and refresh the backlog gauges."""
        unpublished = await self._repository.count_unpublished(self._session)
        stuck = await self._repository.count_stuck(self._session)
        update_outbox_backlog(unpublished, stuck)

        self._lazy.debug(lambda: f"service.get_stats -> unpublished={unpublished}, stuck={stuck}")
        return OutboxStatsResponse(unpublished=unpublished, stuck=stuck)

    async def list_stuck(self, *, limit: int = 100) -> list[OutboxEntry]:
        entries: Sequence[OutboxEntry] = await self._repository.list_stuck(self._session, limit=limit)
        return list(entries)

    async def reset_entry(self, entry_id: uuid.UUID) -> OutboxEntry:
        """Give a stuck or FAILED entry a fresh retry budget.

        Raises:
            NotFoundException: No such entry.
            ConflictException: The entry is already PUBLISHED.
        """
        try:
            entry = await self._repository.reset_entry(self._session, entry_id)
        except NotFoundError as e:
            raise self._not_found(entry_id) from e
        except InvalidStateTransitionError as e:
            raise self._conflict(e) from e

        await self._session.commit()
        self.logger.info(
            "Outbox entry reset",
            extra={"entry_id": str(entry_id), "operation": "service.reset_entry"},
        )
        return entry

    async def mark_failed(self, entry_id: uuid.UUID) -> OutboxEntry:
        """Take an entry out of delivery for good.

        Raises:
            NotFoundException: No such entry.
            ConflictException: The entry is already PUBLISHED.
        """
        try:
            entry = await self._repository.mark_failed(self._session, entry_id)
        except NotFoundError as e:
            raise self._not_found(entry_id) from e
        except InvalidStateTransitionError as e:
            raise self._conflict(e) from e

        await self._session.commit()
        self.logger.info(
            "Outbox entry marked FAILED",
            extra={"entry_id": str(entry_id), "operation": "service.mark_failed"},
        )
        return entry

    @staticmethod
    def _not_found(entry_id: uuid.UUID) -> NotFoundException:
        return NotFoundException(
            detail=f"Outbox entry {entry_id} not found",
            type="outbox-entry-not-found",
            extra={"entry_id": str(entry_id)},
        )

    @staticmethod
    def _conflict(error: InvalidStateTransitionError) -> ConflictException:
        return ConflictException(
            detail=error.message,
            type="outbox-entry-published",
            extra={"entry_id": str(error.entry_id), "entry_status": error.current},
        )


async def trigger_publish(publisher: OutboxPublisher) -> PublishResponse:
    """Run one publish cycle now, under the same lock as the background loop.

    Raises:
        ServiceUnavailableException: The outbox storage failed during the cycle.
    """
    try:
        result = await publisher.run_cycle()
    except OutboxStorageError as e:
        raise ServiceUnavailableException(
            detail="Outbox storage is temporarily unavailable",
            type="outbox-storage-unavailable",
            extra={"service": "database"},
        ) from e
    return PublishResponse(published=result.published, failed=result.failed)


__all__ = ["OutboxService", "trigger_publish"]
