"""Database-backed named lock with lease semantics.

At most one process holds a named lock at any instant, as long as every
participant uses this coordinator against the same ``shedlock`` table.

The lease is a conditional UPDATE that only matches an expired row; a missing
row is created with INSERT and a primary-key violation means another instance
won the race. Holders release early, but never before the configured minimum
hold has passed, so fast cycles on many instances do not hammer the table.

Time is taken from an injectable clock so tests can move it forward.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from outbox_publisher.core.database.base import utc_now
from outbox_publisher.infra.locks.models import LockRecord
from outbox_publisher.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

type Clock = Callable[[], datetime]


class LockCoordinator:
    """Acquire, renew and release named leases in the lock table.

    Each operation runs in its own short transaction on a fresh session from
    ``session_factory`` and never shares a transaction with the caller.

    Example:
        coordinator = LockCoordinator(AsyncSessionLocal, instance_id="host-a:42")
        if await coordinator.try_acquire("outbox-publisher", timedelta(seconds=30)):
            try:
                ...
            finally:
                await coordinator.release("outbox-publisher")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        instance_id: str,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self.instance_id = instance_id
        self._clock = clock
        # name -> (acquired_at, min_hold) for leases taken by this instance
        self._acquired: dict[str, tuple[datetime, timedelta]] = {}

    def acquired_at(self, name: str) -> datetime | None:
        """When this instance last acquired ``name``, if it still thinks it holds it."""
        held = self._acquired.get(name)
        return held[0] if held else None

    async def try_acquire(
        self,
        name: str,
        hold: timedelta,
        *,
        min_hold: timedelta = timedelta(0),
    ) -> bool:
        """Take the lease for ``hold`` if it is free.

        Returns False when another holder's lease has not yet expired.
        Storage errors other than the insert race propagate.
        """
        now = self._clock()
        lease = {"lock_until": now + hold, "locked_at": now, "locked_by": self.instance_id}

        async with self._session_factory() as session:
            result = await session.execute(
                update(LockRecord)
                .where(LockRecord.name == name, LockRecord.lock_until <= now)
                .values(**lease)
                .execution_options(synchronize_session=False)
            )
            acquired = result.rowcount == 1
            if acquired:
                await session.commit()
            else:
                acquired = await self._insert_lease(session, name, lease)

        if acquired:
            self._acquired[name] = (now, min_hold)
            lazy_logger.debug(lambda: f"Lock {name!r} acquired by {self.instance_id} until {now + hold}")
        else:
            lazy_logger.debug(lambda: f"Lock {name!r} is held elsewhere; {self.instance_id} skipped")
        return acquired

    async def _insert_lease(self, session: AsyncSession, name: str, lease: dict[str, object]) -> bool:
        try:
            await session.execute(insert(LockRecord).values(name=name, **lease))
            await session.commit()
        except IntegrityError:
            # Row exists and is still held
            await session.rollback()
            return False
        return True

    async def renew(self, name: str, hold: timedelta) -> bool:
        """Extend a lease this instance still holds to ``now + hold``.

        Returns False if the lease already expired or belongs to someone else;
        the caller must then stop doing protected work.
        """
        now = self._clock()
        async with self._session_factory() as session:
            result = await session.execute(
                update(LockRecord)
                .where(
                    LockRecord.name == name,
                    LockRecord.locked_by == self.instance_id,
                    LockRecord.lock_until > now,
                )
                .values(lock_until=now + hold)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        renewed = result.rowcount == 1
        if not renewed:
            self._acquired.pop(name, None)
            logger.warning(
                "Lock lease lost before renewal",
                extra={"lock_name": name, "instance_id": self.instance_id},
            )
        return renewed

    async def release(self, name: str) -> None:
        """Give the lease back, honouring the minimum hold time.

        Best effort: failures are logged and the lease simply runs out.
        """
        now = self._clock()
        until = now
        held = self._acquired.pop(name, None)
        if held is not None:
            acquired_at, min_hold = held
            until = max(now, acquired_at + min_hold)

        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(LockRecord)
                    .where(LockRecord.name == name, LockRecord.locked_by == self.instance_id)
                    .values(lock_until=until)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to release lock; it will expire on its own",
                extra={"lock_name": name, "instance_id": self.instance_id, "error": str(e)},
            )
            return

        lazy_logger.debug(lambda: f"Lock {name!r} released by {self.instance_id} (free from {until})")

    async def holder(self, name: str) -> LockRecord | None:
        """Current lock row, for diagnostics."""
        async with self._session_factory() as session:
            result = await session.execute(select(LockRecord).where(LockRecord.name == name))
            return result.scalar_one_or_none()


__all__ = ["Clock", "LockCoordinator"]
