"""Background publisher that drains the outbox table.

One cycle:
1. Take the distributed lock (skip the cycle if another instance holds it)
2. Fetch a batch of deliverable entries and commit, releasing the row locks
3. Send each entry through the delivery sink and record the outcome
4. Release the lock

Cycles run on a fixed-delay schedule: the next one starts ``poll_interval``
seconds after the previous one finished, however it ended.

Delivery is at-least-once. A crash between a successful send and the status
update leaves the entry PENDING and it is sent again; consumers deduplicate
on ``message_id``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from outbox_publisher.core.database.base import utc_now
from outbox_publisher.core.database.exceptions import RepositoryError
from outbox_publisher.core.settings import get_outbox_settings, get_rabbit_settings
from outbox_publisher.infra.logging import get_lazy_logger
from outbox_publisher.infra.metrics.tracking import (
    track_outbox_cycle,
    track_outbox_delivery_duration,
    track_outbox_delivery_failure,
    track_outbox_lock_attempt,
    track_outbox_published,
)
from outbox_publisher.infra.outbox.repository import OutboxRepository
from outbox_publisher.infra.outbox.retry import RetryPolicy
from outbox_publisher.infra.outbox.sink import (
    DestinationResolver,
    FailureKind,
    RabbitDeliverySink,
    TransientDeliveryError,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from outbox_publisher.core.settings.outbox import OutboxSettings
    from outbox_publisher.infra.locks.coordinator import Clock, LockCoordinator
    from outbox_publisher.infra.outbox.models import OutboxEntry
    from outbox_publisher.infra.outbox.sink import DeliverySink

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

# Global publisher instance
_publisher: OutboxPublisher | None = None


class PublisherState(str, Enum):
    IDLE = "idle"
    ACQUIRING_LOCK = "acquiring_lock"
    FETCHING = "fetching"
    DELIVERING = "delivering"


class OutboxStorageError(RepositoryError):
    """The outbox or lock table could not be read or written; the cycle was aborted."""


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Outcome of one cycle. All zero when the lock was busy or nothing was due."""

    published: int = 0
    failed: int = 0
    lock_acquired: bool = False

    @property
    def attempted(self) -> int:
        return self.published + self.failed


@dataclass(slots=True)
class _CycleTally:
    published: int = 0
    failed: int = 0


class OutboxPublisher:
    """Lock-guarded batch publisher for outbox entries.

    ``run_cycle`` can be driven by the background loop (``start``/``stop``)
    or called directly, e.g. from the manual publish endpoint. Within one
    process at most one cycle runs at a time; across processes the
    database lock keeps cycles mutually exclusive.

    Attributes:
        state: Current phase of the cycle, ``IDLE`` between cycles.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sink: DeliverySink,
        coordinator: LockCoordinator,
        *,
        settings: OutboxSettings,
        retry_policy: RetryPolicy | None = None,
        repository: OutboxRepository | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self.sink = sink
        self.coordinator = coordinator
        self.settings = settings
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.repository = repository or OutboxRepository()
        self._clock = clock

        self.state = PublisherState.IDLE
        self._cycle_guard = asyncio.Lock()
        self._renew_guard = asyncio.Lock()
        self._lease_started = clock()
        self._lease_lost = False

        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ──────────────────────────────────────────────────────────────
    # One cycle
    # ──────────────────────────────────────────────────────────────

    async def run_cycle(self) -> PublishResult:
        """Run one publish cycle.

        Returns a zero result if a cycle is already running in this process
        or another instance holds the lock.

        Raises:
            OutboxStorageError: A database operation failed; the cycle was aborted.
        """
        if self._cycle_guard.locked():
            lazy_logger.debug(lambda: "Outbox cycle already in progress; skipping")
            return PublishResult()

        async with self._cycle_guard:
            return await self._run_guarded_cycle()

    async def _run_guarded_cycle(self) -> PublishResult:
        lock_name = self.settings.lock_name
        started = time.perf_counter()

        self.state = PublisherState.ACQUIRING_LOCK
        try:
            acquired = await self.coordinator.try_acquire(
                lock_name,
                self.settings.lock_hold,
                min_hold=self.settings.lock_min_hold,
            )
        except SQLAlchemyError as e:
            self.state = PublisherState.IDLE
            track_outbox_cycle("error")
            logger.exception("Outbox lock acquisition failed", extra={"lock_name": lock_name})
            msg = "Failed to acquire outbox lock"
            raise OutboxStorageError(msg, details={"lock_name": lock_name}) from e

        track_outbox_lock_attempt(acquired)
        if not acquired:
            self.state = PublisherState.IDLE
            track_outbox_cycle("skipped")
            lazy_logger.debug(lambda: f"Outbox lock {lock_name!r} busy; cycle skipped")
            return PublishResult()

        self._lease_started = self.coordinator.acquired_at(lock_name) or self._clock()
        self._lease_lost = False
        outcome = "error"
        try:
            tally = await self._publish_batch()
            outcome = "completed" if tally.published or tally.failed else "idle"
        except SQLAlchemyError as e:
            logger.exception("Outbox cycle aborted by storage failure", extra={"lock_name": lock_name})
            msg = "Outbox storage failure during publish cycle"
            raise OutboxStorageError(msg, details={"lock_name": lock_name}) from e
        finally:
            await self.coordinator.release(lock_name)
            self.state = PublisherState.IDLE
            track_outbox_cycle(outcome, time.perf_counter() - started)

        if tally.published or tally.failed:
            logger.info(
                "Outbox cycle finished",
                extra={"published": tally.published, "failed": tally.failed},
            )
        return PublishResult(published=tally.published, failed=tally.failed, lock_acquired=True)

    async def _publish_batch(self) -> _CycleTally:
        self.state = PublisherState.FETCHING
        async with self._session_factory() as session:
            entries = await self.repository.fetch_pending(
                session,
                limit=self.settings.batch_size,
                now=self._clock(),
            )
            # Keep loaded attributes usable after the fetch transaction ends
            session.expunge_all()
            await session.commit()

        tally = _CycleTally()
        if not entries:
            return tally

        self.state = PublisherState.DELIVERING
        if self.settings.delivery_concurrency == 1:
            for entry in entries:
                if not await self._ensure_lease():
                    break
                await self._deliver(entry, tally)
        else:
            await self._deliver_concurrently(entries, tally)
        return tally

    async def _deliver_concurrently(self, entries: Sequence[OutboxEntry], tally: _CycleTally) -> None:
        semaphore = asyncio.Semaphore(self.settings.delivery_concurrency)

        async def deliver(entry: OutboxEntry) -> None:
            async with semaphore:
                if await self._ensure_lease():
                    await self._deliver(entry, tally)

        try:
            async with asyncio.TaskGroup() as tg:
                for entry in entries:
                    tg.create_task(deliver(entry))
        except ExceptionGroup as eg:
            storage = eg.subgroup(SQLAlchemyError)
            if storage is not None:
                raise storage.exceptions[0] from eg
            raise

    async def _ensure_lease(self) -> bool:
        """Renew the lock once half of its hold time has passed.

        Returns False once the lease is lost; remaining entries are then left
        for a later cycle.
        """
        async with self._renew_guard:
            if self._lease_lost:
                return False
            now = self._clock()
            if now - self._lease_started <= self.settings.lock_hold / 2:
                return True
            if await self.coordinator.renew(self.settings.lock_name, self.settings.lock_hold):
                self._lease_started = now
                return True
            self._lease_lost = True
            logger.warning(
                "Outbox lock lost mid-cycle; remaining entries left for a later cycle",
                extra={"lock_name": self.settings.lock_name},
            )
            return False

    # ──────────────────────────────────────────────────────────────
    # One entry
    # ──────────────────────────────────────────────────────────────

    async def _deliver(self, entry: OutboxEntry, tally: _CycleTally) -> None:
        error: Exception | None = None
        started = time.perf_counter()
        try:
            await asyncio.wait_for(
                self.sink.send(
                    entry.destination,
                    entry.payload,
                    message_id=str(entry.id),
                    headers={
                        "event_type": entry.event_type,
                        "aggregate_type": entry.aggregate_type,
                        "aggregate_id": entry.aggregate_id,
                    },
                ),
                timeout=self.settings.send_timeout,
            )
        except TimeoutError:
            error = TransientDeliveryError(
                f"Send timed out after {self.settings.send_timeout}s",
                destination=entry.destination,
            )
        except Exception as e:
            error = e
        finally:
            track_outbox_delivery_duration(time.perf_counter() - started)

        if error is None:
            await self._record_success(entry, tally)
        else:
            await self._record_failure(entry, error, tally)

    async def _record_success(self, entry: OutboxEntry, tally: _CycleTally) -> None:
        async with self._session_factory() as session:
            updated = await self.repository.mark_published(session, entry.id, now=self._clock())
            await session.commit()

        if not updated:
            logger.warning(
                "Sent outbox entry was no longer PENDING; status left unchanged",
                extra={"entry_id": str(entry.id), "destination": entry.destination},
            )
            return

        tally.published += 1
        track_outbox_published(entry.destination)
        lazy_logger.debug(lambda: f"Outbox entry {entry.id} published to {entry.destination}")

    async def _record_failure(self, entry: OutboxEntry, error: Exception, tally: _CycleTally) -> None:
        decision = self.retry_policy.on_failure(entry, error, now=self._clock())
        async with self._session_factory() as session:
            updated = await self.repository.apply_failure(session, entry.id, decision)
            await session.commit()

        if not updated:
            logger.warning(
                "Failed outbox entry was no longer PENDING; failure not recorded",
                extra={"entry_id": str(entry.id), "destination": entry.destination, "error": decision.last_error},
            )
            return

        tally.failed += 1
        track_outbox_delivery_failure(entry.destination, decision.kind.value)

        extra = {
            "entry_id": str(entry.id),
            "destination": entry.destination,
            "retry_count": decision.retry_count,
            "max_retries": entry.max_retries,
            "error": decision.last_error,
        }
        if decision.kind is FailureKind.PERMANENT:
            logger.error("Outbox entry failed permanently", extra=extra)
        elif not decision.retry_eligible:
            logger.error("Outbox entry exhausted its retry budget", extra=extra)
        else:
            logger.warning("Outbox delivery failed, will retry", extra=extra)

    # ──────────────────────────────────────────────────────────────
    # Background loop
    # ──────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the fixed-delay background loop."""
        if self.is_running:
            logger.warning("Outbox publisher already running")
            return

        self._running = True
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="outbox-publisher")
        logger.info(
            "Outbox publisher started",
            extra={
                "batch_size": self.settings.batch_size,
                "poll_interval": self.settings.poll_interval,
                "lock_name": self.settings.lock_name,
                "instance_id": self.coordinator.instance_id,
            },
        )

    async def stop(self) -> None:
        """Stop the loop, letting an in-flight cycle finish within ``shutdown_timeout``."""
        if self._task is None:
            return

        self._running = False
        self._wakeup.set()

        try:
            await asyncio.wait_for(self._task, timeout=self.settings.shutdown_timeout)
        except TimeoutError:
            logger.warning("Outbox publisher shutdown timed out, cancelling")
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None

        logger.info("Outbox publisher stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_cycle()
            except OutboxStorageError:
                lazy_logger.debug(lambda: "Outbox cycle aborted; next attempt after poll interval")
            except Exception:
                logger.exception("Unexpected error in outbox publisher loop")

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.settings.poll_interval)


def build_outbox_publisher(settings: OutboxSettings | None = None) -> OutboxPublisher | None:
    """Wire a publisher to the application database and RabbitMQ broker.

    Returns None when RabbitMQ is not configured.
    """
    from outbox_publisher.infra.database.session import AsyncSessionLocal
    from outbox_publisher.infra.locks.coordinator import LockCoordinator
    from outbox_publisher.infra.messaging.broker import get_broker

    settings = settings or get_outbox_settings()
    broker = get_broker()
    if broker is None:
        return None

    rabbit_settings = get_rabbit_settings()
    resolver = DestinationResolver(
        settings.destinations,
        queue_prefix=rabbit_settings.queue_prefix if settings.use_queue_prefix else None,
        strict=settings.strict_destinations,
    )
    coordinator = LockCoordinator(AsyncSessionLocal, instance_id=settings.instance_id)
    return OutboxPublisher(
        AsyncSessionLocal,
        RabbitDeliverySink(broker, resolver),
        coordinator,
        settings=settings,
    )


def get_outbox_publisher() -> OutboxPublisher | None:
    return _publisher


async def start_outbox_publisher() -> OutboxPublisher | None:
    """Create the global publisher and start its loop if OUTBOX_ENABLED.

    The publisher is created even with the loop disabled so manual
    publishing through the API keeps working.
    """
    global _publisher

    settings = get_outbox_settings()
    if _publisher is None:
        _publisher = build_outbox_publisher(settings)

    if _publisher is None:
        logger.warning("Outbox publisher not started: RabbitMQ is not configured")
        return None

    if settings.enabled:
        await _publisher.start()
    else:
        logger.info("Outbox background loop disabled; manual publishing only")
    return _publisher


async def stop_outbox_publisher() -> None:
    global _publisher

    if _publisher is not None:
        await _publisher.stop()
        _publisher = None


__all__ = [
    "OutboxPublisher",
    "OutboxStorageError",
    "PublishResult",
    "PublisherState",
    "build_outbox_publisher",
    "get_outbox_publisher",
    "start_outbox_publisher",
    "stop_outbox_publisher",
]
