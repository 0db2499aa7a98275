"""Unit tests for outbox repository queries and status transitions."""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from outbox_publisher.core.database import NotFoundError
from outbox_publisher.infra.outbox import (
    FailureKind,
    InvalidStateTransitionError,
    OutboxRepository,
    OutboxStatus,
    RetryDecision,
)
from outbox_publisher.infra.outbox.repository import fetch_pending_statement


@pytest.fixture
def repository() -> OutboxRepository:
    return OutboxRepository()


def _decision(retry_count: int, *, next_retry_at=None) -> RetryDecision:
    return RetryDecision(
        retry_count=retry_count,
        retry_eligible=True,
        next_retry_at=next_retry_at,
        last_error="TransientDeliveryError: broker unavailable",
        kind=FailureKind.TRANSIENT,
    )


@pytest.mark.unit
class TestFetchPendingStatement:
    """SQL rendering of the batch fetch."""

    def test_postgresql_uses_skip_locked(self, clock):
        stmt = fetch_pending_statement(limit=10, now=clock())
        sql = str(stmt.compile(dialect=postgresql.dialect()))

        assert "FOR UPDATE SKIP LOCKED" in sql
        assert "ORDER BY outbox.created_at ASC, outbox.id ASC" in sql
        assert "outbox.retry_count < outbox.max_retries" in sql

    def test_sqlite_omits_row_locking(self, clock):
        stmt = fetch_pending_statement(limit=10, now=clock())
        sql = str(stmt.compile(dialect=sqlite.dialect()))

        assert "FOR UPDATE" not in sql


@pytest.mark.unit
class TestFetchPending:
    """Which entries a cycle picks up."""

    async def test_returns_oldest_first_up_to_limit(self, repository, db_session, make_entry, clock):
        first = await make_entry(aggregate_id="1")
        second = await make_entry(aggregate_id="2")
        await make_entry(aggregate_id="3")

        entries = await repository.fetch_pending(db_session, limit=2, now=clock())

        assert [e.id for e in entries] == [first.id, second.id]

    async def test_skips_published_failed_and_exhausted(self, repository, db_session, make_entry, clock):
        due = await make_entry()
        published = await make_entry()
        failed = await make_entry()
        exhausted = await make_entry(max_retries=2)

        await repository.mark_published(db_session, published.id, now=clock())
        await repository.mark_failed(db_session, failed.id)
        await repository.apply_failure(db_session, exhausted.id, _decision(2))
        await db_session.commit()

        entries = await repository.fetch_pending(db_session, limit=10, now=clock())

        assert [e.id for e in entries] == [due.id]

    async def test_respects_next_retry_at(self, repository, db_session, make_entry, clock):
        entry = await make_entry()
        await repository.apply_failure(
            db_session, entry.id, _decision(1, next_retry_at=clock() + timedelta(seconds=60))
        )
        await db_session.commit()

        assert await repository.fetch_pending(db_session, limit=10, now=clock()) == []

        later = clock() + timedelta(seconds=60)
        entries = await repository.fetch_pending(db_session, limit=10, now=later)
        assert [e.id for e in entries] == [entry.id]

    async def test_empty_table_is_idle(self, repository, db_session, clock):
        assert await repository.fetch_pending(db_session, limit=10, now=clock()) == []


@pytest.mark.unit
class TestStatusTransitions:
    """Conditional single-row updates never move an entry backwards."""

    async def test_mark_published(self, repository, db_session, make_entry, load_entry, clock):
        entry = await make_entry()

        assert await repository.mark_published(db_session, entry.id, now=clock()) is True
        await db_session.commit()

        stored = await load_entry(entry.id)
        assert stored.status == OutboxStatus.PUBLISHED
        assert stored.published_at is not None
        assert stored.last_error is None

    async def test_mark_published_twice_is_a_no_op(self, repository, db_session, make_entry, clock):
        entry = await make_entry()

        assert await repository.mark_published(db_session, entry.id, now=clock()) is True
        assert await repository.mark_published(db_session, entry.id, now=clock()) is False

    async def test_apply_failure_records_error(self, repository, db_session, make_entry, load_entry):
        entry = await make_entry()

        assert await repository.apply_failure(db_session, entry.id, _decision(1)) is True
        await db_session.commit()

        stored = await load_entry(entry.id)
        assert stored.status == OutboxStatus.PENDING
        assert stored.retry_count == 1
        assert stored.last_error == "TransientDeliveryError: broker unavailable"

    async def test_retry_count_never_decreases(self, repository, db_session, make_entry, load_entry):
        entry = await make_entry()

        await repository.apply_failure(db_session, entry.id, _decision(3))
        assert await repository.apply_failure(db_session, entry.id, _decision(2)) is False
        await db_session.commit()

        stored = await load_entry(entry.id)
        assert stored.retry_count == 3

    async def test_failure_after_publish_is_ignored(self, repository, db_session, make_entry, load_entry, clock):
        entry = await make_entry()

        await repository.mark_published(db_session, entry.id, now=clock())
        assert await repository.apply_failure(db_session, entry.id, _decision(1)) is False
        await db_session.commit()

        stored = await load_entry(entry.id)
        assert stored.status == OutboxStatus.PUBLISHED
        assert stored.retry_count == 0


@pytest.mark.unit
class TestBacklogQueries:
    """Counts behind the stats endpoint."""

    async def test_counts_unpublished_and_stuck(self, repository, db_session, make_entry, clock):
        await make_entry()
        await make_entry()
        stuck = await make_entry(max_retries=1)
        published = await make_entry()

        await repository.apply_failure(db_session, stuck.id, _decision(1))
        await repository.mark_published(db_session, published.id, now=clock())
        await db_session.commit()

        assert await repository.count_unpublished(db_session) == 2
        assert await repository.count_stuck(db_session) == 1

        entries = await repository.list_stuck(db_session)
        assert [e.id for e in entries] == [stuck.id]


@pytest.mark.unit
class TestOperatorActions:
    """reset_entry and mark_failed."""

    async def test_reset_gives_fresh_budget(self, repository, db_session, make_entry):
        entry = await make_entry(max_retries=1)
        await repository.apply_failure(db_session, entry.id, _decision(1))
        await db_session.commit()

        reset = await repository.reset_entry(db_session, entry.id)

        assert reset.status == OutboxStatus.PENDING
        assert reset.retry_count == 0
        assert reset.last_error is None
        assert reset.next_retry_at is None

    async def test_reset_logs_whether_entry_was_stuck(self, repository, db_session, make_entry, caplog):
        entry = await make_entry(max_retries=1)
        await repository.apply_failure(db_session, entry.id, _decision(1))
        await db_session.commit()

        with caplog.at_level(logging.INFO, logger="repository.OutboxEntry"):
            await repository.reset_entry(db_session, entry.id)

        record = next(r for r in caplog.records if r.getMessage() == "Outbox entry reset by operator")
        assert record.was_stuck is True

    async def test_reset_failed_entry_returns_it_to_pending(self, repository, db_session, make_entry):
        entry = await make_entry()
        await repository.mark_failed(db_session, entry.id)

        reset = await repository.reset_entry(db_session, entry.id)

        assert reset.status == OutboxStatus.PENDING

    async def test_reset_published_entry_is_rejected(self, repository, db_session, make_entry, clock):
        entry = await make_entry()
        await repository.mark_published(db_session, entry.id, now=clock())
        await db_session.commit()

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await repository.reset_entry(db_session, entry.id)

        assert exc_info.value.current == OutboxStatus.PUBLISHED
        assert exc_info.value.action == "reset"

    async def test_mark_failed_is_idempotent(self, repository, db_session, make_entry):
        entry = await make_entry()

        first = await repository.mark_failed(db_session, entry.id)
        second = await repository.mark_failed(db_session, entry.id)

        assert first.status == second.status == OutboxStatus.FAILED

    async def test_mark_failed_published_entry_is_rejected(self, repository, db_session, make_entry, clock):
        entry = await make_entry()
        await repository.mark_published(db_session, entry.id, now=clock())
        await db_session.commit()

        with pytest.raises(InvalidStateTransitionError):
            await repository.mark_failed(db_session, entry.id)

    async def test_unknown_entry_raises_not_found(self, repository, db_session):
        with pytest.raises(NotFoundError):
            await repository.reset_entry(db_session, uuid.uuid4())


@pytest.mark.unit
class TestEntryPredicates:
    """Model properties agree with what the queries select."""

    async def test_is_eligible_matches_fetch_pending(
        self, repository, db_session, make_entry, load_entry, clock
    ):
        due = await make_entry()
        backing_off = await make_entry()
        published = await make_entry()
        failed = await make_entry()
        exhausted = await make_entry(max_retries=1)

        await repository.apply_failure(
            db_session, backing_off.id, _decision(1, next_retry_at=clock() + timedelta(seconds=30))
        )
        await repository.mark_published(db_session, published.id, now=clock())
        await repository.mark_failed(db_session, failed.id)
        await repository.apply_failure(db_session, exhausted.id, _decision(1))
        await db_session.commit()

        fetched = {e.id for e in await repository.fetch_pending(db_session, limit=10, now=clock())}
        for entry_id in (due.id, backing_off.id, published.id, failed.id, exhausted.id):
            stored = await load_entry(entry_id)
            assert stored.is_eligible(clock()) is (entry_id in fetched), stored

        assert fetched == {due.id}
        later = clock() + timedelta(seconds=30)
        assert (await load_entry(backing_off.id)).is_eligible(later) is True

    async def test_stuck_and_published_flags(self, repository, db_session, make_entry, load_entry, clock):
        exhausted = await make_entry(max_retries=1)
        failed = await make_entry(max_retries=1)
        published = await make_entry()

        await repository.apply_failure(db_session, exhausted.id, _decision(1))
        await repository.apply_failure(db_session, failed.id, _decision(1))
        await repository.mark_failed(db_session, failed.id)
        await repository.mark_published(db_session, published.id, now=clock())
        await db_session.commit()

        stuck_ids = {e.id for e in await repository.list_stuck(db_session, limit=10)}

        assert (await load_entry(exhausted.id)).is_stuck is True
        assert (await load_entry(failed.id)).is_stuck is False
        assert stuck_ids == {exhausted.id}
        assert (await load_entry(published.id)).is_published is True
        assert (await load_entry(exhausted.id)).is_published is False
