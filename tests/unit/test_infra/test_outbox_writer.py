"""Unit tests for staging outbox entries in the caller's transaction."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select

from outbox_publisher.infra.outbox import OutboxEntry, OutboxStatus, stage_outbox_entry
from outbox_publisher.infra.outbox.writer import encode_payload


async def _count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(OutboxEntry))).scalar_one()


@pytest.mark.unit
class TestEncodePayload:
    def test_text_is_kept_verbatim(self):
        assert encode_payload('{"b": 2,  "a": 1}') == '{"b": 2,  "a": 1}'

    def test_bytes_are_decoded(self):
        assert encode_payload("zürich".encode()) == "zürich"

    def test_mapping_becomes_compact_json(self):
        assert encode_payload({"a": 1, "b": [1, 2]}) == '{"a":1,"b":[1,2]}'

    def test_non_json_values_use_str(self):
        entry_id = uuid.UUID("0190a5e2-0000-7000-8000-000000000001")

        assert encode_payload({"id": entry_id}) == '{"id":"0190a5e2-0000-7000-8000-000000000001"}'


@pytest.mark.unit
class TestStageOutboxEntry:
    """Entries commit and roll back with the surrounding transaction."""

    async def test_committed_entry_is_pending(self, session_factory, load_entry):
        async with session_factory() as session:
            entry = stage_outbox_entry(
                session,
                aggregate_type="Order",
                aggregate_id="7",
                event_type="order.created",
                destination="orders",
                payload={"order_id": 7},
                max_retries=3,
            )
            await session.commit()

        stored = await load_entry(entry.id)
        assert stored.status == OutboxStatus.PENDING
        assert stored.retry_count == 0
        assert stored.max_retries == 3
        assert stored.payload == '{"order_id":7}'
        assert stored.published_at is None
        assert stored.created_at is not None

    async def test_rollback_discards_entry(self, session_factory):
        async with session_factory() as session:
            stage_outbox_entry(
                session,
                aggregate_type="Order",
                aggregate_id="7",
                event_type="order.created",
                destination="orders",
                payload="{}",
            )
            await session.rollback()

        assert await _count(session_factory) == 0

    async def test_default_max_retries_comes_from_settings(self, session_factory, monkeypatch):
        from outbox_publisher.core.settings import clear_all_caches

        monkeypatch.setenv("OUTBOX_MAX_RETRIES", "9")
        clear_all_caches()

        async with session_factory() as session:
            entry = stage_outbox_entry(
                session,
                aggregate_type="Order",
                aggregate_id="7",
                event_type="order.created",
                destination="orders",
                payload="{}",
            )

        assert entry.max_retries == 9

    async def test_explicit_id_is_used(self, session_factory):
        entry_id = uuid.uuid4()

        async with session_factory() as session:
            entry = stage_outbox_entry(
                session,
                aggregate_type="Order",
                aggregate_id="7",
                event_type="order.created",
                destination="orders",
                payload="{}",
                entry_id=entry_id,
            )
            await session.commit()

        assert entry.id == entry_id
