"""Stage outbox entries inside the caller's transaction.

Usage:
    from outbox_publisher.infra.outbox import stage_outbox_entry

    async with AsyncSessionLocal() as session:
        order = Order(...)
        session.add(order)
        stage_outbox_entry(
            session,
            aggregate_type="Order",
            aggregate_id=str(order.id),
            event_type="order.created",
            destination="orders",
            payload={"order_id": str(order.id)},
        )
        # Order and entry are committed together
        await session.commit()
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from outbox_publisher.core.settings import get_outbox_settings
from outbox_publisher.infra.outbox.models import OutboxEntry, OutboxStatus

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def encode_payload(payload: str | bytes | Mapping[str, Any] | list[Any]) -> str:
    """Text is kept verbatim, bytes are decoded as UTF-8, anything else becomes JSON."""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, bytes):
        return payload.decode("utf-8")
    return json.dumps(payload, separators=(",", ":"), default=str)


def stage_outbox_entry(
    session: AsyncSession,
    *,
    aggregate_type: str,
    aggregate_id: str,
    event_type: str,
    destination: str,
    payload: str | bytes | Mapping[str, Any] | list[Any],
    max_retries: int | None = None,
    entry_id: uuid.UUID | None = None,
) -> OutboxEntry:
    """Add a PENDING entry to ``session`` without flushing or committing.

    The entry becomes visible to the publisher only when the caller's
    transaction commits; a rollback discards it together with the domain
    changes.
    """
    if max_retries is None:
        max_retries = get_outbox_settings().max_retries

    entry = OutboxEntry(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        destination=destination,
        payload=encode_payload(payload),
        status=OutboxStatus.PENDING.value,
        retry_count=0,
        max_retries=max_retries,
    )
    if entry_id is not None:
        entry.id = entry_id

    session.add(entry)

    logger.debug(
        "Outbox entry staged",
        extra={"event_type": event_type, "destination": destination, "aggregate_id": aggregate_id},
    )
    return entry


__all__ = ["encode_payload", "stage_outbox_entry"]
