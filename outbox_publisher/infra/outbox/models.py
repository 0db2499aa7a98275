"""OutboxEntry SQLAlchemy model for the transactional outbox pattern.

Business code stages entries in the same transaction as its domain changes,
so either both commit or neither does. The publisher drains PENDING entries
to the message broker and records the outcome on each row.

Status moves in one direction only:
    PENDING -> PUBLISHED   (delivery acknowledged)
    PENDING -> FAILED      (operator action)
    FAILED  -> PENDING     (operator reset)
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from outbox_publisher.core.database.base import Base, TimestampMixin, UUIDv7PKMixin, as_utc

DEFAULT_MAX_RETRIES = 5


class OutboxStatus(StrEnum):
    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


class OutboxEntry(Base, UUIDv7PKMixin, TimestampMixin):
    """A message waiting to be (or already) delivered to a destination.

    Attributes:
        id: UUID v7 primary key, also used as the broker message_id
        aggregate_type: Opaque aggregate type (e.g., "Order")
        aggregate_id: Opaque aggregate identifier
        event_type: Opaque event name (e.g., "order.created")
        destination: Logical destination name resolved by the delivery sink
        payload: Message body, stored verbatim and never inspected
        status: PENDING | PUBLISHED | FAILED
        retry_count: Failed delivery attempts so far (never decreases)
        max_retries: Attempt ceiling for this entry
        last_error: Most recent failure, truncated
        next_retry_at: Earliest time of the next attempt when backoff is enabled
        published_at: When the broker acknowledged the message
    """

    __tablename__ = "outbox"

    aggregate_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Aggregate type (e.g., Order)",
    )
    aggregate_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Aggregate identifier",
    )
    event_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Event type identifier",
    )
    destination: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Logical destination (queue) name",
    )
    payload: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Opaque message body",
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=OutboxStatus.PENDING.value,
        server_default=OutboxStatus.PENDING.value,
        comment="PENDING | PUBLISHED | FAILED",
    )
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Number of failed delivery attempts",
    )
    max_retries: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_MAX_RETRIES,
        server_default=text(str(DEFAULT_MAX_RETRIES)),
        comment="Maximum delivery attempts for this entry",
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Last delivery error (truncated)",
    )
    next_retry_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Earliest next attempt when backoff is enabled",
    )
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the entry was acknowledged by the broker",
    )

    __table_args__ = (
        Index(
            "ix_outbox_status_created_at",
            "status",
            "created_at",
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    @property
    def is_published(self) -> bool:
        return self.status == OutboxStatus.PUBLISHED

    @property
    def is_stuck(self) -> bool:
        """PENDING but out of retry budget; needs an operator."""
        return self.status == OutboxStatus.PENDING and self.retry_count >= self.max_retries

    def is_eligible(self, now: datetime) -> bool:
        """Whether the batch fetcher would select this entry at ``now``."""
        if self.status != OutboxStatus.PENDING or self.retry_count >= self.max_retries:
            return False
        return self.next_retry_at is None or as_utc(self.next_retry_at) <= now

    def __repr__(self) -> str:
        return (
            f"OutboxEntry("
            f"id={self.id}, "
            f"destination={self.destination!r}, "
            f"status={self.status}, "
            f"retries={self.retry_count}/{self.max_retries}"
            f")"
        )


__all__ = ["DEFAULT_MAX_RETRIES", "OutboxEntry", "OutboxStatus"]
