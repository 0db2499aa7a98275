"""Lock table model.

One row per named lock. The column layout matches the ShedLock JDBC table so
that JVM schedulers and this service can share a lock table.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from outbox_publisher.core.database.base import Base, as_utc


class LockRecord(Base):
    """A named lease.

    The lock is free when ``lock_until <= now``; otherwise ``locked_by`` holds it.
    """

    __tablename__ = "shedlock"

    name: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Lock name",
    )
    lock_until: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Lease expiry",
    )
    locked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the current lease was taken",
    )
    locked_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Holder identity (hostname:pid)",
    )

    def is_held(self, now: datetime) -> bool:
        return as_utc(self.lock_until) > now

    def __repr__(self) -> str:
        return f"LockRecord(name={self.name!r}, locked_by={self.locked_by!r}, lock_until={self.lock_until})"


__all__ = ["LockRecord"]
