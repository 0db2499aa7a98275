"""Database building blocks: declarative base, mixins, repository and errors."""

from __future__ import annotations

from .base import (
    NAMING_CONVENTION,
    Base,
    TimestampMixin,
    UUIDv7PKMixin,
    as_utc,
    generate_uuid7,
    utc_now,
)
from .exceptions import NotFoundError, RepositoryError
from .repository import BaseRepository

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "NotFoundError",
    "RepositoryError",
    "TimestampMixin",
    "UUIDv7PKMixin",
    "as_utc",
    "generate_uuid7",
    "utc_now",
]
