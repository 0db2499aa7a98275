"""Base schema classes for API responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class CustomBase(BaseModel):
    """Base model with common configuration for all response schemas.

    Example:
        class OutboxEntryResponse(CustomBase):
            id: UUID
            destination: str
            created_at: datetime
    """

    model_config = ConfigDict(
        # Allow creation from ORM models (SQLAlchemy)
        from_attributes=True,
        use_enum_values=True,
        populate_by_name=True,
        extra="ignore",
    )


__all__ = ["CustomBase"]
