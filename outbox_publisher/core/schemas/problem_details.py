"""RFC 7807 Problem Details schema for error responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProblemDetails(BaseModel):
    """RFC 7807 Problem Details for HTTP APIs.

    See: https://datatracker.ietf.org/doc/html/rfc7807

    Example:
        return JSONResponse(
            status_code=409,
            content=ProblemDetails(
                type="outbox-entry-published",
                title="Conflict",
                status=409,
                detail="Cannot reset an entry in status PUBLISHED",
                instance="/outbox/entries/0190.../reset",
            ).model_dump(exclude_none=True),
        )
    """

    type: str = Field(
        default="about:blank",
        min_length=1,
        max_length=200,
        description="URI reference identifying the problem type",
    )
    title: str = Field(
        min_length=1, max_length=200, description="Short, human-readable summary of the problem"
    )
    status: int = Field(ge=100, le=599, description="HTTP status code")
    detail: str | None = Field(
        default=None,
        max_length=2000,
        description="Human-readable explanation specific to this occurrence",
    )
    instance: str | None = Field(
        default=None,
        max_length=500,
        description="URI reference identifying the specific occurrence",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "outbox-entry-not-found",
                "title": "Not Found",
                "status": 404,
                "detail": "OutboxEntry not found",
                "instance": "/outbox/entries/0190a5e2-7c1b-7d7e-9f00-000000000000/reset",
            }
        },
        str_strip_whitespace=True,
    )


class ValidationErrorItem(BaseModel):
    """One failed field in a request."""

    field: str = Field(description="Dotted location of the invalid value")
    message: str = Field(description="Validation message")
    type: str = Field(description="Validation error type")
    value: Any | None = Field(default=None, description="Rejected input")


class ValidationProblemDetails(ProblemDetails):
    """Problem Details with field-level validation errors."""

    errors: list[ValidationErrorItem] = Field(default_factory=list)


__all__ = ["ProblemDetails", "ValidationErrorItem", "ValidationProblemDetails"]
