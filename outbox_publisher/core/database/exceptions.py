"""Errors raised by repositories instead of raw SQLAlchemy exceptions."""

from __future__ import annotations

from typing import Any


class RepositoryError(Exception):
    """A repository operation failed.

    ``details`` carries identifiers for logs; it is appended to ``str(error)``.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        rendered = ", ".join(f"{key}={value!r}" for key, value in self.details.items())
        return f"{self.message} ({rendered})"


class NotFoundError(RepositoryError):
    """No row matched the lookup."""

    def __init__(self, model_name: str, identifier: dict[str, Any]) -> None:
        self.model_name = model_name
        self.identifier = identifier
        lookup = ", ".join(f"{key}={value!r}" for key, value in identifier.items())
        super().__init__(f"{model_name} not found with {lookup}", details={"model": model_name, **identifier})
