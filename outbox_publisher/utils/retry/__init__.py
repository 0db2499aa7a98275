"""Startup retry with exponential backoff."""

from __future__ import annotations

from outbox_publisher.utils.retry.decorator import RetryError, retry

__all__ = ["RetryError", "retry"]
