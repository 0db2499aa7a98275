"""Helper functions for tracking operational metrics."""

from __future__ import annotations

import logging
from typing import Any

from outbox_publisher.infra.metrics import business

logger = logging.getLogger(__name__)


# ============================================================================
# Error Tracking
# ============================================================================


def track_error(
    error_type: str,
    endpoint: str,
    status_code: int,
    extra: dict[str, Any] | None = None,
) -> None:
    """Track an error occurrence.

    Example:
        track_error("not-found", "/outbox/entries/123/reset", 404)
    """
    business.errors_total.labels(
        error_type=error_type,
        endpoint=endpoint,
        status_code=str(status_code),
    ).inc()

    logger.debug(
        f"Tracked error: {error_type}",
        extra={"endpoint": endpoint, "status_code": status_code, **(extra or {})},
    )


def track_unhandled_exception(exception_type: str, endpoint: str) -> None:
    business.exceptions_unhandled_total.labels(
        exception_type=exception_type,
        endpoint=endpoint,
    ).inc()


# ============================================================================
# Retry Tracking
# ============================================================================


def track_retry_attempt(operation: str, attempt_number: int) -> None:
    """Track a retry attempt (attempt_number is 1-indexed)."""
    business.retry_attempts_total.labels(
        operation=operation,
        attempt_number=str(attempt_number),
    ).inc()


def track_retry_exhausted(operation: str) -> None:
    business.retry_exhausted_total.labels(operation=operation).inc()


def track_retry_success(operation: str, attempts_needed: int) -> None:
    business.retry_success_after_failure_total.labels(
        operation=operation,
        attempts_needed=str(attempts_needed),
    ).inc()


# ============================================================================
# Outbox Tracking
# ============================================================================


def track_outbox_published(destination: str) -> None:
    business.outbox_entries_published_total.labels(destination=destination).inc()


def track_outbox_delivery_failure(destination: str, kind: str) -> None:
    """Track a failed send.

    Example:
        track_outbox_delivery_failure("orders", "transient")
    """
    business.outbox_delivery_failures_total.labels(destination=destination, kind=kind).inc()


def track_outbox_delivery_duration(duration: float) -> None:
    business.outbox_delivery_duration_seconds.observe(duration)


def track_outbox_cycle(outcome: str, duration: float | None = None) -> None:
    """Track a finished publish cycle.

    Duration is only recorded for cycles that actually held the lock.
    """
    business.outbox_cycles_total.labels(outcome=outcome).inc()
    if duration is not None:
        business.outbox_cycle_duration_seconds.observe(duration)


def track_outbox_lock_attempt(acquired: bool) -> None:
    business.outbox_lock_attempts_total.labels(result="acquired" if acquired else "busy").inc()


def update_outbox_backlog(unpublished: int, stuck: int) -> None:
    """Record the last observed backlog counts."""
    business.outbox_unpublished_entries.set(unpublished)
    business.outbox_stuck_entries.set(stuck)
