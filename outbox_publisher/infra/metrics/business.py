"""Operational metrics for the outbox publisher and its error paths."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

from outbox_publisher.infra.metrics.prometheus import (
    CYCLE_DURATION_BUCKETS,
    DEFAULT_LATENCY_BUCKETS,
    REGISTRY,
)

# ============================================================================
# Error and Exception Metrics
# ============================================================================

errors_total = Counter(
    "errors_total",
    "Total number of errors by type and endpoint",
    ["error_type", "endpoint", "status_code"],
    registry=REGISTRY,
)

exceptions_unhandled_total = Counter(
    "exceptions_unhandled_total",
    "Total number of unhandled exceptions",
    ["exception_type", "endpoint"],
    registry=REGISTRY,
)

# ============================================================================
# Retry Metrics (retry decorator)
# ============================================================================

retry_attempts_total = Counter(
    "retry_attempts_total",
    "Total number of retry attempts",
    ["operation", "attempt_number"],
    registry=REGISTRY,
)

retry_exhausted_total = Counter(
    "retry_exhausted_total",
    "Total number of operations that exhausted all retries",
    ["operation"],
    registry=REGISTRY,
)

retry_success_after_failure_total = Counter(
    "retry_success_after_failure_total",
    "Total number of operations that succeeded after retry",
    ["operation", "attempts_needed"],
    registry=REGISTRY,
)

# ============================================================================
# Outbox Metrics
# ============================================================================

outbox_entries_published_total = Counter(
    "outbox_entries_published_total",
    "Outbox entries delivered and marked PUBLISHED",
    ["destination"],
    registry=REGISTRY,
)

outbox_delivery_failures_total = Counter(
    "outbox_delivery_failures_total",
    "Failed delivery attempts by destination and failure kind (transient|permanent)",
    ["destination", "kind"],
    registry=REGISTRY,
)

outbox_cycles_total = Counter(
    "outbox_cycles_total",
    "Publish cycles by outcome (completed|lock_busy|skipped|storage_error)",
    ["outcome"],
    registry=REGISTRY,
)

outbox_lock_attempts_total = Counter(
    "outbox_lock_attempts_total",
    "Publisher lock acquisition attempts by result (acquired|busy)",
    ["result"],
    registry=REGISTRY,
)

outbox_cycle_duration_seconds = Histogram(
    "outbox_cycle_duration_seconds",
    "Duration of publish cycles that held the lock",
    buckets=CYCLE_DURATION_BUCKETS,
    registry=REGISTRY,
)

outbox_delivery_duration_seconds = Histogram(
    "outbox_delivery_duration_seconds",
    "Duration of a single send to the delivery sink",
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=REGISTRY,
)

outbox_unpublished_entries = Gauge(
    "outbox_unpublished_entries",
    "PENDING entries still within their retry budget (last observed)",
    registry=REGISTRY,
)

outbox_stuck_entries = Gauge(
    "outbox_stuck_entries",
    "PENDING entries that exhausted their retry budget (last observed)",
    registry=REGISTRY,
)
