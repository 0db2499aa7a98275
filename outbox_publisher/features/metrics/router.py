"""Prometheus metrics endpoint.

Endpoints:
    GET /metrics - Prometheus scrape endpoint

Metrics Exposed:
    Outbox:
        - outbox_entries_published_total - Entries acknowledged by the broker, by destination
        - outbox_delivery_failures_total - Failed sends by destination and failure kind
        - outbox_cycles_total - Publish cycles by outcome (completed, idle, skipped, error)
        - outbox_lock_attempts_total - Lock acquisitions by result (acquired, busy)
        - outbox_cycle_duration_seconds / outbox_delivery_duration_seconds
        - outbox_unpublished_entries / outbox_stuck_entries - Backlog gauges

    Database:
        - database_connections_active
        - database_query_duration_seconds - Query execution time with exemplars

    Application Info:
        - app_info - Service version, name, and environment labels
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from outbox_publisher.infra.metrics.prometheus import REGISTRY

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose Prometheus metrics in text exposition format."""
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
