"""Outbox operational API: backlog stats, manual publish, stuck entry handling."""

from .router import router
from .service import OutboxService, trigger_publish

__all__ = [
    "OutboxService",
    "router",
    "trigger_publish",
]
