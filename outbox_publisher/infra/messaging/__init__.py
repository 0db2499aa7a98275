"""Message broker infrastructure (FastStream + RabbitMQ)."""

from __future__ import annotations

from outbox_publisher.infra.messaging.broker import (
    ConnectionState,
    check_broker_health,
    get_broker,
    is_broker_running,
    start_broker,
    stop_broker,
)

__all__ = [
    "ConnectionState",
    "check_broker_health",
    "get_broker",
    "is_broker_running",
    "start_broker",
    "stop_broker",
]
