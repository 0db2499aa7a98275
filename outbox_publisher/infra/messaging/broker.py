"""RabbitMQ broker connection using FastStream.

The publisher only produces messages, so a bare ``RabbitBroker`` is enough;
no subscribers or AsyncAPI router are registered.

The broker is created lazily on first use so importing this module never
touches the network and works when RabbitMQ is disabled.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from outbox_publisher.core.settings import get_rabbit_settings

if TYPE_CHECKING:
    from faststream.rabbit import RabbitBroker


class ConnectionState(str, Enum):
    """Connection states for the RabbitMQ broker."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    FAILED = "failed"


logger = logging.getLogger(__name__)

rabbit_settings = get_rabbit_settings()

broker: RabbitBroker | None = None
_not_configured_logged = False
_last_start_error: str | None = None


def get_broker() -> RabbitBroker | None:
    """Get the process-wide broker, creating it on first use.

    Returns None when RabbitMQ is disabled.
    """
    global broker, _not_configured_logged

    if broker is not None:
        return broker

    if not rabbit_settings.is_configured:
        if not _not_configured_logged:
            logger.warning("RabbitMQ not configured - outbox delivery disabled")
            _not_configured_logged = True
        return None

    from faststream.rabbit import Channel, RabbitBroker

    # on_return_raises: an unroutable mandatory publish fails instead of returning quietly
    broker = RabbitBroker(
        rabbit_settings.get_url(),
        graceful_timeout=rabbit_settings.graceful_timeout,
        default_channel=Channel(
            publisher_confirms=rabbit_settings.publisher_confirms,
            on_return_raises=True,
        ),
        logger=logger,
    )
    return broker


def is_broker_running() -> bool:
    return broker is not None and bool(getattr(broker, "running", False))


async def start_broker() -> None:
    """Connect the broker, bounded by ``RABBIT_CONNECTION_TIMEOUT``.

    Raises:
        ConnectionError: If the connection does not complete in time.
    """
    global _last_start_error

    current = get_broker()
    if current is None:
        logger.warning("RabbitMQ not configured, skipping broker startup")
        return

    if is_broker_running():
        logger.debug("RabbitMQ broker already running")
        return

    logger.info(
        "Starting RabbitMQ broker",
        extra={
            "host": rabbit_settings.host,
            "port": rabbit_settings.port,
            "vhost": rabbit_settings.vhost,
            "connection_timeout": rabbit_settings.connection_timeout,
        },
    )

    try:
        await asyncio.wait_for(current.start(), timeout=rabbit_settings.connection_timeout)
    except TimeoutError:
        error_msg = f"RabbitMQ connection timeout after {rabbit_settings.connection_timeout}s"
        logger.error(error_msg, extra={"connection_timeout": rabbit_settings.connection_timeout})
        _last_start_error = error_msg
        raise ConnectionError(error_msg) from None
    except Exception as e:
        _last_start_error = f"{type(e).__name__}: {e}"
        raise

    _last_start_error = None
    logger.info("RabbitMQ broker started successfully")


async def stop_broker() -> None:
    """Close the broker connection if one was opened."""
    if broker is None:
        logger.debug("RabbitMQ not configured, skipping broker shutdown")
        return

    logger.info("Stopping RabbitMQ broker")
    try:
        await broker.stop()
    except Exception as e:
        logger.exception("Error stopping RabbitMQ broker", extra={"error": str(e)})
        return
    logger.info("RabbitMQ broker stopped successfully")


async def check_broker_health() -> dict[str, Any]:
    """Report broker connection state.

    Returns:
        Dictionary with status ("healthy", "unhealthy", "unavailable"),
        state, is_connected and an optional reason.
    """
    if not rabbit_settings.is_configured or broker is None:
        return {
            "status": "unavailable",
            "state": ConnectionState.DISCONNECTED.value,
            "is_connected": False,
            "reason": "rabbitmq_not_enabled" if not rabbit_settings.is_configured else "broker_not_started",
        }

    if not is_broker_running():
        if _last_start_error is not None:
            return {
                "status": "unhealthy",
                "state": ConnectionState.FAILED.value,
                "is_connected": False,
                "reason": _last_start_error,
            }
        return {
            "status": "unhealthy",
            "state": ConnectionState.DISCONNECTED.value,
            "is_connected": False,
            "reason": "broker_not_running",
        }

    return {
        "status": "healthy",
        "state": ConnectionState.CONNECTED.value,
        "is_connected": True,
    }
