"""Logging infrastructure.

JSON Lines output through a QueueHandler/QueueListener pair, with
OpenTelemetry trace ids on each record and lazily evaluated debug messages.

Usage:
    import logging

    logger = logging.getLogger(__name__)
    logger.info("Entry published", extra={"entry_id": str(entry.id)})

    from outbox_publisher.infra.logging import get_lazy_logger

    lazy_logger = get_lazy_logger(__name__)
    lazy_logger.debug(lambda: f"Batch: {[str(e.id) for e in batch]}")
"""

from outbox_publisher.infra.logging.config import configure_logging, setup_logging, shutdown
from outbox_publisher.infra.logging.formatters import JSONFormatter
from outbox_publisher.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "JSONFormatter",
    "LazyLoggerAdapter",
    "configure_logging",
    "get_lazy_logger",
    "setup_logging",
    "shutdown",
]
