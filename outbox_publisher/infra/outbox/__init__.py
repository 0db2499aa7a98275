"""Transactional outbox publisher.

Business code stages entries in the same transaction as its domain
changes; a lock-guarded background publisher delivers them to the broker
and records the outcome on each row.

Delivery is at-least-once: consumers deduplicate on the message id,
which is the outbox entry id.
"""

from outbox_publisher.infra.outbox.models import DEFAULT_MAX_RETRIES, OutboxEntry, OutboxStatus
from outbox_publisher.infra.outbox.processor import (
    OutboxPublisher,
    OutboxStorageError,
    PublisherState,
    PublishResult,
    build_outbox_publisher,
    get_outbox_publisher,
    start_outbox_publisher,
    stop_outbox_publisher,
)
from outbox_publisher.infra.outbox.repository import InvalidStateTransitionError, OutboxRepository
from outbox_publisher.infra.outbox.retry import RetryDecision, RetryPolicy
from outbox_publisher.infra.outbox.sink import (
    DeliveryAck,
    DeliveryError,
    DeliverySink,
    DestinationResolver,
    FailureKind,
    PermanentDeliveryError,
    RabbitDeliverySink,
    TransientDeliveryError,
)
from outbox_publisher.infra.outbox.writer import stage_outbox_entry

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DeliveryAck",
    "DeliveryError",
    "DeliverySink",
    "DestinationResolver",
    "FailureKind",
    "InvalidStateTransitionError",
    "OutboxEntry",
    "OutboxPublisher",
    "OutboxRepository",
    "OutboxStatus",
    "OutboxStorageError",
    "PermanentDeliveryError",
    "PublishResult",
    "PublisherState",
    "RabbitDeliverySink",
    "RetryDecision",
    "RetryPolicy",
    "TransientDeliveryError",
    "build_outbox_publisher",
    "get_outbox_publisher",
    "start_outbox_publisher",
    "stop_outbox_publisher",
    "stage_outbox_entry",
]
