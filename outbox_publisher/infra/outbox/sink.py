"""Delivery sinks: where outbox payloads go.

A sink sends one payload to one destination and either returns an
acknowledgement or raises a ``DeliveryError`` whose ``kind`` tells the retry
policy whether the attempt is worth repeating.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar, Protocol

from aio_pika.exceptions import ChannelClosed, ChannelNotFoundEntity
from aio_pika.exceptions import DeliveryError as AMQPDeliveryError
from aiormq.abc import DeliveredMessage

if TYPE_CHECKING:
    from faststream.rabbit import RabbitBroker

logger = logging.getLogger(__name__)

_NOT_FOUND = 404


def _is_not_found(error: ChannelClosed) -> bool:
    """404 channel close: the exchange or queue is missing.

    aiormq maps 404 to ChannelNotFoundEntity(reply_text); unmapped closes
    carry the reply code as their first argument.
    """
    if isinstance(error, ChannelNotFoundEntity):
        return True
    return bool(error.args) and error.args[0] == _NOT_FOUND


class FailureKind(StrEnum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class DeliveryError(Exception):
    """Base class for send failures."""

    kind: ClassVar[FailureKind] = FailureKind.TRANSIENT

    def __init__(self, message: str, *, destination: str | None = None) -> None:
        super().__init__(message)
        self.destination = destination


class TransientDeliveryError(DeliveryError):
    """Timeout, connection loss, throttling, broker unavailable. Worth retrying."""

    kind = FailureKind.TRANSIENT


class PermanentDeliveryError(DeliveryError):
    """Unknown destination, unroutable or rejected message. Retrying cannot help."""

    kind = FailureKind.PERMANENT


def failure_kind(error: BaseException) -> FailureKind:
    """Classify any exception raised by a send; unknown errors are transient."""
    if isinstance(error, DeliveryError):
        return error.kind
    return FailureKind.TRANSIENT


@dataclass(frozen=True, slots=True)
class DeliveryAck:
    destination: str
    message_id: str | None = None


class DeliverySink(Protocol):
    """Anything that can deliver a single payload."""

    async def send(
        self,
        destination: str,
        payload: str,
        *,
        message_id: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> DeliveryAck: ...


class DestinationResolver:
    """Map a logical destination name to a physical queue name.

    Rules, first match wins:
        1. explicit route from ``routes``
        2. ``{queue_prefix}.{name}`` when a prefix is given
        3. the name unchanged

    In strict mode a name missing from ``routes`` is a permanent failure.

    Example:
        resolver = DestinationResolver({"orders": "orders.v2"}, queue_prefix="outbox")
        resolver.resolve("orders")   # "orders.v2"
        resolver.resolve("billing")  # "outbox.billing"
    """

    def __init__(
        self,
        routes: Mapping[str, str] | None = None,
        *,
        queue_prefix: str | None = None,
        strict: bool = False,
    ) -> None:
        self.routes = dict(routes or {})
        self.queue_prefix = queue_prefix
        self.strict = strict

    def resolve(self, destination: str) -> str:
        if not destination:
            raise PermanentDeliveryError("Empty destination", destination=destination)
        if destination in self.routes:
            return self.routes[destination]
        if self.strict:
            raise PermanentDeliveryError(
                f"Unknown destination {destination!r}", destination=destination
            )
        if self.queue_prefix:
            return f"{self.queue_prefix}.{destination}"
        return destination


class RabbitDeliverySink:
    """Publish each payload as one persistent RabbitMQ message via FastStream.

    The outbox entry id travels as ``message_id`` so consumers can drop
    duplicates caused by at-least-once delivery.
    """

    def __init__(
        self,
        broker: RabbitBroker,
        resolver: DestinationResolver | None = None,
        *,
        content_type: str = "application/json",
    ) -> None:
        self.broker = broker
        self.resolver = resolver or DestinationResolver()
        self.content_type = content_type

    async def send(
        self,
        destination: str,
        payload: str,
        *,
        message_id: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> DeliveryAck:
        queue = self.resolver.resolve(destination)

        try:
            confirmation = await self.broker.publish(
                payload.encode("utf-8"),
                queue=queue,
                message_id=message_id,
                headers=dict(headers) if headers else None,
                persist=True,
                content_type=self.content_type,
            )
        except AMQPDeliveryError as e:
            # Nack, or Basic.Return when the channel raises on returns
            raise PermanentDeliveryError(
                f"Broker rejected message for {queue!r}: {e}", destination=destination
            ) from e
        except ChannelClosed as e:
            if not _is_not_found(e):
                raise TransientDeliveryError(
                    f"Channel closed while publishing to {queue!r}: {e}", destination=destination
                ) from e
            raise PermanentDeliveryError(f"Destination {queue!r} does not exist: {e}", destination=destination) from e
        except Exception as e:
            raise TransientDeliveryError(
                f"Publish to {queue!r} failed: {type(e).__name__}: {e}", destination=destination
            ) from e

        if isinstance(confirmation, DeliveredMessage):
            # mandatory publish came back as Basic.Return: no queue is bound to the routing key
            reply_text = getattr(confirmation.delivery, "reply_text", "") or "NO_ROUTE"
            raise PermanentDeliveryError(
                f"Message for {queue!r} was returned unroutable: {reply_text}",
                destination=destination,
            )

        return DeliveryAck(destination=queue, message_id=message_id)


__all__ = [
    "DeliveryAck",
    "DeliveryError",
    "DeliverySink",
    "DestinationResolver",
    "FailureKind",
    "PermanentDeliveryError",
    "RabbitDeliverySink",
    "TransientDeliveryError",
    "failure_kind",
]
