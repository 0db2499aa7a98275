"""Unit tests for destination resolution and the RabbitMQ delivery sink."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from aio_pika.exceptions import ChannelClosed, ChannelNotFoundEntity, PublishError
from aio_pika.exceptions import DeliveryError as AMQPDeliveryError
from aiormq.abc import DeliveredMessage
from pamqp.commands import Basic
from pamqp.header import ContentHeader

from outbox_publisher.infra.outbox import (
    DestinationResolver,
    FailureKind,
    PermanentDeliveryError,
    RabbitDeliverySink,
    TransientDeliveryError,
)
from outbox_publisher.infra.outbox.sink import failure_kind


@pytest.mark.unit
class TestDestinationResolver:
    """Route map, queue prefix and strict mode."""

    def test_name_passes_through_by_default(self):
        assert DestinationResolver().resolve("orders") == "orders"

    def test_explicit_route_wins(self):
        resolver = DestinationResolver({"orders": "orders.v2"}, queue_prefix="outbox")

        assert resolver.resolve("orders") == "orders.v2"

    def test_prefix_applies_to_unrouted_names(self):
        resolver = DestinationResolver({"orders": "orders.v2"}, queue_prefix="outbox")

        assert resolver.resolve("billing") == "outbox.billing"

    def test_strict_mode_rejects_unknown_destination(self):
        resolver = DestinationResolver({"orders": "orders.v2"}, strict=True)

        with pytest.raises(PermanentDeliveryError) as exc_info:
            resolver.resolve("billing")

        assert exc_info.value.destination == "billing"

    def test_empty_destination_is_permanent(self):
        with pytest.raises(PermanentDeliveryError):
            DestinationResolver().resolve("")


@pytest.mark.unit
class TestFailureKind:
    def test_typed_errors_carry_their_kind(self):
        assert failure_kind(TransientDeliveryError("x")) is FailureKind.TRANSIENT
        assert failure_kind(PermanentDeliveryError("x")) is FailureKind.PERMANENT

    def test_other_exceptions_are_transient(self):
        assert failure_kind(OSError("network unreachable")) is FailureKind.TRANSIENT


def _returned_message(routing_key: str = "orders") -> DeliveredMessage:
    """What aio-pika hands back when a mandatory publish matched no queue."""
    return DeliveredMessage(
        delivery=Basic.Return(reply_code=312, reply_text="NO_ROUTE", exchange="", routing_key=routing_key),
        header=ContentHeader(),
        body=b"{}",
        channel=MagicMock(),
    )


@pytest.fixture
def broker():
    mock = MagicMock()
    mock.publish = AsyncMock()
    return mock


@pytest.mark.unit
class TestRabbitDeliverySink:
    """Publishing through a FastStream broker."""

    async def test_publishes_persistent_message(self, broker):
        sink = RabbitDeliverySink(broker, DestinationResolver({"orders": "orders.v2"}))

        ack = await sink.send(
            "orders",
            '{"a":1}',
            message_id="0190a5e2-0000-7000-8000-000000000001",
            headers={"event_type": "order.created"},
        )

        assert ack.destination == "orders.v2"
        assert ack.message_id == "0190a5e2-0000-7000-8000-000000000001"
        broker.publish.assert_awaited_once_with(
            b'{"a":1}',
            queue="orders.v2",
            message_id="0190a5e2-0000-7000-8000-000000000001",
            headers={"event_type": "order.created"},
            persist=True,
            content_type="application/json",
        )

    async def test_connection_problem_is_transient(self, broker):
        broker.publish.side_effect = ConnectionError("connection reset")
        sink = RabbitDeliverySink(broker)

        with pytest.raises(TransientDeliveryError) as exc_info:
            await sink.send("orders", "{}")

        assert "ConnectionError" in str(exc_info.value)

    async def test_broker_nack_is_permanent(self, broker):
        broker.publish.side_effect = AMQPDeliveryError(None, None)
        sink = RabbitDeliverySink(broker)

        with pytest.raises(PermanentDeliveryError):
            await sink.send("orders", "{}")

    async def test_unknown_destination_never_reaches_broker(self, broker):
        sink = RabbitDeliverySink(broker, DestinationResolver(strict=True))

        with pytest.raises(PermanentDeliveryError):
            await sink.send("orders", "{}")

        broker.publish.assert_not_awaited()

    async def test_returned_message_is_permanent(self, broker):
        broker.publish.return_value = _returned_message()
        sink = RabbitDeliverySink(broker)

        with pytest.raises(PermanentDeliveryError) as exc_info:
            await sink.send("orders", "{}", message_id="m-1")

        assert "unroutable" in str(exc_info.value)
        assert "NO_ROUTE" in str(exc_info.value)
        assert exc_info.value.destination == "orders"

    async def test_publish_error_on_return_is_permanent(self, broker):
        broker.publish.side_effect = PublishError(_returned_message(), MagicMock())
        sink = RabbitDeliverySink(broker)

        with pytest.raises(PermanentDeliveryError) as exc_info:
            await sink.send("orders", "{}")

        assert isinstance(exc_info.value.__cause__, PublishError)

    async def test_confirmation_frame_is_success(self, broker):
        broker.publish.return_value = Basic.Ack(delivery_tag=1)
        sink = RabbitDeliverySink(broker)

        ack = await sink.send("orders", "{}", message_id="m-1")

        assert ack.destination == "orders"

    @pytest.mark.parametrize(
        "error",
        [
            ChannelClosed(404, "NOT_FOUND - no exchange 'orders'"),
            ChannelNotFoundEntity("NOT_FOUND - no queue 'orders' in vhost '/'"),
        ],
    )
    async def test_missing_destination_is_permanent(self, broker, error):
        broker.publish.side_effect = error
        sink = RabbitDeliverySink(broker)

        with pytest.raises(PermanentDeliveryError) as exc_info:
            await sink.send("orders", "{}")

        assert "does not exist" in str(exc_info.value)

    async def test_other_channel_close_is_transient(self, broker):
        broker.publish.side_effect = ChannelClosed(320, "CONNECTION_FORCED")
        sink = RabbitDeliverySink(broker)

        with pytest.raises(TransientDeliveryError):
            await sink.send("orders", "{}")
