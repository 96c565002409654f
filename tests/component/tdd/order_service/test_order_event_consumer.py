"""
Order Event Consumer Component Tests

OrderEventConsumer handlers with mocked repository, stock store,
notification and fulfillment clients.
"""
import pytest

from core.config.order_config import OrderServiceConfig
from core.nats_client import Event, EventType, ServiceSource
from microservices.order_service.events.handlers import OrderEventConsumer
from microservices.order_service.events.models import OrderLifecycleEvent, PaymentProcessedEvent
from microservices.order_service.models import Order, OrderStatus
from microservices.order_service.order_service import OrderService
from tests.component.golden.order_service.mocks import (
    MockOrderRepository,
    MockStockStore,
    MockNotificationClient,
    MockFulfillmentClient,
)
from tests.fixtures import make_product, make_order, make_order_item

pytestmark = [pytest.mark.component, pytest.mark.asyncio]


def order_event(event_type: EventType, order: Order) -> Event:
    return Event(
        event_type=event_type,
        source=ServiceSource.ORDER_SERVICE,
        data=OrderLifecycleEvent(order=order).model_dump(mode='json')
    )


def payment_event(order: Order, payment_status: str) -> Event:
    return Event(
        event_type=EventType.PAYMENT_PROCESSED,
        source=ServiceSource.PAYMENT_SERVICE,
        data=PaymentProcessedEvent(order=order, payment_status=payment_status).model_dump(mode='json')
    )


@pytest.fixture
def mock_repo():
    return MockOrderRepository()


@pytest.fixture
def mock_stock():
    store = MockStockStore()
    store.set_product(make_product(product_id="1", price="10.00", stock=10))
    store.set_product(make_product(product_id="2", price="5.00", stock=10))
    return store


@pytest.fixture
def notifications():
    return MockNotificationClient()


@pytest.fixture
def fulfillment():
    return MockFulfillmentClient()


@pytest.fixture
def order_service(mock_repo, mock_stock, mock_event_bus):
    return OrderService(
        repository=mock_repo,
        stock_store=mock_stock,
        event_bus=mock_event_bus,
        config=OrderServiceConfig(publish_retry_attempts=1)
    )


@pytest.fixture
def consumer(order_service, notifications, fulfillment):
    return OrderEventConsumer(
        order_service=order_service,
        notification_client=notifications,
        fulfillment_client=fulfillment
    )


@pytest.fixture
def pending_order(mock_repo):
    order = make_order(
        status=OrderStatus.PENDING,
        items=[
            make_order_item(product_id="1", quantity=2),
            make_order_item(product_id="2", quantity=1),
        ]
    )
    mock_repo.set_order(order)
    return order


# =============================================================================
# Subscription table
# =============================================================================

class TestSubscriptions:

    async def test_handler_table_covers_all_topics(self, consumer):
        handlers = consumer.get_event_handlers()

        assert set(handlers) == {
            "order.created", "order.status.updated", "order.cancelled", "payment.processed"
        }

    async def test_register_uses_durable_consumers(self, consumer, mock_event_bus):
        subscribed = await consumer.register(mock_event_bus)

        assert len(subscribed) == 4
        assert mock_event_bus.durables["order.status.updated"] == "order-order-status-updated-consumer"
        assert mock_event_bus.durables["payment.processed"] == "order-payment-processed-consumer"

    async def test_registered_handlers_receive_events(self, consumer, mock_event_bus, mock_repo, pending_order):
        await consumer.register(mock_event_bus)

        result = await mock_event_bus.simulate_event(payment_event(pending_order, "succeeded"))

        assert result.success
        assert mock_repo.stored(pending_order.order_id).status == OrderStatus.PROCESSING


# =============================================================================
# order.created
# =============================================================================

class TestOrderCreated:

    async def test_new_order_moves_to_processing(self, consumer, mock_repo, notifications, mock_event_bus, pending_order):
        result = await consumer.handle_order_created(order_event(EventType.ORDER_CREATED, pending_order))

        assert result.success
        assert result.order_id == pending_order.order_id
        assert mock_repo.stored(pending_order.order_id).status == OrderStatus.PROCESSING
        assert notifications.templates() == ["order_confirmation"]
        mock_event_bus.assert_event_published("order.status.updated")

    async def test_cancelled_order_is_not_revived(self, consumer, mock_repo, pending_order, order_service):
        await order_service.cancel_order(pending_order.order_id)

        result = await consumer.handle_order_created(order_event(EventType.ORDER_CREATED, pending_order))

        assert result.success
        assert mock_repo.stored(pending_order.order_id).status == OrderStatus.CANCELLED


# =============================================================================
# order.status.updated / order.cancelled
# =============================================================================

class TestStatusUpdated:

    async def test_processing_prepares_shipment(self, consumer, fulfillment, pending_order):
        pending_order.status = OrderStatus.PROCESSING

        result = await consumer.handle_order_status_updated(order_event(EventType.ORDER_STATUS_UPDATED, pending_order))

        assert result.success
        assert fulfillment.prepared == [pending_order.order_id]

    @pytest.mark.parametrize("status,template", [
        (OrderStatus.SHIPPED, "order_shipped"),
        (OrderStatus.DELIVERED, "order_delivered"),
    ])
    async def test_shipping_statuses_notify(self, consumer, notifications, pending_order, status, template):
        pending_order.status = status

        await consumer.handle_order_status_updated(order_event(EventType.ORDER_STATUS_UPDATED, pending_order))

        assert notifications.templates() == [template]

    async def test_cancelled_status_cancels_shipment_without_restock(self, consumer, fulfillment, mock_stock, pending_order):
        pending_order.status = OrderStatus.CANCELLED

        result = await consumer.handle_order_status_updated(order_event(EventType.ORDER_STATUS_UPDATED, pending_order))

        assert result.success
        assert fulfillment.cancelled == [pending_order.order_id]
        assert mock_stock.get_calls("increase_stock") == []

    async def test_pending_status_needs_no_action(self, consumer, fulfillment, notifications, pending_order):
        result = await consumer.handle_order_status_updated(order_event(EventType.ORDER_STATUS_UPDATED, pending_order))

        assert result.success
        assert "No action" in result.message
        assert fulfillment.prepared == []
        assert notifications.sent == []

    async def test_order_cancelled_compensates_and_notifies(self, consumer, fulfillment, notifications, mock_stock, pending_order):
        pending_order.status = OrderStatus.CANCELLED

        result = await consumer.handle_order_cancelled(order_event(EventType.ORDER_CANCELLED, pending_order))

        assert result.success
        assert fulfillment.cancelled == [pending_order.order_id]
        assert notifications.templates() == ["order_cancelled"]
        assert mock_stock.get_calls("increase_stock") == []

    async def test_cancel_order_event_drives_compensation(self, consumer, order_service, mock_event_bus, fulfillment, notifications, pending_order):
        await order_service.cancel_order(pending_order.order_id)
        event = mock_event_bus.get_published("order.cancelled")[0]

        result = await consumer.handle_order_cancelled(event)

        assert result.success
        assert fulfillment.cancelled == [pending_order.order_id]
        assert notifications.templates() == ["order_cancelled"]


# =============================================================================
# payment.processed
# =============================================================================

class TestPaymentProcessed:

    async def test_success_moves_pending_to_processing(self, consumer, mock_repo, notifications, pending_order):
        result = await consumer.handle_payment_processed(payment_event(pending_order, "succeeded"))

        assert result.success
        assert mock_repo.stored(pending_order.order_id).status == OrderStatus.PROCESSING
        assert "payment_confirmation" in notifications.templates()

    async def test_success_on_processing_order_keeps_status(self, consumer, mock_repo, notifications, pending_order, order_service):
        await order_service.update_order_status(pending_order.order_id, OrderStatus.PROCESSING)
        version = mock_repo.stored(pending_order.order_id).version

        result = await consumer.handle_payment_processed(payment_event(pending_order, "succeeded"))

        assert result.success
        assert mock_repo.stored(pending_order.order_id).version == version
        assert notifications.templates() == ["payment_confirmation"]

    async def test_failure_cancels_and_restocks(self, consumer, mock_repo, mock_stock, notifications, pending_order):
        result = await consumer.handle_payment_processed(payment_event(pending_order, "failed"))

        assert result.success
        assert mock_repo.stored(pending_order.order_id).status == OrderStatus.CANCELLED
        assert mock_stock.stock_of("1") == 12
        assert mock_stock.stock_of("2") == 11
        assert notifications.templates() == ["payment_failed"]
        assert notifications.sent[0]["data"]["payment_status"] == "failed"

    async def test_late_success_after_cancellation_is_ignored(self, consumer, mock_repo, notifications, pending_order, order_service):
        await order_service.cancel_order(pending_order.order_id)

        result = await consumer.handle_payment_processed(payment_event(pending_order, "succeeded"))

        assert result.success
        assert "ignored" in result.message
        assert mock_repo.stored(pending_order.order_id).status == OrderStatus.CANCELLED
        assert notifications.sent == []

    async def test_cancellation_between_read_and_write_wins(self, consumer, mock_repo, mock_stock, notifications, pending_order, order_service):
        """A cancel landing after the success handler read the order must not be overwritten"""
        original_get = mock_repo.get_order
        cancelled_in_between = False

        async def get_then_cancel(order_id):
            nonlocal cancelled_in_between
            snapshot = await original_get(order_id)
            if not cancelled_in_between:
                cancelled_in_between = True
                await order_service.cancel_order(order_id)
            return snapshot

        mock_repo.get_order = get_then_cancel

        result = await consumer.handle_payment_processed(payment_event(pending_order, "succeeded"))

        assert result.success
        assert "ignored" in result.message
        assert mock_repo.stored(pending_order.order_id).status == OrderStatus.CANCELLED
        assert mock_stock.stock_of("1") == 12
        assert notifications.sent == []

    async def test_created_event_loses_to_concurrent_cancellation(self, consumer, mock_repo, pending_order, order_service):
        original_get = mock_repo.get_order
        cancelled_in_between = False

        async def get_then_cancel(order_id):
            nonlocal cancelled_in_between
            snapshot = await original_get(order_id)
            if not cancelled_in_between:
                cancelled_in_between = True
                await order_service.cancel_order(order_id)
            return snapshot

        mock_repo.get_order = get_then_cancel

        result = await consumer.handle_order_created(order_event(EventType.ORDER_CREATED, pending_order))

        assert result.success
        assert result.message == "Order already cancelled"
        assert mock_repo.stored(pending_order.order_id).status == OrderStatus.CANCELLED

    async def test_success_for_unknown_order_sends_nothing(self, consumer, notifications):
        result = await consumer.handle_payment_processed(payment_event(make_order(), "succeeded"))

        assert result.success
        assert result.message == "Order not found"
        assert notifications.sent == []

    async def test_failure_on_delivered_order_does_not_cancel(self, consumer, mock_repo, mock_stock, pending_order, order_service):
        await order_service.update_order_status(pending_order.order_id, OrderStatus.DELIVERED)

        result = await consumer.handle_payment_processed(payment_event(pending_order, "failed"))

        assert result.success
        assert mock_repo.stored(pending_order.order_id).status == OrderStatus.DELIVERED
        assert mock_stock.get_calls("increase_stock") == []


# =============================================================================
# Redelivery and failure isolation
# =============================================================================

class TestRobustness:

    async def test_redelivered_event_is_skipped(self, consumer, mock_stock, pending_order):
        event = payment_event(pending_order, "failed")

        first = await consumer.handle_payment_processed(event)
        second = await consumer.handle_payment_processed(event)

        assert first.success and not first.skipped
        assert second.skipped
        assert mock_stock.stock_of("1") == 12

    async def test_malformed_event_returns_failure(self, consumer):
        event = Event(
            event_type=EventType.ORDER_CREATED,
            source=ServiceSource.ORDER_SERVICE,
            data={"unexpected": True}
        )

        result = await consumer.handle_order_created(event)

        assert not result.success
        assert result.error_code == "MALFORMED_EVENT"

    async def test_service_error_returns_failure(self, consumer, mock_repo, pending_order):
        mock_repo.set_error(RuntimeError("database down"))

        result = await consumer.handle_payment_processed(payment_event(pending_order, "succeeded"))

        assert not result.success
        assert result.error_code == "ORDER_SERVICE_ERROR"
        assert result.order_id == pending_order.order_id

    async def test_unexpected_error_returns_failure(self, consumer, fulfillment, pending_order):
        fulfillment.set_error(RuntimeError("boom"))
        pending_order.status = OrderStatus.PROCESSING

        result = await consumer.handle_order_status_updated(order_event(EventType.ORDER_STATUS_UPDATED, pending_order))

        assert not result.success
        assert result.error_code == "HANDLER_ERROR"

    async def test_failed_event_can_be_retried(self, consumer, mock_repo, pending_order):
        event = payment_event(pending_order, "succeeded")
        mock_repo.set_error(RuntimeError("database down"))
        assert not (await consumer.handle_payment_processed(event)).success

        mock_repo.set_error(None)
        result = await consumer.handle_payment_processed(event)

        assert result.success and not result.skipped

    async def test_tracked_event_ids_are_trimmed(self, order_service):
        consumer = OrderEventConsumer(order_service=order_service, max_tracked_events=4)

        for i in range(5):
            consumer.mark_event_processed(f"evt_{i}")

        assert not consumer.is_event_processed("evt_0")
        assert consumer.is_event_processed("evt_4")

    async def test_works_without_downstream_clients(self, order_service, mock_repo, pending_order):
        consumer = OrderEventConsumer(order_service=order_service)

        result = await consumer.handle_order_created(order_event(EventType.ORDER_CREATED, pending_order))

        assert result.success
        assert mock_repo.stored(pending_order.order_id).status == OrderStatus.PROCESSING
