"""
Payment Orchestration Component Tests

PaymentOrchestrator against a mock gateway and the real OrderService.
"""
import pytest
from decimal import Decimal

from core.config.order_config import OrderServiceConfig
from microservices.order_service.models import OrderStatus
from microservices.order_service.order_service import OrderService
from microservices.order_service.payment_orchestrator import PaymentOrchestrator, to_minor_units
from microservices.order_service.protocols import PaymentGatewayError
from tests.component.golden.order_service.mocks import (
    MockOrderRepository,
    MockStockStore,
    MockPaymentGateway,
)
from tests.fixtures import make_product, make_order, make_order_item

pytestmark = [pytest.mark.component, pytest.mark.asyncio]


@pytest.fixture
def mock_repo():
    return MockOrderRepository()


@pytest.fixture
def mock_stock():
    store = MockStockStore()
    store.set_product(make_product(product_id="1", price="10.00", stock=10))
    return store


@pytest.fixture
def gateway():
    return MockPaymentGateway()


@pytest.fixture
def order_service(mock_repo, mock_stock, mock_event_bus):
    return OrderService(
        repository=mock_repo,
        stock_store=mock_stock,
        event_bus=mock_event_bus,
        config=OrderServiceConfig(publish_retry_attempts=1)
    )


@pytest.fixture
def orchestrator(gateway, order_service, mock_event_bus):
    return PaymentOrchestrator(
        gateway=gateway,
        order_service=order_service,
        event_bus=mock_event_bus,
        publish_retry_attempts=1
    )


class TestInitiatePayment:

    async def test_initiate_creates_intent_in_minor_units(self, orchestrator, gateway, mock_repo):
        order = make_order(items=[make_order_item(price="10.00", quantity=2)])
        mock_repo.set_order(order)

        intent = await orchestrator.initiate_payment(order)

        call = gateway.get_calls("create_payment_intent")[0]
        assert call["amount"] == 2000
        assert call["currency"] == "usd"
        assert call["metadata"] == {"order_id": order.order_id}
        assert call["description"] == f"Order #{order.order_id}"
        assert call["idempotency_key"] == f"order-{order.order_id}-payment-intent"
        assert order.payment_intent_id == intent.id

    async def test_initiate_leaves_order_status_unchanged(self, orchestrator, mock_repo):
        order = make_order(status=OrderStatus.PENDING)
        mock_repo.set_order(order)

        await orchestrator.initiate_payment(order)

        assert order.status == OrderStatus.PENDING
        assert mock_repo.stored(order.order_id).status == OrderStatus.PENDING

    async def test_initiate_gateway_error_propagates(self, orchestrator, gateway):
        gateway.set_error(PaymentGatewayError("card network down"))
        order = make_order()

        with pytest.raises(PaymentGatewayError):
            await orchestrator.initiate_payment(order)

        assert order.payment_intent_id is None

    async def test_amount_conversion_truncates(self):
        assert to_minor_units(Decimal("19.999")) == 1999
        assert to_minor_units(Decimal("20.00")) == 2000
        assert to_minor_units(Decimal("0.015")) == 1


class TestConfirmPayment:

    async def test_confirm_publishes_payment_processed(self, orchestrator, gateway, mock_repo, mock_event_bus):
        order = make_order(payment_intent_id="pi_1")
        mock_repo.set_order(order)

        intent = await orchestrator.confirm_payment("pi_1", payment_method="pm_card_visa")

        assert intent.status == "succeeded"
        assert gateway.get_calls("confirm_payment_intent")[0]["payment_method"] == "pm_card_visa"
        event = mock_event_bus.get_last_event()
        assert event.type == "payment.processed"
        assert event.source == "payment_service"
        assert event.data["payment_status"] == "succeeded"
        assert event.data["order"]["order_id"] == order.order_id

    async def test_confirm_failed_status_is_published(self, orchestrator, gateway, mock_repo, mock_event_bus):
        order = make_order(payment_intent_id="pi_2")
        mock_repo.set_order(order)
        gateway.set_confirm_status("requires_payment_method")

        await orchestrator.confirm_payment("pi_2")

        assert mock_event_bus.get_last_event().data["payment_status"] == "requires_payment_method"

    async def test_confirm_without_owning_order_publishes_nothing(self, orchestrator, mock_event_bus):
        intent = await orchestrator.confirm_payment("pi_orphan")

        assert intent.status == "succeeded"
        assert mock_event_bus.published_events == []

    async def test_confirm_gateway_error_publishes_nothing(self, orchestrator, gateway, mock_repo, mock_event_bus):
        mock_repo.set_order(make_order(payment_intent_id="pi_3"))
        gateway.set_error(PaymentGatewayError("timeout"))

        with pytest.raises(PaymentGatewayError):
            await orchestrator.confirm_payment("pi_3")

        assert mock_event_bus.published_events == []

    async def test_retrieve_payment(self, orchestrator, gateway):
        created = await gateway.create_payment_intent(amount=500, currency="usd", metadata={})

        intent = await orchestrator.retrieve_payment(created.id)

        assert intent.id == created.id
        assert intent.amount == 500


class TestCancelPayment:

    async def test_cancel_payment_cancels_order_and_restocks(self, orchestrator, mock_repo, mock_stock):
        order = make_order(
            payment_intent_id="pi_c",
            items=[make_order_item(product_id="1", quantity=3)]
        )
        mock_repo.set_order(order)

        intent = await orchestrator.cancel_payment("pi_c")

        assert intent.status == "canceled"
        assert mock_repo.stored(order.order_id).status == OrderStatus.CANCELLED
        assert mock_stock.stock_of("1") == 13

    async def test_cancel_payment_leaves_shipped_order(self, orchestrator, mock_repo, mock_stock):
        order = make_order(
            payment_intent_id="pi_s",
            status=OrderStatus.SHIPPED,
            items=[make_order_item(product_id="1", quantity=3)]
        )
        mock_repo.set_order(order)

        await orchestrator.cancel_payment("pi_s")

        assert mock_repo.stored(order.order_id).status == OrderStatus.SHIPPED
        assert mock_stock.stock_of("1") == 10

    async def test_cancel_payment_without_order(self, orchestrator, gateway):
        intent = await orchestrator.cancel_payment("pi_none")

        assert intent.status == "canceled"
        assert gateway.get_calls("cancel_payment_intent") == [{"payment_intent_id": "pi_none"}]
