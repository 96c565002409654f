"""
Payment Orchestration

Bridges the order lifecycle to the payment gateway and feeds payment
outcomes back as payment.processed events.
"""

import logging
from decimal import Decimal
from typing import Optional

from .models import Order, PaymentIntent
from .protocols import PaymentGatewayProtocol, EventBusProtocol
from .order_service import OrderService
from .events.publishers import publish_payment_processed

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to its smallest unit: multiply by 100 and truncate"""
    return int(amount * 100)


class PaymentOrchestrator:
    """Drives payment intents for orders"""

    def __init__(
        self,
        gateway: PaymentGatewayProtocol,
        order_service: OrderService,
        event_bus: Optional[EventBusProtocol] = None,
        publish_retry_attempts: int = 3
    ):
        self.gateway = gateway
        self.order_service = order_service
        self.event_bus = event_bus
        self.publish_retry_attempts = publish_retry_attempts

    async def initiate_payment(self, order: Order) -> PaymentIntent:
        """
        Create a payment intent for the order total.

        Sets order.payment_intent_id on the given object; persisting it is
        left to the caller (OrderService.record_payment_intent). The order
        status is never changed here.

        Raises:
            PaymentGatewayError: the gateway call failed
        """
        intent = await self.gateway.create_payment_intent(
            amount=to_minor_units(order.total_amount),
            currency=order.currency,
            metadata={"order_id": str(order.order_id)},
            description=f"Order #{order.order_id}",
            idempotency_key=f"order-{order.order_id}-payment-intent"
        )
        order.payment_intent_id = intent.id

        logger.info(f"Payment intent {intent.id} created for order {order.order_id} ({intent.amount} {intent.currency})")
        return intent

    async def confirm_payment(
        self,
        payment_intent_id: str,
        payment_method: Optional[str] = None
    ) -> PaymentIntent:
        """
        Confirm a payment intent and announce the outcome.

        Publishes payment.processed with the owning order and the gateway
        status. When no order owns the intent nothing is published.

        Raises:
            PaymentGatewayError: the gateway call failed
        """
        intent = await self.gateway.confirm_payment_intent(payment_intent_id, payment_method=payment_method)

        order = await self.order_service.get_order_by_payment_intent(payment_intent_id)
        if order is None:
            logger.warning(f"No order found for payment intent {payment_intent_id}, status {intent.status} not propagated")
            return intent

        await publish_payment_processed(
            self.event_bus, order, intent.status, attempts=self.publish_retry_attempts
        )
        logger.info(f"Payment {payment_intent_id} confirmed for order {order.order_id}: {intent.status}")
        return intent

    async def retrieve_payment(self, payment_intent_id: str) -> PaymentIntent:
        """Fetch the current state of a payment intent"""
        return await self.gateway.retrieve_payment_intent(payment_intent_id)

    async def cancel_payment(self, payment_intent_id: str) -> PaymentIntent:
        """
        Cancel a payment intent and the order that owns it.

        The order goes through OrderService.cancel_order, so its stock is
        restored like any other cancellation.

        Raises:
            PaymentGatewayError: the gateway call failed
        """
        intent = await self.gateway.cancel_payment_intent(payment_intent_id)

        order = await self.order_service.get_order_by_payment_intent(payment_intent_id)
        if order is None:
            logger.warning(f"No order found for cancelled payment intent {payment_intent_id}")
            return intent

        if await self.order_service.cancel_order(order.order_id):
            logger.info(f"Order {order.order_id} cancelled with payment intent {payment_intent_id}")
        else:
            logger.info(
                f"Payment intent {payment_intent_id} cancelled, order {order.order_id} "
                f"left in status {order.status.value}"
            )
        return intent
