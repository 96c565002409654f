"""
Order Service Event Handlers

Reactions to order lifecycle and payment events. Handlers never own order
state: every status change goes back through OrderService.
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError as PayloadValidationError

from core.nats_client import Event, EventType
from ..models import Order, OrderStatus
from ..protocols import (
    OrderServiceError,
    NotificationClientProtocol,
    FulfillmentClientProtocol,
)
from .models import EventHandlingResult, OrderLifecycleEvent, PaymentProcessedEvent

if TYPE_CHECKING:
    from ..order_service import OrderService

logger = logging.getLogger(__name__)


class OrderEventConsumer:
    """
    Consumer for order.created, order.status.updated, order.cancelled and
    payment.processed.

    Each handler catches everything at its own boundary and reports a typed
    EventHandlingResult, so one bad message never stops the others.
    """

    def __init__(
        self,
        order_service: "OrderService",
        notification_client: Optional[NotificationClientProtocol] = None,
        fulfillment_client: Optional[FulfillmentClientProtocol] = None,
        max_tracked_events: int = 10000
    ):
        self.order_service = order_service
        self.notification_client = notification_client
        self.fulfillment_client = fulfillment_client
        self.max_tracked_events = max_tracked_events
        # Insertion-ordered so trimming drops the oldest ids first
        self._processed_event_ids: Dict[str, None] = {}

    # Subscription table

    def get_event_handlers(self) -> Dict[str, Callable[[Event], Awaitable[EventHandlingResult]]]:
        """
        Get all event handlers of the consumer.

        Returns:
            Dict mapping topic -> handler
        """
        return {
            EventType.ORDER_CREATED.value: self.handle_order_created,
            EventType.ORDER_STATUS_UPDATED.value: self.handle_order_status_updated,
            EventType.ORDER_CANCELLED.value: self.handle_order_cancelled,
            EventType.PAYMENT_PROCESSED.value: self.handle_payment_processed,
        }

    async def register(self, event_bus) -> List[str]:
        """Subscribe every handler of the table to the event bus"""
        subscribed = []
        for topic, handler in self.get_event_handlers().items():
            durable = f"order-{topic.replace('.', '-')}-consumer"
            if await event_bus.subscribe_to_events(pattern=topic, handler=handler, durable=durable):
                subscribed.append(topic)
                logger.info(f"✅ Subscribed to {topic} events")
            else:
                logger.warning(f"⚠️  Failed to subscribe to {topic} events")
        return subscribed

    # Idempotency tracking

    def is_event_processed(self, event_id: str) -> bool:
        """Check if event has already been processed"""
        return event_id in self._processed_event_ids

    def mark_event_processed(self, event_id: str):
        """Mark event as processed"""
        self._processed_event_ids[event_id] = None
        # Limit size to prevent memory issues
        if len(self._processed_event_ids) > self.max_tracked_events:
            keep = list(self._processed_event_ids)[len(self._processed_event_ids) // 2:]
            self._processed_event_ids = dict.fromkeys(keep)

    # Handlers

    async def handle_order_created(self, event: Event) -> EventHandlingResult:
        """
        Handle order.created event
        Run new-order checks, confirm to the customer, move the order to PROCESSING
        """
        async def body(payload: OrderLifecycleEvent) -> str:
            order = payload.order
            self._check_new_order(order)
            await self._notify(order, "order_confirmation")
            return await self._move_to_processing(order)

        return await self._handle(event, OrderLifecycleEvent, body)

    async def handle_order_status_updated(self, event: Event) -> EventHandlingResult:
        """
        Handle order.status.updated event
        Dispatch on the status carried by the snapshot
        """
        async def body(payload: OrderLifecycleEvent) -> str:
            order = payload.order
            if order.status == OrderStatus.PROCESSING:
                await self._prepare_shipment(order)
                return "Shipment prepared"
            if order.status == OrderStatus.SHIPPED:
                await self._notify(order, "order_shipped")
                return "Shipping notification sent"
            if order.status == OrderStatus.DELIVERED:
                await self._notify(order, "order_delivered")
                return "Delivery confirmation sent"
            if order.status == OrderStatus.CANCELLED:
                await self._compensate_cancellation(order)
                return "Cancellation compensated"
            return f"No action for status {order.status.value}"

        return await self._handle(event, OrderLifecycleEvent, body)

    async def handle_order_cancelled(self, event: Event) -> EventHandlingResult:
        """
        Handle order.cancelled event
        Run cancellation compensation and notify the customer
        """
        async def body(payload: OrderLifecycleEvent) -> str:
            order = payload.order
            await self._compensate_cancellation(order)
            await self._notify(order, "order_cancelled")
            return "Cancellation compensated and notified"

        return await self._handle(event, OrderLifecycleEvent, body)

    async def handle_payment_processed(self, event: Event) -> EventHandlingResult:
        """
        Handle payment.processed event
        Success moves the order to PROCESSING, anything else cancels it
        """
        async def body(payload: PaymentProcessedEvent) -> str:
            order = payload.order

            if payload.succeeded:
                current, moved = await self.order_service.advance_status(
                    order.order_id, OrderStatus.PENDING, OrderStatus.PROCESSING
                )
                if current is None:
                    logger.warning(f"Payment succeeded for unknown order {order.order_id}, nothing to confirm")
                    return "Order not found"
                if not moved and current.status != OrderStatus.PROCESSING:
                    logger.warning(
                        f"⚠️  Payment succeeded for order {order.order_id} in status "
                        f"{current.status.value}; order left unchanged, refund needs manual follow-up"
                    )
                    return f"Late payment success ignored, order is {current.status.value}"

                await self._notify(current, "payment_confirmation")
                return "Order moved to processing" if moved else "Order already processing"

            cancelled = await self.order_service.cancel_order(order.order_id)
            await self._notify(order, "payment_failed", {"payment_status": payload.payment_status})
            if cancelled:
                return f"Order cancelled after payment {payload.payment_status}"
            return f"Payment {payload.payment_status}, order was not cancellable"

        return await self._handle(event, PaymentProcessedEvent, body)

    # Helpers

    async def _handle(
        self,
        event: Event,
        payload_model: Type[BaseModel],
        body: Callable[[Any], Awaitable[str]]
    ) -> EventHandlingResult:
        if event.id and self.is_event_processed(event.id):
            logger.debug(f"Event {event.id} already processed, skipping")
            return EventHandlingResult(
                event_id=event.id,
                event_type=event.type,
                success=True,
                skipped=True,
                message="Event already processed"
            )

        order_id = None
        try:
            payload = payload_model.model_validate(event.data)
            order_id = payload.order.order_id
            message = await body(payload)

        except PayloadValidationError as e:
            logger.error(f"❌ Malformed {event.type} event {event.id}: {e}")
            return self._failure(event, order_id, "MALFORMED_EVENT", str(e))
        except OrderServiceError as e:
            logger.error(f"❌ Failed to handle {event.type} event {event.id} for order {order_id}: [{e.error_code}] {e}")
            return self._failure(event, order_id, e.error_code, str(e))
        except Exception as e:
            logger.exception(f"❌ Unexpected error handling {event.type} event {event.id} for order {order_id}: {e}")
            return self._failure(event, order_id, "HANDLER_ERROR", str(e))

        if event.id:
            self.mark_event_processed(event.id)
        logger.info(f"✅ Handled {event.type} for order {order_id}: {message}")
        return EventHandlingResult(
            event_id=event.id,
            event_type=event.type,
            order_id=order_id,
            success=True,
            message=message
        )

    @staticmethod
    def _failure(event: Event, order_id: Optional[str], error_code: str, message: str) -> EventHandlingResult:
        return EventHandlingResult(
            event_id=event.id,
            event_type=event.type,
            order_id=order_id,
            success=False,
            error_code=error_code,
            message=message
        )

    async def _move_to_processing(self, order: Order) -> str:
        """Move a PENDING order to PROCESSING; any other status is left alone"""
        current, moved = await self.order_service.advance_status(
            order.order_id, OrderStatus.PENDING, OrderStatus.PROCESSING
        )
        if current is None:
            logger.warning(f"Order {order.order_id} no longer exists")
            return "Order not found"
        if not moved:
            return f"Order already {current.status.value}"
        return "Order moved to processing"

    def _check_new_order(self, order: Order):
        """Business checks on a freshly created order"""
        expected_total = sum((item.line_total for item in order.items), Decimal("0"))
        if not order.items:
            logger.warning(f"Order {order.order_id} was created without items")
        elif expected_total != order.total_amount:
            logger.warning(
                f"Order {order.order_id} total {order.total_amount} does not match its items ({expected_total})"
            )
        logger.info(f"New order {order.order_id}: {len(order.items)} item(s), {order.total_amount} {order.currency}")

    async def _notify(self, order: Order, template: str, data: Optional[Dict[str, Any]] = None):
        if not self.notification_client:
            logger.info(f"Notification client not configured, skipping {template} for order {order.order_id}")
            return

        payload = {
            "total_amount": str(order.total_amount),
            "currency": order.currency,
            "status": order.status.value,
        }
        payload.update(data or {})

        sent = await self.notification_client.send_notification(
            user_id=order.user_id,
            template=template,
            order_id=order.order_id,
            data=payload
        )
        if not sent:
            logger.warning(f"Notification {template} was not delivered for order {order.order_id}")

    async def _prepare_shipment(self, order: Order):
        if not self.fulfillment_client:
            logger.info(f"Fulfillment client not configured, skipping shipment for order {order.order_id}")
            return

        shipment = await self.fulfillment_client.prepare_shipment(order)
        if shipment is None:
            logger.warning(f"Shipment preparation failed for order {order.order_id}")
        else:
            logger.info(f"Shipment prepared for order {order.order_id}")

    async def _compensate_cancellation(self, order: Order):
        """Undo downstream work for a cancelled order. Stock is restored by OrderService, not here."""
        if self.fulfillment_client:
            if not await self.fulfillment_client.cancel_shipment(order.order_id):
                logger.warning(f"Could not cancel shipment for order {order.order_id}")

        logger.info(
            f"Order {order.order_id} cancelled: {order.total_amount} {order.currency}, "
            f"payment intent {order.payment_intent_id or 'none'}"
        )
