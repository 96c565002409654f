"""
Order Service Event Publishers

Functions to publish order lifecycle events.

Delivery is best-effort: each publish is retried with exponential backoff,
and a final failure is logged and reported as False. Callers never roll back
their own work because a publish failed.
"""

import logging

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from core.nats_client import Event, EventType, ServiceSource
from ..models import Order
from ..protocols import MessagingError
from .models import OrderLifecycleEvent, PaymentProcessedEvent

logger = logging.getLogger(__name__)

DEFAULT_PUBLISH_ATTEMPTS = 3


async def _publish(event_bus, event: Event, order_id: str, attempts: int) -> bool:
    if not event_bus:
        logger.warning(f"Event bus not available, skipping {event.type} event for order {order_id}")
        return False

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_exponential(multiplier=0.2, max=2),
            reraise=True,
        ):
            with attempt:
                if not await event_bus.publish_event(event):
                    raise MessagingError(f"Event bus rejected {event.type} [{event.id}]")

        logger.info(f"✅ Published {event.type} event for order {order_id}")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to publish {event.type} event for order {order_id}: {e}")
        return False


async def publish_order_created(
    event_bus,
    order: Order,
    attempts: int = DEFAULT_PUBLISH_ATTEMPTS
) -> bool:
    """Publish order.created event"""
    event = Event(
        event_type=EventType.ORDER_CREATED,
        source=ServiceSource.ORDER_SERVICE,
        data=OrderLifecycleEvent(order=order).model_dump(mode='json')
    )
    return await _publish(event_bus, event, order.order_id, attempts)


async def publish_order_status_updated(
    event_bus,
    order: Order,
    attempts: int = DEFAULT_PUBLISH_ATTEMPTS
) -> bool:
    """Publish order.status.updated event"""
    event = Event(
        event_type=EventType.ORDER_STATUS_UPDATED,
        source=ServiceSource.ORDER_SERVICE,
        data=OrderLifecycleEvent(order=order).model_dump(mode='json'),
        metadata={"status": order.status.value}
    )
    return await _publish(event_bus, event, order.order_id, attempts)


async def publish_order_cancelled(
    event_bus,
    order: Order,
    attempts: int = DEFAULT_PUBLISH_ATTEMPTS
) -> bool:
    """Publish order.cancelled event"""
    event = Event(
        event_type=EventType.ORDER_CANCELLED,
        source=ServiceSource.ORDER_SERVICE,
        data=OrderLifecycleEvent(order=order).model_dump(mode='json')
    )
    return await _publish(event_bus, event, order.order_id, attempts)


async def publish_payment_processed(
    event_bus,
    order: Order,
    payment_status: str,
    attempts: int = DEFAULT_PUBLISH_ATTEMPTS
) -> bool:
    """Publish payment.processed event"""
    event = Event(
        event_type=EventType.PAYMENT_PROCESSED,
        source=ServiceSource.PAYMENT_SERVICE,
        data=PaymentProcessedEvent(order=order, payment_status=payment_status).model_dump(mode='json'),
        metadata={"payment_status": payment_status}
    )
    return await _publish(event_bus, event, order.order_id, attempts)
