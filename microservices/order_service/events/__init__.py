"""
Order Service Events Module

Exports all event-related functionality for order service
"""

from .models import (
    PAYMENT_SUCCEEDED,
    OrderLifecycleEvent,
    PaymentProcessedEvent,
    EventHandlingResult,
)

from .publishers import (
    publish_order_created,
    publish_order_status_updated,
    publish_order_cancelled,
    publish_payment_processed,
)

from .handlers import OrderEventConsumer

__all__ = [
    # Event Models
    "PAYMENT_SUCCEEDED",
    "OrderLifecycleEvent",
    "PaymentProcessedEvent",
    "EventHandlingResult",
    # Publishers
    "publish_order_created",
    "publish_order_status_updated",
    "publish_order_cancelled",
    "publish_payment_processed",
    # Handlers
    "OrderEventConsumer",
]
