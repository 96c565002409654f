"""
Order Service Event Models

Pydantic payloads carried in the Event envelope on the order lifecycle
topics, plus the typed outcome returned by each consumer handler.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone

from ..models import Order


PAYMENT_SUCCEEDED = "succeeded"


class OrderLifecycleEvent(BaseModel):
    """Payload of order.created, order.status.updated and order.cancelled"""
    order: Order


class PaymentProcessedEvent(BaseModel):
    """Payload of payment.processed"""
    order: Order
    payment_status: str

    @property
    def succeeded(self) -> bool:
        return self.payment_status == PAYMENT_SUCCEEDED


class EventHandlingResult(BaseModel):
    """Outcome of handling one inbound event"""
    event_id: Optional[str] = None
    event_type: str
    order_id: Optional[str] = None
    success: bool
    skipped: bool = False
    error_code: Optional[str] = None
    message: str = ""
    handled_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
