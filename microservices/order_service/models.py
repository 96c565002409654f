"""
Order Service Data Models

Pydantic models for orders, order items, stock-store products, payment
intents and the request/response shapes of the order workflow.
"""

from pydantic import BaseModel, Field, computed_field
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
from enum import Enum


class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Core Order Models

class OrderItem(BaseModel):
    """Order line, owned by exactly one order"""
    product_id: str
    product_name: str
    price: Decimal = Field(..., description="Unit price at order time")
    quantity: int = Field(..., gt=0)

    @computed_field
    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class Order(BaseModel):
    """Core order model"""
    order_id: Optional[str] = None
    user_id: str
    items: List[OrderItem] = []
    total_amount: Decimal
    currency: str = "usd"
    status: OrderStatus = OrderStatus.PENDING
    payment_intent_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    version: int = 0


class Product(BaseModel):
    """Product as reported by the stock store"""
    product_id: str
    name: str
    price: Decimal
    stock: int = Field(..., ge=0)


class PaymentIntent(BaseModel):
    """Payment intent as reported by the payment gateway"""
    id: str
    client_secret: Optional[str] = None
    status: str
    amount: int = Field(..., description="Amount in the smallest currency unit")
    currency: str
    metadata: Dict[str, Any] = {}


# Request Models

class OrderItemRequest(BaseModel):
    """Requested order line"""
    product_id: str = Field(..., description="Product to order")
    quantity: int = Field(..., description="Requested quantity")


class OrderCreateRequest(BaseModel):
    """Create order request (draft order)"""
    user_id: str = Field(..., description="User ID placing the order")
    items: Optional[List[OrderItemRequest]] = Field(None, description="Order items")
    currency: Optional[str] = Field(None, description="Order currency")


class OrderStatusUpdateRequest(BaseModel):
    """Update order status request"""
    status: OrderStatus


class ConfirmPaymentRequest(BaseModel):
    """Confirm payment request"""
    payment_intent_id: str
    payment_method_id: Optional[str] = None


class CancelPaymentRequest(BaseModel):
    """Cancel payment request"""
    payment_intent_id: str


# Response Models

class PaymentIntentResponse(BaseModel):
    """Payment intent response returned to clients"""
    payment_intent_id: str
    client_secret: Optional[str] = None
    status: str
    amount: int
    currency: str

    @classmethod
    def from_intent(cls, intent: PaymentIntent) -> "PaymentIntentResponse":
        return cls(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
            amount=intent.amount,
            currency=intent.currency,
        )


class PaymentActionResponse(BaseModel):
    """Result of a confirm/cancel payment call"""
    payment_intent_id: str
    status: str
    message: str


class OrderStatistics(BaseModel):
    """Order statistics model"""
    total_orders: int
    orders_by_status: Dict[str, int]


class OrderServiceStatus(BaseModel):
    """Order service status response"""
    service: str = "order_service"
    status: str = "operational"
    port: int = 8210
    version: str = "1.0.0"
    timestamp: Optional[datetime] = None
