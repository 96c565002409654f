"""
Order Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, runtime_checkable
from datetime import datetime

# Import only models (no I/O dependencies)
from .models import Order, OrderStatus, PaymentIntent, Product


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class OrderServiceError(Exception):
    """Base exception for order service errors"""
    error_code = "ORDER_SERVICE_ERROR"


class OrderValidationError(OrderServiceError):
    """Malformed or inconsistent order input"""
    error_code = "VALIDATION_ERROR"


class InsufficientStockError(OrderValidationError):
    """Requested quantity exceeds available stock"""
    error_code = "INSUFFICIENT_STOCK"

    def __init__(self, message: str, product_id: Optional[str] = None):
        super().__init__(message)
        self.product_id = product_id


class OrderNotFoundError(OrderServiceError):
    """Order not found error"""
    error_code = "ORDER_NOT_FOUND"


class InvalidOrderStateError(OrderServiceError):
    """Invalid order state transition"""
    error_code = "INVALID_STATUS"


class ConcurrentModificationError(OrderServiceError):
    """Order was written by someone else since it was read"""
    error_code = "CONCURRENT_MODIFICATION"


class StockStoreError(OrderServiceError):
    """Stock store unreachable or returned an unexpected response"""
    error_code = "STOCK_STORE_ERROR"

    def __init__(self, message: str, product_ids: Optional[List[str]] = None):
        super().__init__(message)
        self.product_ids = product_ids or []


class PaymentGatewayError(OrderServiceError):
    """Payment processor call failed"""
    error_code = "PAYMENT_GATEWAY_ERROR"

    def __init__(self, message: str, processor_error_code: Optional[str] = None):
        super().__init__(message)
        self.processor_error_code = processor_error_code


class MessagingError(OrderServiceError):
    """Publishing to the message channel failed"""
    error_code = "MESSAGING_ERROR"


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class OrderRepositoryProtocol(Protocol):
    """
    Interface for Order Repository.

    Implementations must provide these methods.
    Used for dependency injection to enable testing.
    """

    async def save_order(self, order: Order, expected_version: Optional[int] = None) -> Order:
        """
        Insert (no order_id yet) or update an order.

        Updates must raise ConcurrentModificationError when the stored
        version differs from expected_version.
        """
        ...

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order by ID"""
        ...

    async def get_user_orders(self, user_id: str) -> List[Order]:
        """Get orders for a user, newest first"""
        ...

    async def list_orders(self) -> List[Order]:
        """Get all orders"""
        ...

    async def get_orders_by_status(self, status: OrderStatus) -> List[Order]:
        """Get orders in a given status"""
        ...

    async def get_order_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        """Get single order by payment intent ID"""
        ...

    async def get_orders_between(self, start: datetime, end: datetime) -> List[Order]:
        """Get orders created within [start, end]"""
        ...

    async def count_orders_by_status(self, status: OrderStatus) -> int:
        """Count orders in a given status"""
        ...


# ============================================================================
# Stock Store Protocol
# ============================================================================

@runtime_checkable
class StockStoreProtocol(Protocol):
    """Interface for the product stock store"""

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Resolve a product, None when unknown"""
        ...

    async def decrease_stock(self, product_id: str, quantity: int) -> bool:
        """Atomically decrease stock; False when stock is insufficient"""
        ...

    async def increase_stock(self, product_id: str, quantity: int) -> None:
        """Atomically increase stock"""
        ...


# ============================================================================
# Payment Gateway Protocol
# ============================================================================

@runtime_checkable
class PaymentGatewayProtocol(Protocol):
    """Interface for the payment processor. Failures raise PaymentGatewayError."""

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> PaymentIntent:
        """Create payment intent for an amount in minor units"""
        ...

    async def confirm_payment_intent(
        self,
        payment_intent_id: str,
        payment_method: Optional[str] = None
    ) -> PaymentIntent:
        """Confirm payment intent"""
        ...

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        """Retrieve payment intent"""
        ...

    async def cancel_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        """Cancel payment intent"""
        ...


# ============================================================================
# Event Bus Protocol
# ============================================================================

@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus - no I/O imports"""

    async def publish_event(self, event: Any) -> bool:
        """Publish an event, True when accepted by the channel"""
        ...

    async def subscribe_to_events(
        self,
        pattern: str,
        handler: Callable[[Any], Awaitable[Any]],
        durable: Optional[str] = None
    ) -> Optional[str]:
        """Subscribe a handler to a topic"""
        ...


# ============================================================================
# Client Protocols
# ============================================================================

@runtime_checkable
class NotificationClientProtocol(Protocol):
    """Interface for Notification Service Client"""

    async def send_notification(
        self,
        user_id: str,
        template: str,
        order_id: str,
        data: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Send a templated notification to the order owner"""
        ...


@runtime_checkable
class FulfillmentClientProtocol(Protocol):
    """Interface for Fulfillment Service Client"""

    async def prepare_shipment(self, order: Order) -> Optional[Dict[str, Any]]:
        """Prepare shipment for an order"""
        ...

    async def cancel_shipment(self, order_id: str) -> bool:
        """Cancel any shipment prepared for an order"""
        ...
