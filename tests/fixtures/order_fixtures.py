"""
Order Service Fixtures

Factories for products, order lines, orders and draft orders.
"""
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from microservices.order_service.models import (
    Order,
    OrderItem,
    OrderStatus,
    Product,
    OrderCreateRequest,
    OrderItemRequest,
)

from .common import make_user_id, make_timestamp


def make_order_id() -> str:
    """Generate a unique order ID"""
    return f"order_{uuid.uuid4().hex[:12]}"


def make_product(
    product_id: Optional[str] = None,
    name: str = "Test Product",
    price: str = "10.00",
    stock: int = 100
) -> Product:
    """Create a stock-store product"""
    return Product(
        product_id=product_id or f"prod_{uuid.uuid4().hex[:8]}",
        name=name,
        price=Decimal(price),
        stock=stock
    )


def make_order_item(
    product_id: str = "prod_1",
    product_name: str = "Test Product",
    price: str = "10.00",
    quantity: int = 1
) -> OrderItem:
    """Create an order line"""
    return OrderItem(
        product_id=product_id,
        product_name=product_name,
        price=Decimal(price),
        quantity=quantity
    )


def make_order(
    order_id: Optional[str] = None,
    user_id: Optional[str] = None,
    items: Optional[List[OrderItem]] = None,
    status: OrderStatus = OrderStatus.PENDING,
    payment_intent_id: Optional[str] = None,
    currency: str = "usd",
    version: int = 1
) -> Order:
    """Create an order whose total matches its lines"""
    items = items if items is not None else [make_order_item()]
    total = sum((item.line_total for item in items), Decimal("0"))
    return Order(
        order_id=order_id or make_order_id(),
        user_id=user_id or make_user_id(),
        items=items,
        total_amount=total,
        currency=currency,
        status=status,
        payment_intent_id=payment_intent_id,
        created_at=make_timestamp(),
        version=version
    )


def make_create_request(
    lines: List[Tuple[str, int]],
    user_id: Optional[str] = None,
    currency: Optional[str] = None
) -> OrderCreateRequest:
    """Create a draft order from (product_id, quantity) pairs"""
    return OrderCreateRequest(
        user_id=user_id or make_user_id(),
        items=[OrderItemRequest(product_id=pid, quantity=qty) for pid, qty in lines],
        currency=currency
    )
