"""
Order Service Business Logic

Owns the order lifecycle: creation invariants, stock reservation and
compensation, status transitions and lifecycle event publication.
"""

from typing import Callable, Dict, FrozenSet, List, Optional, Tuple
from datetime import datetime, timezone
from decimal import Decimal
import logging

from core.config.order_config import OrderServiceConfig
from .models import (
    Order, OrderItem, OrderStatus, OrderCreateRequest, OrderStatistics
)
from .protocols import (
    OrderRepositoryProtocol,
    StockStoreProtocol,
    EventBusProtocol,
    OrderServiceError,
    OrderValidationError,
    InsufficientStockError,
    InvalidOrderStateError,
    ConcurrentModificationError,
    StockStoreError,
)
from .events.publishers import (
    publish_order_created, publish_order_status_updated, publish_order_cancelled
)

logger = logging.getLogger(__name__)


# PENDING -> PROCESSING -> SHIPPED -> DELIVERED, CANCELLED from PENDING/PROCESSING
ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Check whether the lifecycle allows moving from current to target"""
    return current == target or target in ALLOWED_TRANSITIONS[current]


class OrderService:
    """
    Order management business logic service

    Handles order creation, status transitions and cancellation.
    Every collaborator is injected; nothing is looked up globally.
    """

    def __init__(
        self,
        repository: OrderRepositoryProtocol,
        stock_store: StockStoreProtocol,
        event_bus: Optional[EventBusProtocol] = None,
        config: Optional[OrderServiceConfig] = None
    ):
        """
        Initialize Order Service

        Args:
            repository: Order repository
            stock_store: Product stock store
            event_bus: Event bus for lifecycle events (optional)
            config: Order service configuration (defaults apply when omitted)
        """
        config = config or OrderServiceConfig()

        self.repository = repository
        self.stock_store = stock_store
        self.event_bus = event_bus

        self.default_currency = config.default_currency
        self.enforce_status_transitions = config.enforce_status_transitions
        self.max_update_retries = config.max_update_retries
        self.publish_retry_attempts = config.publish_retry_attempts

        logger.info("✅ OrderService initialized")

    # Order Lifecycle Operations

    async def create_order(self, request: OrderCreateRequest) -> Order:
        """
        Create a new order

        Validates every item, reserves stock in item order, persists the
        order as PENDING and publishes order.created.

        Args:
            request: Draft order

        Returns:
            Persisted order with its assigned order_id

        Raises:
            OrderValidationError: empty items, bad quantity, unknown product,
                insufficient stock (InsufficientStockError) or non-positive total
        """
        if not request.items:
            raise OrderValidationError("Order must contain at least one item")

        lines: List[OrderItem] = []
        requested: Dict[str, int] = {}

        for item in request.items:
            if item.quantity <= 0:
                raise OrderValidationError("Item quantity must be greater than 0")

            product = await self.stock_store.get_product(item.product_id)
            if product is None:
                raise OrderValidationError(f"Product not found: {item.product_id}")

            # Lines repeating a product draw on the same stock
            requested[product.product_id] = requested.get(product.product_id, 0) + item.quantity
            if product.stock < requested[product.product_id]:
                raise InsufficientStockError(
                    f"Insufficient stock for product: {product.name}",
                    product_id=product.product_id
                )

            lines.append(OrderItem(
                product_id=product.product_id,
                product_name=product.name,
                price=product.price,
                quantity=item.quantity
            ))

        total_amount = sum((line.line_total for line in lines), Decimal("0"))
        if total_amount <= 0:
            raise OrderValidationError("Order total must be greater than 0")

        await self._reserve_stock(request.user_id, lines)

        order = Order(
            user_id=request.user_id,
            items=lines,
            total_amount=total_amount,
            currency=(request.currency or self.default_currency).lower(),
            status=OrderStatus.PENDING,
            created_at=datetime.now(timezone.utc)
        )
        saved_order = await self.repository.save_order(order)

        await publish_order_created(self.event_bus, saved_order, attempts=self.publish_retry_attempts)

        logger.info(
            f"Order created: {saved_order.order_id} for user {saved_order.user_id}, "
            f"total {saved_order.total_amount} {saved_order.currency}"
        )
        return saved_order

    async def update_order_status(self, order_id: str, new_status: OrderStatus) -> Optional[Order]:
        """
        Overwrite the status of an order and publish order.status.updated.

        The lifecycle is only enforced when enforce_status_transitions is
        enabled; otherwise any target status is accepted.

        Returns:
            Updated order, or None when the order does not exist

        Raises:
            InvalidOrderStateError: illegal transition while enforcement is on
        """
        def apply(order: Order) -> bool:
            if self.enforce_status_transitions and not can_transition(order.status, new_status):
                raise InvalidOrderStateError(
                    f"Cannot move order {order_id} from {order.status.value} to {new_status.value}"
                )
            order.status = new_status
            return True

        updated_order, _ = await self._update_order(order_id, apply)
        if updated_order is None:
            logger.warning(f"Order not found for status update: {order_id}")
            return None

        await publish_order_status_updated(self.event_bus, updated_order, attempts=self.publish_retry_attempts)

        logger.info(f"Order {order_id} status set to {new_status.value}")
        return updated_order

    async def advance_status(
        self,
        order_id: str,
        expected: OrderStatus,
        target: OrderStatus
    ) -> Tuple[Optional[Order], bool]:
        """
        Move an order to target only while it is still in expected.

        The status check runs against the state being saved, so a
        concurrent change (e.g. a cancellation) always wins over this move.

        Returns:
            (order, changed); order is None when it does not exist, otherwise
            it is the stored order after the attempt
        """
        def apply(order: Order) -> bool:
            if order.status != expected:
                return False
            order.status = target
            return True

        order, changed = await self._update_order(order_id, apply)
        if order is None:
            logger.warning(f"Order not found for status advance: {order_id}")
            return None, False
        if not changed:
            logger.info(
                f"Order {order_id} left in {order.status.value}, "
                f"only {expected.value} moves to {target.value}"
            )
            return order, False

        await publish_order_status_updated(self.event_bus, order, attempts=self.publish_retry_attempts)

        logger.info(f"Order {order_id} moved from {expected.value} to {target.value}")
        return order, True

    async def cancel_order(self, order_id: str) -> bool:
        """
        Cancel a PENDING or PROCESSING order and restore its stock.

        Every item is restocked even when another item fails, and
        order.cancelled and order.status.updated are published either way.

        Returns:
            True when the order was cancelled by this call, False when it does
            not exist or its status does not allow cancellation

        Raises:
            StockStoreError: some items could not be restocked; the order
                stays CANCELLED and the error lists the products concerned
        """
        def apply(order: Order) -> bool:
            if order.status not in CANCELLABLE_STATUSES:
                return False
            order.status = OrderStatus.CANCELLED
            return True

        cancelled_order, changed = await self._update_order(order_id, apply)
        if cancelled_order is None:
            logger.warning(f"Order not found for cancellation: {order_id}")
            return False
        if not changed:
            logger.info(f"Order {order_id} not cancelled, status is {cancelled_order.status.value}")
            return False

        # The version check above lets exactly one caller reach the restock
        unrestored = await self._restore_stock(cancelled_order)

        await publish_order_cancelled(self.event_bus, cancelled_order, attempts=self.publish_retry_attempts)
        await publish_order_status_updated(self.event_bus, cancelled_order, attempts=self.publish_retry_attempts)

        if unrestored:
            products = ", ".join(f"{item.product_id} x{item.quantity}" for item in unrestored)
            logger.error(f"❌ Order {order_id} cancelled but stock was not restored for: {products}")
            raise StockStoreError(
                f"Order {order_id} cancelled, stock not restored for: {products}",
                product_ids=[item.product_id for item in unrestored]
            )

        logger.info(f"Order cancelled: {order_id}")
        return True

    async def record_payment_intent(self, order_id: str, payment_intent_id: str) -> Optional[Order]:
        """Persist the external payment reference of an order"""
        def apply(order: Order) -> bool:
            order.payment_intent_id = payment_intent_id
            return True

        updated_order, _ = await self._update_order(order_id, apply)
        if updated_order is None:
            logger.warning(f"Order not found for payment reference {payment_intent_id}: {order_id}")
            return None

        logger.info(f"Order {order_id} linked to payment intent {payment_intent_id}")
        return updated_order

    # Order Query Operations

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order by ID"""
        try:
            return await self.repository.get_order(order_id)
        except OrderServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to get order {order_id}: {e}")
            raise OrderServiceError(f"Failed to get order: {str(e)}") from e

    async def get_user_orders(self, user_id: str) -> List[Order]:
        """Get orders for a specific user, newest first"""
        try:
            return await self.repository.get_user_orders(user_id)
        except OrderServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to get user orders for {user_id}: {e}")
            raise OrderServiceError(f"Failed to get user orders: {str(e)}") from e

    async def list_orders(self) -> List[Order]:
        """Get all orders"""
        try:
            return await self.repository.list_orders()
        except OrderServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to list orders: {e}")
            raise OrderServiceError(f"Failed to list orders: {str(e)}") from e

    async def get_orders_by_status(self, status: OrderStatus) -> List[Order]:
        """Get orders in a given status"""
        try:
            return await self.repository.get_orders_by_status(status)
        except OrderServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to get orders with status {status.value}: {e}")
            raise OrderServiceError(f"Failed to get orders by status: {str(e)}") from e

    async def get_order_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        """Get the order owning a payment intent"""
        try:
            return await self.repository.get_order_by_payment_intent(payment_intent_id)
        except OrderServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to get order for payment intent {payment_intent_id}: {e}")
            raise OrderServiceError(f"Failed to get order by payment intent: {str(e)}") from e

    async def get_orders_between(self, start: datetime, end: datetime) -> List[Order]:
        """Get orders created between start and end, both inclusive"""
        if start > end:
            return []
        try:
            return await self.repository.get_orders_between(start, end)
        except OrderServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to get orders between {start} and {end}: {e}")
            raise OrderServiceError(f"Failed to get orders between dates: {str(e)}") from e

    async def count_orders_by_status(self, status: OrderStatus) -> int:
        """Count orders in a given status"""
        try:
            return await self.repository.count_orders_by_status(status)
        except OrderServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to count orders with status {status.value}: {e}")
            raise OrderServiceError(f"Failed to count orders: {str(e)}") from e

    async def get_order_statistics(self) -> OrderStatistics:
        """Get order counts per status"""
        orders_by_status = {
            status.value: await self.count_orders_by_status(status)
            for status in OrderStatus
        }
        return OrderStatistics(
            total_orders=sum(orders_by_status.values()),
            orders_by_status=orders_by_status
        )

    # Private Helper Methods

    async def _reserve_stock(self, user_id: str, lines: List[OrderItem]) -> None:
        """Decrease stock per line, in order. Earlier decrements are not undone on failure."""
        reserved: List[str] = []
        for line in lines:
            if not await self.stock_store.decrease_stock(line.product_id, line.quantity):
                logger.error(
                    f"Stock reservation failed for product {line.product_id} (user {user_id}); "
                    f"already reserved and not rolled back: {reserved}"
                )
                raise InsufficientStockError(
                    f"Insufficient stock for product: {line.product_name}",
                    product_id=line.product_id
                )
            reserved.append(line.product_id)

    async def _restore_stock(self, order: Order) -> List[OrderItem]:
        """Increase stock for every item; returns the items that failed"""
        unrestored: List[OrderItem] = []
        for item in order.items:
            try:
                await self.stock_store.increase_stock(item.product_id, item.quantity)
            except Exception as e:
                logger.error(f"Failed to restore {item.quantity} of product {item.product_id} for order {order.order_id}: {e}")
                unrestored.append(item)
                continue
            logger.debug(f"Restored {item.quantity} of product {item.product_id} for order {order.order_id}")
        return unrestored

    async def _update_order(
        self,
        order_id: str,
        apply: Callable[[Order], bool]
    ) -> Tuple[Optional[Order], bool]:
        """
        Load an order, apply a change and save it with a version check.

        apply returns False to leave the order as loaded. On a version
        conflict the order is reloaded and apply runs again against the
        fresh state.

        Returns:
            (order, changed); order is None when it does not exist
        """
        attempts = self.max_update_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                order = await self.repository.get_order(order_id)
                if order is None:
                    return None, False

                expected_version = order.version
                if not apply(order):
                    return order, False

                order.updated_at = datetime.now(timezone.utc)
                saved = await self.repository.save_order(order, expected_version=expected_version)
                return saved, True
            except ConcurrentModificationError:
                logger.warning(f"Order {order_id} changed concurrently (attempt {attempt}/{attempts}), reloading")
            except OrderServiceError:
                raise
            except Exception as e:
                logger.error(f"Failed to update order {order_id}: {e}")
                raise OrderServiceError(f"Failed to update order: {str(e)}") from e

        raise ConcurrentModificationError(f"Order {order_id} kept changing, gave up after {attempts} attempts")
