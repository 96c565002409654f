"""
Order Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that imports I/O-dependent modules.

Usage:
    from .factory import create_order_service
    service = create_order_service(config, event_bus=event_bus)
"""
from typing import Optional

from core.config import OrderServiceConfig, InfraConfig

from .order_service import OrderService
from .payment_orchestrator import PaymentOrchestrator
from .events.handlers import OrderEventConsumer


def create_order_service(
    config: Optional[OrderServiceConfig] = None,
    infra_config: Optional[InfraConfig] = None,
    event_bus=None,
    repository=None,
    stock_store=None,
) -> OrderService:
    """
    Create OrderService with real dependencies.

    The asyncpg repository and the product service client are created here
    unless given. The repository still needs `await repository.initialize()`
    before use.

    Args:
        config: Order service configuration
        infra_config: Infrastructure configuration (database)
        event_bus: Event bus for publishing events
        repository: Order repository override
        stock_store: Stock store override

    Returns:
        Configured OrderService instance
    """
    config = config or OrderServiceConfig.from_env()

    if repository is None:
        # Import real repository here (not at module level)
        from .order_repository import OrderRepository
        repository = OrderRepository(config=infra_config)

    if stock_store is None:
        from .clients.product_client import ProductClient
        stock_store = ProductClient(base_url=config.product_service_url, timeout=config.http_timeout)

    return OrderService(
        repository=repository,
        stock_store=stock_store,
        event_bus=event_bus,
        config=config,
    )


def create_payment_orchestrator(
    order_service: OrderService,
    config: Optional[OrderServiceConfig] = None,
    event_bus=None,
    gateway=None,
) -> PaymentOrchestrator:
    """Create PaymentOrchestrator backed by Stripe unless a gateway is given"""
    config = config or OrderServiceConfig.from_env()

    if gateway is None:
        from .clients.stripe_gateway import StripePaymentGateway
        gateway = StripePaymentGateway(secret_key=config.stripe_secret_key)

    return PaymentOrchestrator(
        gateway=gateway,
        order_service=order_service,
        event_bus=event_bus,
        publish_retry_attempts=config.publish_retry_attempts,
    )


def create_event_consumer(
    order_service: OrderService,
    config: Optional[OrderServiceConfig] = None,
    notification_client=None,
    fulfillment_client=None,
) -> OrderEventConsumer:
    """Create OrderEventConsumer with HTTP clients for notification and fulfillment"""
    config = config or OrderServiceConfig.from_env()

    if notification_client is None:
        from .clients.notification_client import NotificationClient
        notification_client = NotificationClient(
            base_url=config.notification_service_url, timeout=config.http_timeout
        )

    if fulfillment_client is None:
        from .clients.fulfillment_client import FulfillmentClient
        fulfillment_client = FulfillmentClient(
            base_url=config.fulfillment_service_url, timeout=config.http_timeout
        )

    return OrderEventConsumer(
        order_service=order_service,
        notification_client=notification_client,
        fulfillment_client=fulfillment_client,
    )
