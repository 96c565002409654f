"""
Order Microservice

Responsibilities:
- Order lifecycle (create, status updates, cancellation)
- Stock reservation against product_service
- Payment intents through Stripe
- Reactions to order and payment events
"""

from fastapi import FastAPI, HTTPException, Depends, status, Query, Path, Body
from fastapi.responses import JSONResponse
import uvicorn
from contextlib import asynccontextmanager
from typing import List
from datetime import datetime, timezone

from core.config import get_settings, get_infra_config
from core.logger import setup_service_logger
from core.nats_client import get_event_bus
from .order_service import OrderService
from .payment_orchestrator import PaymentOrchestrator
from .factory import create_order_service, create_payment_orchestrator, create_event_consumer
from .protocols import (
    OrderServiceError,
    OrderValidationError,
    OrderNotFoundError,
    InvalidOrderStateError,
    ConcurrentModificationError,
    PaymentGatewayError,
)
from .models import (
    Order, OrderStatus, OrderCreateRequest, OrderStatusUpdateRequest,
    ConfirmPaymentRequest, CancelPaymentRequest, PaymentIntentResponse,
    PaymentActionResponse, OrderStatistics, OrderServiceStatus
)

# Initialize configuration
config = get_settings()
infra_config = get_infra_config()

# Setup loggers (use actual service name)
logger = setup_service_logger(config.service_name)


class OrderMicroservice:
    """Order microservice core class"""

    def __init__(self):
        self.order_service = None
        self.payment_orchestrator = None
        self.event_consumer = None
        self.event_bus = None

    async def initialize(self, event_bus=None):
        """Build the object graph and open the database pool"""
        try:
            self.event_bus = event_bus
            self.order_service = create_order_service(
                config=config, infra_config=infra_config, event_bus=event_bus
            )
            await self.order_service.repository.initialize()

            self.payment_orchestrator = create_payment_orchestrator(
                self.order_service, config=config, event_bus=event_bus
            )
            self.event_consumer = create_event_consumer(self.order_service, config=config)

            if event_bus:
                await self.event_consumer.register(event_bus)

            logger.info("Order microservice initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize order microservice: {e}")
            raise

    async def shutdown(self):
        """Shutdown the microservice"""
        try:
            if self.event_bus:
                await self.event_bus.close()
                logger.info("Event bus closed")

            if self.event_consumer:
                for client in (self.event_consumer.notification_client, self.event_consumer.fulfillment_client):
                    if client:
                        await client.close()

            if self.order_service:
                await self.order_service.stock_store.close()
                await self.order_service.repository.close()

            logger.info("Order microservice shutdown completed")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")


# Global microservice instance
order_microservice = OrderMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    # Initialize event bus
    event_bus = None
    if infra_config.nats_enabled:
        try:
            event_bus = await get_event_bus(
                config.service_name,
                servers=infra_config.nats_servers,
                max_workers=config.consumer_max_workers
            )
            logger.info("✅ Event bus initialized successfully")
        except Exception as e:
            logger.warning(f"⚠️  Failed to initialize event bus: {e}. Continuing without event publishing.")
            event_bus = None

    await order_microservice.initialize(event_bus=event_bus)

    yield

    await order_microservice.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Order Service",
    description="Order lifecycle, stock reservation and payment orchestration",
    version="1.0.0",
    lifespan=lifespan
)


# Dependency injection
def get_order_service() -> OrderService:
    """Get order service instance"""
    if not order_microservice.order_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Order service not initialized"
        )
    return order_microservice.order_service


def get_payment_orchestrator() -> PaymentOrchestrator:
    """Get payment orchestrator instance"""
    if not order_microservice.payment_orchestrator:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment orchestrator not initialized"
        )
    return order_microservice.payment_orchestrator


# Health check endpoints

@app.get("/health", response_model=OrderServiceStatus)
async def health_check():
    """Service health check"""
    return OrderServiceStatus(
        service=config.service_name,
        port=config.service_port,
        timestamp=datetime.now(timezone.utc)
    )


# Order endpoints

@app.post("/api/v1/orders", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: OrderCreateRequest,
    order_service: OrderService = Depends(get_order_service)
):
    """Create a new order"""
    return await order_service.create_order(request)


@app.get("/api/v1/orders", response_model=List[Order])
async def list_orders(order_service: OrderService = Depends(get_order_service)):
    """List all orders"""
    return await order_service.list_orders()


@app.get("/api/v1/orders/statistics", response_model=OrderStatistics)
async def get_order_statistics(order_service: OrderService = Depends(get_order_service)):
    """Get order counts per status"""
    return await order_service.get_order_statistics()


@app.get("/api/v1/orders/date-range", response_model=List[Order])
async def get_orders_between(
    start: datetime = Query(..., description="Range start (inclusive)"),
    end: datetime = Query(..., description="Range end (inclusive)"),
    order_service: OrderService = Depends(get_order_service)
):
    """Get orders created within a date range"""
    return await order_service.get_orders_between(start, end)


@app.get("/api/v1/orders/user/{user_id}", response_model=List[Order])
async def get_user_orders(
    user_id: str = Path(..., description="User ID"),
    order_service: OrderService = Depends(get_order_service)
):
    """Get orders for a specific user"""
    return await order_service.get_user_orders(user_id)


@app.get("/api/v1/orders/status/{order_status}", response_model=List[Order])
async def get_orders_by_status(
    order_status: OrderStatus = Path(..., description="Order status"),
    order_service: OrderService = Depends(get_order_service)
):
    """Get orders in a given status"""
    return await order_service.get_orders_by_status(order_status)


@app.get("/api/v1/orders/count/status/{order_status}")
async def count_orders_by_status(
    order_status: OrderStatus = Path(..., description="Order status"),
    order_service: OrderService = Depends(get_order_service)
):
    """Count orders in a given status"""
    count = await order_service.count_orders_by_status(order_status)
    return {"status": order_status.value, "count": count}


@app.get("/api/v1/orders/payment-intent/{payment_intent_id}", response_model=Order)
async def get_order_by_payment_intent(
    payment_intent_id: str = Path(..., description="Payment intent ID"),
    order_service: OrderService = Depends(get_order_service)
):
    """Get the order owning a payment intent"""
    order = await order_service.get_order_by_payment_intent(payment_intent_id)
    if not order:
        raise OrderNotFoundError(f"No order for payment intent: {payment_intent_id}")
    return order


@app.get("/api/v1/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: str = Path(..., description="Order ID"),
    order_service: OrderService = Depends(get_order_service)
):
    """Get order details"""
    order = await order_service.get_order(order_id)
    if not order:
        raise OrderNotFoundError(f"Order not found: {order_id}")
    return order


@app.put("/api/v1/orders/{order_id}/status", response_model=Order)
async def update_order_status(
    order_id: str = Path(..., description="Order ID"),
    request: OrderStatusUpdateRequest = Body(...),
    order_service: OrderService = Depends(get_order_service)
):
    """Set the status of an order"""
    order = await order_service.update_order_status(order_id, request.status)
    if not order:
        raise OrderNotFoundError(f"Order not found: {order_id}")
    return order


@app.delete("/api/v1/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str = Path(..., description="Order ID"),
    order_service: OrderService = Depends(get_order_service)
):
    """Cancel an order and restore its stock"""
    if await order_service.cancel_order(order_id):
        return {"order_id": order_id, "status": OrderStatus.CANCELLED.value, "message": "Order cancelled"}

    order = await order_service.get_order(order_id)
    if not order:
        raise OrderNotFoundError(f"Order not found: {order_id}")
    raise InvalidOrderStateError(f"Order {order_id} cannot be cancelled in status {order.status.value}")


# Payment endpoints

@app.post("/api/v1/payments/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    order_id: str = Query(..., description="Order ID"),
    order_service: OrderService = Depends(get_order_service),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)
):
    """Create a payment intent for an order and link it to the order"""
    order = await order_service.get_order(order_id)
    if not order:
        raise OrderNotFoundError(f"Order not found: {order_id}")

    intent = await orchestrator.initiate_payment(order)
    await order_service.record_payment_intent(order_id, intent.id)
    return PaymentIntentResponse.from_intent(intent)


@app.post("/api/v1/payments/confirm-payment", response_model=PaymentActionResponse)
async def confirm_payment(
    request: ConfirmPaymentRequest,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)
):
    """Confirm a payment intent"""
    intent = await orchestrator.confirm_payment(
        request.payment_intent_id, payment_method=request.payment_method_id
    )
    return PaymentActionResponse(
        payment_intent_id=intent.id,
        status=intent.status,
        message=f"Payment {intent.status}"
    )


@app.get("/api/v1/payments/payment-intent/{payment_intent_id}", response_model=PaymentIntentResponse)
async def get_payment_intent(
    payment_intent_id: str = Path(..., description="Payment intent ID"),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)
):
    """Get the current state of a payment intent"""
    intent = await orchestrator.retrieve_payment(payment_intent_id)
    return PaymentIntentResponse.from_intent(intent)


@app.post("/api/v1/payments/cancel-payment-intent", response_model=PaymentActionResponse)
async def cancel_payment_intent(
    request: CancelPaymentRequest,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)
):
    """Cancel a payment intent and its order"""
    intent = await orchestrator.cancel_payment(request.payment_intent_id)
    return PaymentActionResponse(
        payment_intent_id=intent.id,
        status=intent.status,
        message="Payment cancelled"
    )


@app.post("/api/v1/payments/webhook")
async def payment_webhook():
    """Payment processor webhook"""
    raise HTTPException(
        status_code=status.HTTP_501_NOT_IMPLEMENTED,
        detail="Payment webhooks are not supported"
    )


# Error handlers

def _error_response(status_code: int, exc: OrderServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_code": exc.error_code}
    )


@app.exception_handler(OrderValidationError)
async def validation_error_handler(request, exc):
    return _error_response(status.HTTP_400_BAD_REQUEST, exc)


@app.exception_handler(OrderNotFoundError)
async def not_found_error_handler(request, exc):
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(InvalidOrderStateError)
async def invalid_state_error_handler(request, exc):
    return _error_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(ConcurrentModificationError)
async def concurrent_modification_error_handler(request, exc):
    logger.warning(f"Order kept changing during update: {exc}")
    return _error_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(PaymentGatewayError)
async def payment_gateway_error_handler(request, exc):
    return _error_response(status.HTTP_502_BAD_GATEWAY, exc)


@app.exception_handler(OrderServiceError)
async def service_error_handler(request, exc):
    logger.error(f"Order service error: [{exc.error_code}] {exc}")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)


if __name__ == "__main__":
    uvicorn.run(
        "microservices.order_service.main:app",
        host=config.service_host,
        port=config.service_port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
