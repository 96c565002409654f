#!/usr/bin/env python3
"""Order service configuration

Service identity, peer service endpoints, payment processor credentials and
the tuning knobs of the order lifecycle.
"""
import os
from dataclasses import dataclass
from typing import Optional

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class OrderServiceConfig:
    """Order service settings"""

    # ===========================================
    # Service identity
    # ===========================================
    service_name: str = "order_service"
    service_host: str = "0.0.0.0"
    service_port: int = 8210
    debug: bool = False
    log_level: str = "INFO"

    # ===========================================
    # Peer services
    # ===========================================
    product_service_url: str = "http://localhost:8215"
    notification_service_url: str = "http://localhost:8206"
    fulfillment_service_url: str = "http://localhost:8232"
    http_timeout: float = 30.0

    # ===========================================
    # Payment processor (Stripe)
    # ===========================================
    stripe_secret_key: Optional[str] = None

    # ===========================================
    # Order lifecycle
    # ===========================================
    default_currency: str = "usd"
    enforce_status_transitions: bool = False
    max_update_retries: int = 3

    # ===========================================
    # Messaging
    # ===========================================
    publish_retry_attempts: int = 3
    consumer_max_workers: int = 10

    @classmethod
    def from_env(cls) -> 'OrderServiceConfig':
        """Load order service configuration from environment variables"""
        return cls(
            service_name=os.getenv("SERVICE_NAME", "order_service"),
            service_host=os.getenv("ORDER_SERVICE_HOST", "0.0.0.0"),
            service_port=_int(os.getenv("ORDER_SERVICE_PORT", "8210"), 8210),
            debug=_bool(os.getenv("DEBUG", "false")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),

            product_service_url=os.getenv("PRODUCT_SERVICE_URL", "http://localhost:8215"),
            notification_service_url=os.getenv("NOTIFICATION_SERVICE_URL", "http://localhost:8206"),
            fulfillment_service_url=os.getenv("FULFILLMENT_SERVICE_URL", "http://localhost:8232"),
            http_timeout=float(os.getenv("HTTP_TIMEOUT", "30.0")),

            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY") or os.getenv("ORDER_SERVICE_STRIPE_SECRET_KEY"),

            default_currency=os.getenv("ORDER_DEFAULT_CURRENCY", "usd").lower(),
            enforce_status_transitions=_bool(os.getenv("ORDER_ENFORCE_STATUS_TRANSITIONS", "false")),
            max_update_retries=_int(os.getenv("ORDER_MAX_UPDATE_RETRIES", "3"), 3),

            publish_retry_attempts=_int(os.getenv("EVENT_PUBLISH_RETRY_ATTEMPTS", "3"), 3),
            consumer_max_workers=_int(os.getenv("EVENT_CONSUMER_MAX_WORKERS", "10"), 10),
        )
