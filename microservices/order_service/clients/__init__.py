"""
Order Service Clients Module

Clients for the stock store, the payment gateway and downstream services
"""

from .product_client import ProductClient
from .stripe_gateway import StripePaymentGateway
from .notification_client import NotificationClient
from .fulfillment_client import FulfillmentClient

__all__ = [
    "ProductClient",
    "StripePaymentGateway",
    "NotificationClient",
    "FulfillmentClient",
]
