"""
Notification Service Client for Order Service

Sends templated customer notifications for order lifecycle steps.
"""

import httpx
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


# Template name -> subject line
ORDER_TEMPLATES: Dict[str, str] = {
    "order_confirmation": "Your order has been received",
    "order_shipped": "Your order is on its way",
    "order_delivered": "Your order has been delivered",
    "order_cancelled": "Your order has been cancelled",
    "payment_confirmation": "Payment received",
    "payment_failed": "Payment failed",
}


class NotificationClient:
    """Client for notification_service"""

    def __init__(self, base_url: str = "http://localhost:8206", timeout: float = 30.0):
        self.base_url = base_url.rstrip('/')
        self.client = httpx.AsyncClient(timeout=timeout)
        logger.info(f"NotificationClient initialized with base_url: {self.base_url}")

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def send_notification(
        self,
        user_id: str,
        template: str,
        order_id: str,
        data: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Send a templated notification to the order owner

        Returns:
            True when notification_service accepted the request
        """
        payload = {
            "user_id": user_id,
            "notification_type": template,
            "title": ORDER_TEMPLATES.get(template, template.replace("_", " ").capitalize()),
            "data": {"order_id": order_id, **(data or {})},
        }
        try:
            response = await self.client.post(f"{self.base_url}/api/v1/notifications/send", json=payload)
            response.raise_for_status()
            return True
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to send {template} notification: {e.response.status_code}")
            return False
        except Exception as e:
            logger.error(f"Error sending {template} notification: {e}")
            return False
