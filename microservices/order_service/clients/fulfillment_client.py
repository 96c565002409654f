"""
Fulfillment Service Client for Order Service
"""

import httpx
import logging
from typing import Optional, Dict, Any

from ..models import Order

logger = logging.getLogger(__name__)


class FulfillmentClient:
    """Client for fulfillment_service"""

    def __init__(self, base_url: str = "http://localhost:8232", timeout: float = 30.0):
        self.base_url = base_url.rstrip('/')
        self.client = httpx.AsyncClient(timeout=timeout)
        logger.info(f"FulfillmentClient initialized with base_url: {self.base_url}")

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def prepare_shipment(self, order: Order) -> Optional[Dict[str, Any]]:
        try:
            payload = {
                "order_id": order.order_id,
                "user_id": order.user_id,
                "items": [
                    {"product_id": item.product_id, "quantity": item.quantity}
                    for item in order.items
                ],
            }
            response = await self.client.post(f"{self.base_url}/api/v1/fulfillment/shipments", json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to create shipment: {e.response.status_code}")
            return None
        except Exception as e:
            logger.error(f"Error creating shipment: {e}")
            return None

    async def cancel_shipment(self, order_id: str) -> bool:
        try:
            response = await self.client.post(
                f"{self.base_url}/api/v1/fulfillment/shipments/{order_id}/cancel"
            )
            if response.status_code == 404:
                # Nothing was shipped yet
                return True
            response.raise_for_status()
            return True
        except Exception as e:
            logger.error(f"Error cancelling shipment for {order_id}: {e}")
            return False
