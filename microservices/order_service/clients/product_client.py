"""
Product Service Client for Order Service

Stock store backed by product_service. Stock changes are atomic on the
product service side; this client only reports their outcome.
"""

import httpx
import logging
from decimal import Decimal
from typing import Optional

from ..models import Product
from ..protocols import StockStoreError

logger = logging.getLogger(__name__)


class ProductClient:
    """Client for product_service"""

    def __init__(self, base_url: str = "http://localhost:8215", timeout: float = 30.0):
        self.base_url = base_url.rstrip('/')
        self.client = httpx.AsyncClient(timeout=timeout)
        logger.info(f"ProductClient initialized with base_url: {self.base_url}")

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Resolve a product with its price and current stock, None when unknown"""
        try:
            response = await self.client.get(f"{self.base_url}/api/v1/products/{product_id}")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            data = response.json()
            return Product(
                product_id=data.get("product_id", product_id),
                name=data["name"],
                price=Decimal(str(data["price"])),
                stock=data.get("stock", 0)
            )
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to get product {product_id}: {e.response.status_code}")
            raise StockStoreError(f"Product lookup failed for {product_id}: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Error getting product {product_id}: {e}")
            raise StockStoreError(f"Product service unreachable: {e}") from e

    async def decrease_stock(self, product_id: str, quantity: int) -> bool:
        """Decrease stock; False when the product service refuses for lack of stock"""
        try:
            response = await self.client.post(
                f"{self.base_url}/api/v1/products/{product_id}/stock/decrease",
                json={"quantity": quantity}
            )
            if response.status_code == 409:
                logger.warning(f"Insufficient stock for product {product_id} (requested {quantity})")
                return False
            response.raise_for_status()
            return True
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to decrease stock for {product_id}: {e.response.status_code}")
            raise StockStoreError(f"Stock decrease failed for {product_id}: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Error decreasing stock for {product_id}: {e}")
            raise StockStoreError(f"Product service unreachable: {e}") from e

    async def increase_stock(self, product_id: str, quantity: int) -> None:
        """Give stock back to a product"""
        try:
            response = await self.client.post(
                f"{self.base_url}/api/v1/products/{product_id}/stock/increase",
                json={"quantity": quantity}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to increase stock for {product_id}: {e.response.status_code}")
            raise StockStoreError(f"Stock increase failed for {product_id}: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Error increasing stock for {product_id}: {e}")
            raise StockStoreError(f"Product service unreachable: {e}") from e
