"""
Order Repository

Data access layer for orders using an asyncpg connection pool.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
import json
import uuid
import logging

import asyncpg

from core.config.infra_config import InfraConfig
from .models import Order, OrderItem, OrderStatus
from .protocols import ConcurrentModificationError, OrderNotFoundError

logger = logging.getLogger(__name__)


ORDER_COLUMNS = (
    "order_id, user_id, items, total_amount, currency, status, "
    "payment_intent_id, created_at, updated_at, version"
)


class OrderRepository:
    """
    Repository for order data operations

    Every update is guarded by the order version: the row is only written
    when the stored version still matches the one the caller read.
    """

    def __init__(self, config: Optional[InfraConfig] = None):
        """Initialize Order Repository (the pool is opened by initialize())"""
        self.config = config or InfraConfig.from_env()
        self.pool: Optional[asyncpg.Pool] = None

        self.schema = "orders"  # Using "orders" instead of "order" (reserved keyword)
        self.orders_table = "orders"

        logger.info("OrderRepository initialized")

    @property
    def _table(self) -> str:
        return f'"{self.schema}".{self.orders_table}'

    async def initialize(self):
        """Open the connection pool and create the orders table if missing"""
        if self.pool is None:
            self.pool = await asyncpg.create_pool(
                dsn=self.config.database_dsn,
                min_size=self.config.postgres_pool_min,
                max_size=self.config.postgres_pool_max,
            )

        async with self.pool.acquire() as conn:
            await conn.execute(f'CREATE SCHEMA IF NOT EXISTS "{self.schema}"')
            await conn.execute(f'''
                CREATE TABLE IF NOT EXISTS {self._table} (
                    order_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    items JSONB NOT NULL DEFAULT '[]'::jsonb,
                    total_amount NUMERIC(18, 2) NOT NULL,
                    currency TEXT NOT NULL,
                    status TEXT NOT NULL,
                    payment_intent_id TEXT,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ,
                    version INTEGER NOT NULL DEFAULT 1
                )
            ''')
            await conn.execute(
                f'CREATE INDEX IF NOT EXISTS idx_orders_user_id ON {self._table} (user_id)'
            )
            await conn.execute(
                f'CREATE INDEX IF NOT EXISTS idx_orders_payment_intent ON {self._table} (payment_intent_id)'
            )

        logger.info(f"✅ Orders table ready in schema {self.schema}")

    async def close(self):
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def save_order(self, order: Order, expected_version: Optional[int] = None) -> Order:
        """
        Insert or update an order.

        Orders without an order_id are inserted with a generated ID and
        version 1. With expected_version the update only applies when the
        stored version matches; without it the row is overwritten.
        """
        try:
            if order.order_id is None:
                return await self._insert_order(order)
            if expected_version is None:
                return await self._upsert_order(order)
            return await self._update_order(order, expected_version)

        except (ConcurrentModificationError, OrderNotFoundError):
            raise
        except Exception as e:
            logger.error(f"Failed to save order {order.order_id}: {e}")
            raise

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order by ID"""
        try:
            query = f'SELECT {ORDER_COLUMNS} FROM {self._table} WHERE order_id = $1'
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(query, order_id)

            return self._row_to_order(row) if row else None

        except Exception as e:
            logger.error(f"Failed to get order {order_id}: {e}")
            raise

    async def get_user_orders(self, user_id: str) -> List[Order]:
        """Get orders for a specific user"""
        return await self._fetch_orders("WHERE user_id = $1", user_id)

    async def list_orders(self) -> List[Order]:
        """List all orders"""
        return await self._fetch_orders("")

    async def get_orders_by_status(self, status: OrderStatus) -> List[Order]:
        """Get orders in a given status"""
        return await self._fetch_orders("WHERE status = $1", status.value)

    async def get_order_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        """Get a single order by payment intent ID (returns first match)"""
        orders = await self._fetch_orders("WHERE payment_intent_id = $1", payment_intent_id)
        return orders[0] if orders else None

    async def get_orders_between(self, start: datetime, end: datetime) -> List[Order]:
        """Get orders created between start and end (inclusive)"""
        return await self._fetch_orders("WHERE created_at BETWEEN $1 AND $2", start, end)

    async def count_orders_by_status(self, status: OrderStatus) -> int:
        """Count orders in a given status"""
        try:
            query = f'SELECT COUNT(*) FROM {self._table} WHERE status = $1'
            async with self.pool.acquire() as conn:
                count = await conn.fetchval(query, status.value)
            return int(count or 0)

        except Exception as e:
            logger.error(f"Failed to count orders with status {status.value}: {e}")
            raise

    # Private Helper Methods

    async def _insert_order(self, order: Order) -> Order:
        order_id = f"order_{uuid.uuid4().hex[:12]}"
        query = f'''
            INSERT INTO {self._table} ({ORDER_COLUMNS})
            VALUES ($1, $2, $3::jsonb, $4, $5, $6, $7, $8, $9, 1)
            RETURNING {ORDER_COLUMNS}
        '''
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, order_id, *self._order_values(order))

        logger.debug(f"Inserted order {order_id}")
        return self._row_to_order(row)

    async def _upsert_order(self, order: Order) -> Order:
        query = f'''
            INSERT INTO {self._table} ({ORDER_COLUMNS})
            VALUES ($1, $2, $3::jsonb, $4, $5, $6, $7, $8, $9, 1)
            ON CONFLICT (order_id) DO UPDATE SET
                user_id = EXCLUDED.user_id,
                items = EXCLUDED.items,
                total_amount = EXCLUDED.total_amount,
                currency = EXCLUDED.currency,
                status = EXCLUDED.status,
                payment_intent_id = EXCLUDED.payment_intent_id,
                updated_at = EXCLUDED.updated_at,
                version = {self.orders_table}.version + 1
            RETURNING {ORDER_COLUMNS}
        '''
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, order.order_id, *self._order_values(order))
        return self._row_to_order(row)

    async def _update_order(self, order: Order, expected_version: int) -> Order:
        query = f'''
            UPDATE {self._table}
            SET items = $2::jsonb,
                total_amount = $3,
                currency = $4,
                status = $5,
                payment_intent_id = $6,
                updated_at = $7,
                version = version + 1
            WHERE order_id = $1 AND version = $8
            RETURNING {ORDER_COLUMNS}
        '''
        items, total_amount, currency, status, payment_intent_id = self._order_values(order)[1:6]

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                query, order.order_id, items, total_amount, currency, status,
                payment_intent_id, order.updated_at, expected_version
            )
            if row is None:
                exists = await conn.fetchval(
                    f'SELECT 1 FROM {self._table} WHERE order_id = $1', order.order_id
                )

        if row is None:
            if exists:
                raise ConcurrentModificationError(
                    f"Order {order.order_id} is no longer at version {expected_version}"
                )
            raise OrderNotFoundError(f"Order not found: {order.order_id}")

        return self._row_to_order(row)

    async def _fetch_orders(self, where_clause: str, *params: Any) -> List[Order]:
        try:
            query = f'''
                SELECT {ORDER_COLUMNS} FROM {self._table}
                {where_clause}
                ORDER BY created_at DESC
            '''
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
            return [self._row_to_order(row) for row in rows]

        except Exception as e:
            logger.error(f"Failed to query orders ({where_clause or 'all'}): {e}")
            raise

    @staticmethod
    def _order_values(order: Order) -> tuple:
        """Column values after order_id, in ORDER_COLUMNS order (version excluded)"""
        items = json.dumps([
            item.model_dump(mode='json', exclude={"line_total"}) for item in order.items
        ])
        return (
            order.user_id,
            items,
            order.total_amount,
            order.currency,
            order.status.value,
            order.payment_intent_id,
            order.created_at,
            order.updated_at,
        )

    def _row_to_order(self, row: Any) -> Order:
        """Convert a database row to Order model"""
        data: Dict[str, Any] = dict(row)

        items = data.get("items")
        if isinstance(items, str):
            items = json.loads(items)
        elif not isinstance(items, list):
            items = []

        return Order(
            order_id=data["order_id"],
            user_id=data["user_id"],
            items=[OrderItem(**item) for item in items],
            total_amount=Decimal(str(data["total_amount"])),
            currency=data["currency"],
            status=OrderStatus(data["status"]),
            payment_intent_id=data.get("payment_intent_id"),
            created_at=data["created_at"],
            updated_at=data.get("updated_at"),
            version=data["version"]
        )
