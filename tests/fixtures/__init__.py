"""
Shared Test Fixtures

Centralized factories used across all test layers.

Structure:
    - common.py: Base ID generators, timestamps
    - order_fixtures.py: Order service factories
"""

# Common utilities
from .common import (
    make_user_id,
    make_timestamp,
)

# Order service fixtures
from .order_fixtures import (
    make_order_id,
    make_product,
    make_order_item,
    make_order,
    make_create_request,
)

__all__ = [
    "make_user_id",
    "make_timestamp",
    "make_order_id",
    "make_product",
    "make_order_item",
    "make_order",
    "make_create_request",
]
