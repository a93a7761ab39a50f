"""
Ginee marketplace API module.
"""

from app.ginee.client import (
    GineeClient,
    GineeClientError,
    GineeAuthError,
    GineeRateLimitError,
    GineeConnectionError,
)
from app.ginee.payloads import (
    RemoteProduct,
    RemoteVariant,
    build_product_payload,
    build_order_payload,
    parse_product,
    parse_created_product_id,
    parse_stocks,
)

__all__ = [
    "GineeClient",
    "GineeClientError",
    "GineeAuthError",
    "GineeRateLimitError",
    "GineeConnectionError",
    "RemoteProduct",
    "RemoteVariant",
    "build_product_payload",
    "build_order_payload",
    "parse_product",
    "parse_created_product_id",
    "parse_stocks",
]
