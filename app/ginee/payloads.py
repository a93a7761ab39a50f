"""
Request builders and response parsers for Ginee payloads.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..db import Order, Product
from .client import GineeClientError


@dataclass
class RemoteVariant:
    """A variant as Ginee reports it."""

    sku: str
    price: Optional[int]
    stock: Optional[int]


@dataclass
class RemoteProduct:
    """Parsed product data from Ginee."""

    external_id: str
    name: str
    variants: List[RemoteVariant]

    def variants_by_sku(self) -> Dict[str, RemoteVariant]:
        return {v.sku: v for v in self.variants}


def build_product_payload(product: Product) -> Dict[str, Any]:
    """Listing payload for a local product (create and update share it)."""
    return {
        "name": product.name,
        "spu": product.sku,
        "status": "ACTIVE" if product.is_active else "INACTIVE",
        "variations": [
            {
                "sku": variant.sku,
                "optionValues": [variant.size],
                "sellingPrice": variant.price,
                "stock": variant.stock,
            }
            for variant in product.variants
        ],
    }


def build_order_payload(order: Order) -> Dict[str, Any]:
    """Order/fulfillment payload forwarded to Ginee."""
    return {
        "externalOrderId": order.order_number,
        "orderStatus": order.status.value,
        "paymentMethod": order.payment_method.value,
        "totalAmount": order.total,
        "shippingFee": order.shipping_cost,
        "discount": order.discount_amount,
        "buyer": {
            "name": order.user.name,
            "email": order.user.email,
            "phone": order.user.phone,
        },
        "receiver": {
            "name": order.address.recipient_name,
            "phone": order.address.phone,
            "address": order.address.street,
            "district": order.address.subdistrict,
            "city": order.address.city,
            "province": order.address.province,
            "postCode": order.address.postal_code,
        },
        "logistics": {
            "courier": order.courier.name,
            "service": order.courier.service,
            "trackingNumber": order.courier.tracking_number or order.tracking_number,
        },
        "items": [
            {
                "sku": item.variant_sku,
                "name": item.product_name,
                "quantity": item.quantity,
                "price": item.unit_price,
            }
            for item in order.items
        ],
    }


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_product(data: Any) -> RemoteProduct:
    """
    Parse a Ginee product body.

    Raises:
        GineeClientError: If the body is missing the product id
    """
    if not isinstance(data, dict) or not data.get("productId"):
        raise GineeClientError("Malformed product response", response=data)

    variants = []
    for raw in data.get("variations") or []:
        sku = raw.get("sku")
        if not sku:
            continue
        variants.append(RemoteVariant(
            sku=sku,
            price=_optional_int(raw.get("sellingPrice")),
            stock=_optional_int(raw.get("stock")),
        ))

    return RemoteProduct(
        external_id=str(data["productId"]),
        name=data.get("name", ""),
        variants=variants,
    )


def parse_created_product_id(data: Any) -> str:
    """Extract the listing id Ginee assigns on create."""
    if not isinstance(data, dict) or not data.get("productId"):
        raise GineeClientError("Create response carried no productId", response=data)
    return str(data["productId"])


def parse_stocks(data: Any) -> Dict[str, Dict[str, int]]:
    """
    Parse a stock query body into {external_id: {sku: stock}}.

    Entries without a product id are skipped.
    """
    if not isinstance(data, list):
        raise GineeClientError("Malformed stock response", response=data)

    stocks: Dict[str, Dict[str, int]] = {}
    for entry in data:
        external_id = entry.get("productId") if isinstance(entry, dict) else None
        if not external_id:
            continue
        per_sku: Dict[str, int] = {}
        for raw in entry.get("variations") or []:
            stock = _optional_int(raw.get("stock"))
            if raw.get("sku") and stock is not None:
                per_sku[raw["sku"]] = stock
        stocks[str(external_id)] = per_sku
    return stocks
