"""
Business rules for reconciling local variants against Ginee.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from ..db import Product, VariantUpdate
from ..ginee import RemoteProduct


@dataclass
class VariantChange:
    """A single field that differs between local and Ginee data."""

    sku: str
    field: str  # "stock" or "price"
    current: int
    new: int

    def to_dict(self) -> dict:
        return asdict(self)


def compute_variant_changes(product: Product, remote: RemoteProduct) -> List[VariantChange]:
    """
    Compare a local product with its Ginee listing.

    Variants are matched by SKU. Ginee wins for stock and price; variants
    missing on either side and values Ginee did not report are left alone.
    """
    remote_by_sku = remote.variants_by_sku()
    changes: List[VariantChange] = []

    for variant in product.variants:
        remote_variant = remote_by_sku.get(variant.sku)
        if remote_variant is None:
            continue

        if remote_variant.stock is not None and remote_variant.stock != variant.stock:
            changes.append(VariantChange(variant.sku, "stock", variant.stock, remote_variant.stock))

        if remote_variant.price is not None and remote_variant.price != variant.price:
            changes.append(VariantChange(variant.sku, "price", variant.price, remote_variant.price))

    return changes


def compute_stock_changes(product: Product, stock_by_sku: Dict[str, int]) -> List[VariantChange]:
    """Stock-only variant of compute_variant_changes."""
    return [
        VariantChange(v.sku, "stock", v.stock, stock_by_sku[v.sku])
        for v in product.variants
        if v.sku in stock_by_sku and stock_by_sku[v.sku] != v.stock
    ]


def to_variant_updates(product: Product, changes: List[VariantChange]) -> List[VariantUpdate]:
    """Field-level writes for `changes`; other variants and fields are left as stored."""
    return [
        VariantUpdate(product_id=product.id, sku=c.sku, field=c.field, value=c.new)
        for c in changes
    ]


def summarize_changes(changes: List[VariantChange]) -> Dict[str, int]:
    summary = {"stock": 0, "price": 0}
    for change in changes:
        summary[change.field] += 1
    return summary


def find_unmatched_skus(product: Product, remote: RemoteProduct) -> Optional[List[str]]:
    """Local SKUs Ginee does not know about, or None when all match."""
    remote_skus = {v.sku for v in remote.variants}
    missing = [v.sku for v in product.variants if v.sku not in remote_skus]
    return missing or None
