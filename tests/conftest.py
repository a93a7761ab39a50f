"""
Shared fixtures: a fresh SQLite database per test and a scriptable Ginee fake.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from app.db import (
    SQLiteDatabase, Order, OrderStatus, OrderUser, OrderAddress, OrderItem,
    CourierInfo, PaymentMethod, Product, ProductVariant, MarketplaceLink, LinkSyncStatus,
)
from app.ginee import GineeClientError


@pytest.fixture
async def db(tmp_path):
    database = SQLiteDatabase(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


def make_order(status: OrderStatus = OrderStatus.PAID, number: str = "ORD-001", **overrides) -> Order:
    fields = dict(
        order_number=number,
        status=status,
        payment_method=PaymentMethod.BANK_TRANSFER,
        subtotal=300000,
        shipping_cost=20000,
        discount_amount=10000,
        total=310000,
        user=OrderUser(id="user-1", name="Budi Santoso", email="budi@example.com", phone="0812000111"),
        address=OrderAddress(
            recipient_name="Budi Santoso",
            phone="0812000111",
            street="Jl. Melati No. 5",
            subdistrict="Coblong",
            city="Bandung",
            province="Jawa Barat",
            postal_code="40132",
        ),
        courier=CourierInfo(name="JNE", service="REG", cost=20000, estimated_days=3),
        items=[
            OrderItem(
                product_name="Linen Shirt",
                variant_sku="LS-M",
                size="M",
                quantity=2,
                unit_price=150000,
                subtotal=300000,
            )
        ],
    )
    fields.update(overrides)
    return Order(**fields)


def make_product(name: str = "Linen Shirt", sku: str = "LS", stock: int = 5, price: int = 150000) -> Product:
    return Product(
        name=name,
        sku=sku,
        base_price=price,
        variants=[
            ProductVariant(sku=f"{sku}-M", size="M", price=price, stock=stock),
            ProductVariant(sku=f"{sku}-L", size="L", price=price, stock=stock),
        ],
    )


async def link_product(db: SQLiteDatabase, product: Product, external_id: str) -> None:
    await db.commit_sync(links=[MarketplaceLink(
        product_id=product.id,
        external_id=external_id,
        sync_status=LinkSyncStatus.SYNCED,
    )])


def remote_product(external_id: str, product: Product, stock: Optional[int] = None,
                   price: Optional[int] = None) -> Dict[str, Any]:
    """A Ginee product body mirroring `product`, with optional overrides."""
    return {
        "productId": external_id,
        "name": product.name,
        "variations": [
            {
                "sku": v.sku,
                "sellingPrice": price if price is not None else v.price,
                "stock": stock if stock is not None else v.stock,
            }
            for v in product.variants
        ],
    }


class FakeGineeClient:
    """In-memory stand-in for GineeClient that records every call."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.products: Dict[str, Dict[str, Any]] = {}
        self.failing: Dict[str, Exception] = {}
        self.healthy = True
        self.gate: Optional[asyncio.Event] = None
        self.next_id = 1
        self.closed = False

    def _record(self, name: str, *args):
        self.calls.append((name,) + args)
        if name in self.failing:
            raise self.failing[name]

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def health_check(self):
        self._record("health_check")
        if self.gate is not None:
            await self.gate.wait()
        if not self.healthy:
            raise GineeClientError("Connection refused")
        return {"status": "ok"}

    async def get_product(self, external_id):
        self._record("get_product", external_id)
        if external_id not in self.products:
            raise GineeClientError(
                f"Ginee error NOT_FOUND: product {external_id}",
                status_code=404,
                response={"code": "NOT_FOUND"},
            )
        return self.products[external_id]

    async def create_product(self, payload):
        self._record("create_product", payload)
        external_id = f"GIN-{self.next_id:03d}"
        self.next_id += 1
        self.products[external_id] = {"productId": external_id, **payload}
        return {"productId": external_id}

    async def update_product(self, external_id, payload):
        self._record("update_product", external_id, payload)
        self.products[external_id] = {"productId": external_id, **payload}
        return {"productId": external_id}

    async def get_stocks(self, external_ids):
        self._record("get_stocks", external_ids)
        return [
            {
                "productId": eid,
                "variations": [
                    {"sku": v["sku"], "stock": v["stock"]}
                    for v in self.products[eid].get("variations", [])
                ],
            }
            for eid in external_ids
            if eid in self.products
        ]

    async def push_order(self, payload):
        self._record("push_order", payload)
        return {"orderId": f"GO-{payload['externalOrderId']}"}

    async def close(self):
        self.closed = True


@pytest.fixture
def ginee():
    return FakeGineeClient()
