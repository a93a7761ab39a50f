"""
Tests for admin-requested order transitions against a real database.
"""

import asyncio

import pytest

from app.db import OrderFilters, OrderStatus, PaymentMethod
from app.processor import (
    InvalidTransition, OrderNotFound, TransitionConflict, request_transition,
)

from conftest import make_order


class TestRequestTransition:
    """Tests for request_transition."""

    async def test_fulfillment_path(self, db):
        order = await db.create_order(make_order(OrderStatus.PAID))

        order = await request_transition(db, order.id, OrderStatus.PROCESSING)
        assert order.status == OrderStatus.PROCESSING

        order = await request_transition(db, order.id, OrderStatus.SHIPPED, tracking_number="JX123")
        assert order.status == OrderStatus.SHIPPED
        assert order.tracking_number == "JX123"
        assert order.courier.tracking_number == "JX123"

        with pytest.raises(InvalidTransition):
            await request_transition(db, order.id, OrderStatus.PROCESSING)

        stored = await db.get_order(order.id)
        assert stored.status == OrderStatus.SHIPPED

    async def test_shipping_without_tracking_number(self, db):
        order = await db.create_order(make_order(OrderStatus.PROCESSING))

        order = await request_transition(db, order.id, OrderStatus.SHIPPED)

        assert order.status == OrderStatus.SHIPPED
        assert order.tracking_number is None

    async def test_tracking_number_ignored_outside_shipping(self, db):
        order = await db.create_order(make_order(OrderStatus.PAID))

        order = await request_transition(db, order.id, OrderStatus.PROCESSING, tracking_number="JX999")

        assert order.tracking_number is None

    async def test_cancellation_escape_is_terminal(self, db):
        order = await db.create_order(make_order(OrderStatus.PENDING_PAYMENT))

        order = await request_transition(db, order.id, OrderStatus.CANCELLED)
        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_at is not None

        with pytest.raises(InvalidTransition):
            await request_transition(db, order.id, OrderStatus.PAID)

    async def test_rejected_transition_writes_nothing(self, db):
        order = await db.create_order(make_order(OrderStatus.PAID))

        with pytest.raises(InvalidTransition):
            await request_transition(db, order.id, OrderStatus.DELIVERED)

        stored = await db.get_order(order.id)
        assert stored.status == OrderStatus.PAID
        assert stored.updated_at == order.updated_at
        assert await db.get_order_events(order.id) == []

    async def test_same_status_rejected(self, db):
        order = await db.create_order(make_order(OrderStatus.PROCESSING))

        with pytest.raises(InvalidTransition):
            await request_transition(db, order.id, OrderStatus.PROCESSING)

    async def test_unknown_order(self, db):
        with pytest.raises(OrderNotFound):
            await request_transition(db, "missing", OrderStatus.PROCESSING)

    async def test_history_is_recorded(self, db):
        order = await db.create_order(make_order(OrderStatus.PAID))

        await request_transition(db, order.id, OrderStatus.PROCESSING, notes="packing")
        await request_transition(db, order.id, OrderStatus.SHIPPED, tracking_number="JX123")

        events = await db.get_order_events(order.id)
        assert [(e.from_status, e.to_status) for e in events] == [
            (OrderStatus.PAID, OrderStatus.PROCESSING),
            (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
        ]
        assert events[0].notes == "packing"
        assert events[1].tracking_number == "JX123"

    async def test_concurrent_requests_apply_once(self, db):
        order = await db.create_order(make_order(OrderStatus.PROCESSING))

        results = await asyncio.gather(
            request_transition(db, order.id, OrderStatus.SHIPPED, tracking_number="JX1"),
            request_transition(db, order.id, OrderStatus.SHIPPED, tracking_number="JX2"),
            return_exceptions=True,
        )

        applied = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, Exception)]
        assert len(applied) == 1
        assert len(rejected) == 1
        assert isinstance(rejected[0], InvalidTransition)
        assert len(await db.get_order_events(order.id)) == 1

    async def test_stale_write_raises_conflict(self, db, monkeypatch):
        order = await db.create_order(make_order(OrderStatus.PROCESSING))
        stale = order.model_copy()
        await request_transition(db, order.id, OrderStatus.CANCELLED)

        real_get_order = db.get_order
        reads = []

        async def get_order(order_id):
            reads.append(order_id)
            if len(reads) == 1:
                return stale
            return await real_get_order(order_id)

        monkeypatch.setattr(db, "get_order", get_order)

        with pytest.raises(TransitionConflict) as exc_info:
            await request_transition(db, order.id, OrderStatus.SHIPPED)

        assert exc_info.value.current == OrderStatus.CANCELLED
        assert exc_info.value.attempted == OrderStatus.SHIPPED
        assert (await real_get_order(order.id)).status == OrderStatus.CANCELLED


class TestOrderModel:
    """Tests for the Order model invariants."""

    def test_total_must_match_components(self):
        with pytest.raises(ValueError):
            make_order(total=999)


class TestListOrders:
    """Tests for order listing."""

    async def test_filters_and_pagination(self, db):
        await db.create_order(make_order(OrderStatus.PAID, number="ORD-001"))
        await db.create_order(make_order(OrderStatus.PAID, number="ORD-002"))
        await db.create_order(make_order(
            OrderStatus.SHIPPED, number="ORD-003", payment_method=PaymentMethod.QRIS,
        ))

        page = await db.list_orders(OrderFilters(status=OrderStatus.PAID), page=1, limit=1)
        assert page.meta.total == 2
        assert page.meta.last_page == 2
        assert page.meta.has_next_page
        assert not page.meta.has_prev_page
        assert len(page.data) == 1

        page = await db.list_orders(OrderFilters(payment_method=PaymentMethod.QRIS))
        assert [o.order_number for o in page.data] == ["ORD-003"]

    async def test_search_matches_number_and_customer(self, db):
        await db.create_order(make_order(number="ORD-100"))

        by_number = await db.list_orders(OrderFilters(search="ORD-100"))
        by_email = await db.list_orders(OrderFilters(search="budi@"))
        no_match = await db.list_orders(OrderFilters(search="nobody"))

        assert by_number.meta.total == 1
        assert by_email.meta.total == 1
        assert no_match.meta.total == 0
        assert no_match.meta.last_page == 1

    async def test_sort_order(self, db):
        for number in ("ORD-B", "ORD-A", "ORD-C"):
            await db.create_order(make_order(number=number))

        page = await db.list_orders(sort_by="order_number", sort_order="asc")
        assert [o.order_number for o in page.data] == ["ORD-A", "ORD-B", "ORD-C"]

        # Unknown columns fall back to created_at
        page = await db.list_orders(sort_by="1; DROP TABLE orders", sort_order="desc")
        assert page.meta.total == 3
