"""
Tests for the admin JSON API.
"""

import asyncio

import httpx
import pytest

from app import dependencies
from app.auth import SessionManager, hash_password
from app.config import settings
from app.db import OrderStatus
from app.dependencies import get_db, get_ginee_client, get_ginee_client_factory
from app.main import app
from app.processor import runner

from conftest import link_product, make_order, make_product


@pytest.fixture
async def client(db, ginee, monkeypatch):
    monkeypatch.setattr(dependencies, "_session_manager", SessionManager("test-secret"))
    monkeypatch.setattr(settings, "admin_password_hash", hash_password("hunter2"))

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_ginee_client] = lambda: ginee
    app.dependency_overrides[get_ginee_client_factory] = lambda: (lambda: ginee)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http

    app.dependency_overrides.clear()


@pytest.fixture
async def admin(client):
    response = await client.post("/api/auth/login", json={"password": "hunter2"})
    assert response.status_code == 200
    return client


class TestAuth:
    """Tests for login and the auth guard."""

    async def test_health_needs_no_session(self, client):
        response = await client.get("/health")
        assert response.json() == {"status": "ok"}

    async def test_api_requires_session(self, client):
        response = await client.get("/api/orders")
        assert response.status_code == 401

    async def test_wrong_password(self, client):
        response = await client.post("/api/auth/login", json={"password": "nope"})
        assert response.status_code == 401

    async def test_login_and_logout(self, admin):
        assert (await admin.get("/api/auth/me")).json() == {"authenticated": True}

        await admin.post("/api/auth/logout")

        assert (await admin.get("/api/auth/me")).json() == {"authenticated": False}


class TestOrderRoutes:
    """Tests for /api/orders."""

    async def test_list_and_detail(self, admin, db):
        order = await db.create_order(make_order(OrderStatus.PAID))

        listing = (await admin.get("/api/orders", params={"status": "PAID"})).json()
        assert listing["meta"]["total"] == 1
        assert listing["data"][0]["order_number"] == "ORD-001"

        detail = (await admin.get(f"/api/orders/{order.id}")).json()
        assert detail["allowed_transitions"] == ["PROCESSING", "CANCELLED"]
        assert detail["history"] == []

    async def test_transition(self, admin, db):
        order = await db.create_order(make_order(OrderStatus.PROCESSING))

        response = await admin.patch(
            f"/api/orders/{order.id}/status",
            json={"status": "SHIPPED", "tracking_number": "JX123"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["order"]["status"] == "SHIPPED"
        assert body["order"]["tracking_number"] == "JX123"
        assert body["allowed_transitions"] == ["DELIVERED", "CANCELLED"]
        assert len(body["history"]) == 1

    async def test_invalid_transition_is_409(self, admin, db):
        order = await db.create_order(make_order(OrderStatus.SHIPPED))

        response = await admin.patch(f"/api/orders/{order.id}/status", json={"status": "PROCESSING"})

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["current_status"] == "SHIPPED"
        assert detail["attempted_status"] == "PROCESSING"

    async def test_missing_order_is_404(self, admin):
        response = await admin.patch("/api/orders/missing/status", json={"status": "CANCELLED"})
        assert response.status_code == 404


class TestSyncRoutes:
    """Tests for /api/ginee."""

    async def test_pull_unlinked_is_422(self, admin, db, ginee):
        product = await db.create_product(make_product())

        response = await admin.post("/api/ginee/sync/pull-product", json={"product_id": product.id})

        assert response.status_code == 422
        assert ginee.calls == []

    async def test_push_then_badge(self, admin, db):
        product = await db.create_product(make_product())

        badge = await admin.get(f"/api/ginee/products/{product.id}/badge")
        assert badge.json()["badge"] == "unlinked"

        response = await admin.post("/api/ginee/sync/push-product", json={"product_id": product.id})
        assert response.status_code == 200
        assert response.json()["log"]["status"] == "success"

        badge = await admin.get(f"/api/ginee/products/{product.id}/badge")
        assert badge.json()["badge"] == "synced"

    async def test_remote_failure_is_502_with_log(self, admin, db):
        product = await db.create_product(make_product())
        await link_product(db, product, "GIN-404")

        response = await admin.post("/api/ginee/sync/pull-product", json={"product_id": product.id})

        assert response.status_code == 502
        log_id = response.json()["detail"]["log_id"]
        log = (await admin.get(f"/api/ginee/logs/{log_id}")).json()
        assert log["status"] == "failed"
        assert log["type"] == "pull_product"

    async def test_local_save_failure_is_502_with_log(self, admin, db, ginee):
        first = await db.create_product(make_product(name="A", sku="A"))
        await link_product(db, first, "GIN-001")
        second = await db.create_product(make_product(name="B", sku="B"))

        response = await admin.post("/api/ginee/sync/push-product", json={"product_id": second.id})

        assert response.status_code == 502
        log_id = response.json()["detail"]["log_id"]
        log = (await admin.get(f"/api/ginee/logs/{log_id}")).json()
        assert log["status"] == "failed"
        assert log["response_received"] == {"productId": "GIN-001"}

        badge = await admin.get(f"/api/ginee/products/{second.id}/badge")
        assert badge.json()["badge"] == "unlinked"

    async def test_unknown_product_is_404(self, admin):
        response = await admin.post("/api/ginee/sync/push-product", json={"product_id": "missing"})
        assert response.status_code == 404

    async def test_sync_all_single_flight(self, admin, ginee):
        ginee.gate = asyncio.Event()

        first = (await admin.post("/api/ginee/sync/all", json={"dry_run": True})).json()
        second = (await admin.post("/api/ginee/sync/all", json={"dry_run": True})).json()

        assert first["accepted"]
        assert not second["accepted"]
        assert second["reason"] == "already running"

        ginee.gate.set()
        await asyncio.gather(*list(runner._background_tasks))

        status = (await admin.get("/api/ginee/sync/status")).json()
        assert status == {"running": False}

        logs = (await admin.get("/api/ginee/logs", params={"type": "sync_all"})).json()
        assert logs["meta"]["total"] == 1


class TestLogRoutes:
    """Tests for /api/ginee/logs."""

    async def test_download(self, admin, db, ginee):
        order = await db.create_order(make_order(OrderStatus.PAID))
        await admin.post("/api/ginee/sync/push-order", json={"order_id": order.id})

        logs = (await admin.get("/api/ginee/logs")).json()
        log_id = logs["data"][0]["id"]

        response = await admin.get(f"/api/ginee/logs/{log_id}/download")

        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        assert "PAYLOAD SENT" in response.text
        assert "ORD-001" in response.text

    async def test_missing_log_is_404(self, admin):
        response = await admin.get("/api/ginee/logs/999")
        assert response.status_code == 404
