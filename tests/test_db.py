"""
Tests for the sync log, link registry and lease storage.
"""

from datetime import datetime, timedelta

from app.db import (
    LinkSyncStatus, MarketplaceLink, SyncLog, SyncLogStatus, SyncLogType, SyncMode,
    VariantUpdate,
)

from conftest import make_product


class TestSyncLogs:
    """Tests for sync log storage."""

    async def test_logs_are_listed_newest_first(self, db):
        for log_type in (SyncLogType.PULL_STOCK, SyncLogType.PUSH_ORDER, SyncLogType.PUSH_PRODUCT):
            await db.commit_sync(log=SyncLog(type=log_type, status=SyncLogStatus.SUCCESS))

        page = await db.get_logs()

        assert [log.type for log in page.data] == [
            SyncLogType.PUSH_PRODUCT, SyncLogType.PUSH_ORDER, SyncLogType.PULL_STOCK,
        ]
        assert page.meta.total == 3
        assert page.meta.last_page == 1

    async def test_filter_and_paginate(self, db):
        for i in range(5):
            await db.commit_sync(log=SyncLog(
                type=SyncLogType.PULL_STOCK,
                status=SyncLogStatus.FAILED if i % 2 else SyncLogStatus.SUCCESS,
            ))
        await db.commit_sync(log=SyncLog(type=SyncLogType.PUSH_ORDER, status=SyncLogStatus.SUCCESS))

        page = await db.get_logs(type=SyncLogType.PULL_STOCK, page=2, limit=2)
        assert page.meta.total == 5
        assert page.meta.last_page == 3
        assert len(page.data) == 2

        failed = await db.get_logs(status=SyncLogStatus.FAILED)
        assert failed.meta.total == 2

    async def test_payloads_round_trip_as_json(self, db):
        log = await db.commit_sync(log=SyncLog(
            type=SyncLogType.PUSH_ORDER,
            status=SyncLogStatus.FAILED,
            error_message="Ginee error INVALID: bad sku",
            payload_sent={"externalOrderId": "ORD-001", "items": [{"sku": "LS-M"}]},
            response_received={"code": "INVALID"},
        ))

        stored = await db.get_log(log.id)
        assert stored.payload_sent["items"][0]["sku"] == "LS-M"
        assert stored.response_received == {"code": "INVALID"}
        assert stored.error_message == "Ginee error INVALID: bad sku"

    async def test_missing_log(self, db):
        assert await db.get_log(12345) is None


class TestMarketplaceLinks:
    """Tests for the link registry."""

    async def test_commit_keeps_existing_external_id(self, db):
        product = await db.create_product(make_product())
        await db.commit_sync(links=[MarketplaceLink(
            product_id=product.id, external_id="GIN-001", sync_status=LinkSyncStatus.SYNCED,
        )])

        await db.commit_sync(links=[MarketplaceLink(
            product_id=product.id, sync_status=LinkSyncStatus.FAILED,
        )])

        link = await db.get_link(product.id)
        assert link.external_id == "GIN-001"
        assert link.sync_status == LinkSyncStatus.FAILED

    async def test_mark_pending_creates_unlinked_row(self, db):
        product = await db.create_product(make_product())

        await db.mark_links_pending([product.id])

        link = await db.get_link(product.id)
        assert link.sync_status == LinkSyncStatus.PENDING
        assert not link.is_linked

    async def test_variant_updates_commit_with_log(self, db):
        product = await db.create_product(make_product(stock=5))

        await db.commit_sync(
            log=SyncLog(type=SyncLogType.PULL_STOCK, status=SyncLogStatus.SUCCESS),
            variant_updates=[VariantUpdate(product_id=product.id, sku="LS-M", field="stock", value=9)],
        )

        stored = await db.get_product(product.id)
        assert stored.variants[0].stock == 9
        assert await db.count_logs() == 1

    async def test_variant_updates_keep_other_stored_fields(self, db):
        product = await db.create_product(make_product(stock=5, price=150000))
        await db.commit_sync(
            variant_updates=[VariantUpdate(product_id=product.id, sku="LS-L", field="stock", value=9)],
        )

        await db.commit_sync(variant_updates=[
            VariantUpdate(product_id=product.id, sku="LS-M", field="price", value=140000),
            VariantUpdate(product_id=product.id, sku="LS-XL", field="stock", value=1),
        ])

        stored = await db.get_product(product.id)
        assert [(v.sku, v.stock, v.price) for v in stored.variants] == [
            ("LS-M", 5, 140000),
            ("LS-L", 9, 150000),
        ]

    async def test_variant_updates_for_missing_product_are_ignored(self, db):
        log = await db.commit_sync(
            log=SyncLog(type=SyncLogType.PULL_STOCK, status=SyncLogStatus.SUCCESS),
            variant_updates=[VariantUpdate(product_id="gone", sku="LS-M", field="stock", value=1)],
        )

        assert log.id is not None
        assert await db.count_logs() == 1


class TestSyncLease:
    """Tests for the single-flight sync lease."""

    async def test_second_holder_is_rejected(self, db):
        first = await db.acquire_lease("sync_all", "run-1", SyncMode.LIVE, 60)
        second = await db.acquire_lease("sync_all", "run-2", SyncMode.DRY_RUN, 60)

        assert first is not None
        assert first.holder_id == "run-1"
        assert second is None

    async def test_release_frees_the_slot(self, db):
        await db.acquire_lease("sync_all", "run-1", SyncMode.LIVE, 60)

        assert await db.release_lease("sync_all", "run-1")
        assert await db.get_active_lease("sync_all") is None
        assert await db.acquire_lease("sync_all", "run-2", SyncMode.LIVE, 60) is not None

    async def test_release_by_other_holder_is_ignored(self, db):
        await db.acquire_lease("sync_all", "run-1", SyncMode.LIVE, 60)

        assert not await db.release_lease("sync_all", "run-2")
        assert (await db.get_active_lease("sync_all")).holder_id == "run-1"

    async def test_expired_lease_can_be_taken_over(self, db):
        start = datetime.utcnow()
        await db.acquire_lease("sync_all", "crashed", SyncMode.LIVE, 60, now=start)

        later = start + timedelta(seconds=61)
        lease = await db.acquire_lease("sync_all", "run-2", SyncMode.DRY_RUN, 60, now=later)

        assert lease is not None
        assert lease.holder_id == "run-2"
        assert lease.mode == SyncMode.DRY_RUN
        assert not await db.renew_lease("sync_all", "crashed", 60)

    async def test_renew_extends_expiry(self, db):
        start = datetime.utcnow()
        lease = await db.acquire_lease("sync_all", "run-1", SyncMode.LIVE, 60, now=start)

        assert await db.renew_lease("sync_all", "run-1", 60, now=start + timedelta(seconds=50))

        active = await db.get_active_lease("sync_all", now=start + timedelta(seconds=100))
        assert active is not None
        assert active.expires_at > lease.expires_at
