"""
Runner for full-catalog Ginee syncs.

Only one sync-all may be in flight. The slot is a lease row in the
database, taken before the first remote call and released after the
run's log entry is written. A crashed run stops renewing its lease,
so the slot frees itself once the TTL passes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Set

from ..db import (
    SQLiteDatabase, Product, MarketplaceLink, LinkSyncStatus,
    SyncLog, SyncLogType, SyncLogStatus, SyncMode, generate_uuid,
)
from ..ginee import GineeClient, parse_product
from .reconcile import compute_variant_changes, to_variant_updates

logger = logging.getLogger(__name__)

SYNC_ALL_LEASE = "sync_all"
DEFAULT_LEASE_TTL_SECONDS = 900

ALREADY_RUNNING = "already running"
LIVE_SYNC_DISABLED = "live sync disabled"

# Item statuses
ITEM_UPDATED = "updated"
ITEM_UNCHANGED = "unchanged"
ITEM_FAILED = "failed"
ITEM_SKIPPED = "skipped"

# Keeps fire-and-continue tasks referenced until they finish
_background_tasks: Set[asyncio.Task] = set()


class SyncAllRejected(Exception):
    """A foreground sync-all was not started."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Sync-all not started: {reason}")


@dataclass
class StartResult:
    """Answer to a sync-all request."""
    accepted: bool
    reason: Optional[str] = None
    run_id: Optional[str] = None
    mode: Optional[SyncMode] = None


@dataclass
class ItemResult:
    """Outcome for one product within a run."""
    product_id: str
    name: str
    status: str
    external_id: Optional[str] = None
    changes: List[dict] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in (ITEM_UPDATED, ITEM_UNCHANGED)

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "name": self.name,
            "externalId": self.external_id,
            "status": self.status,
            "changes": self.changes,
            "error": self.error,
        }


@dataclass
class SyncAllResult:
    """Result of a sync-all run."""
    run_id: str
    dry_run: bool
    outcome: SyncLogStatus
    items: List[ItemResult]
    log: Optional[SyncLog]
    error: Optional[str] = None

    def count(self, status: str) -> int:
        return sum(1 for item in self.items if item.status == status)

    @property
    def summary(self) -> dict:
        return {
            "total": len(self.items),
            "updated": self.count(ITEM_UPDATED),
            "unchanged": self.count(ITEM_UNCHANGED),
            "failed": self.count(ITEM_FAILED),
            "skipped": self.count(ITEM_SKIPPED),
        }


def classify_outcome(items: List[ItemResult]) -> SyncLogStatus:
    """
    completed: nothing failed. partial: some failed, some succeeded.
    failed: items failed and none succeeded.
    """
    failed = sum(1 for item in items if item.status == ITEM_FAILED)
    succeeded = sum(1 for item in items if item.succeeded)

    if failed == 0:
        return SyncLogStatus.COMPLETED
    if succeeded == 0:
        return SyncLogStatus.FAILED
    return SyncLogStatus.PARTIAL


async def reconcile_product(
    db: SQLiteDatabase,
    client: GineeClient,
    product: Product,
    link: MarketplaceLink,
    dry_run: bool
) -> ItemResult:
    """
    Pull one product's Ginee listing and reconcile stock and price.

    The product is compared as stored once Ginee has answered, and only
    the differing variant fields are written. A dry run only reports the
    changes. Errors are returned as a failed item so the run can carry on.
    """
    item = ItemResult(
        product_id=product.id,
        name=product.name,
        status=ITEM_UNCHANGED,
        external_id=link.external_id,
    )

    try:
        remote = parse_product(await client.get_product(link.external_id))
        current = await db.get_product(product.id)
        if current is None:
            logger.info(f"Product '{product.name}' was deleted during the run, skipping")
            item.status = ITEM_SKIPPED
            return item
        changes = compute_variant_changes(current, remote)
        item.changes = [c.to_dict() for c in changes]
        if changes:
            item.status = ITEM_UPDATED

        if not dry_run:
            await db.commit_sync(
                variant_updates=to_variant_updates(current, changes),
                links=[MarketplaceLink(
                    product_id=product.id,
                    sync_status=LinkSyncStatus.SYNCED,
                    last_synced_at=datetime.utcnow(),
                )],
            )
    except Exception as e:
        logger.warning(f"Reconcile failed for '{product.name}': {e}")
        item.status = ITEM_FAILED
        item.error = str(e)
        if not dry_run:
            await db.commit_sync(
                links=[MarketplaceLink(product_id=product.id, sync_status=LinkSyncStatus.FAILED)]
            )

    return item


async def run_sync_all(
    db: SQLiteDatabase,
    client: GineeClient,
    run_id: str,
    dry_run: bool,
    lease_ttl_seconds: int = DEFAULT_LEASE_TTL_SECONDS
) -> SyncAllResult:
    """
    Reconcile every active product against Ginee, holding the lease `run_id`.

    Writes exactly one sync_all log entry and releases the lease afterwards,
    whatever happens in between.
    """
    mode = "dry run" if dry_run else "live"
    items: List[ItemResult] = []
    payload_sent = {"runId": run_id, "dryRun": dry_run}
    error: Optional[str] = None
    outcome = SyncLogStatus.FAILED

    try:
        try:
            products = await db.get_active_products()
            payload_sent["productCount"] = len(products)
            logger.info(f"Starting sync-all ({mode}) for {len(products)} products (run: {run_id})")

            try:
                await client.health_check()
            except Exception as e:
                raise RuntimeError(f"Ginee unreachable: {e}") from e

            links = await db.get_links(p.id for p in products)

            for product in products:
                link = links.get(product.id)
                if link is None or not link.is_linked:
                    items.append(ItemResult(product.id, product.name, ITEM_SKIPPED))
                    continue

                items.append(await reconcile_product(db, client, product, link, dry_run))

                if not await db.renew_lease(SYNC_ALL_LEASE, run_id, lease_ttl_seconds):
                    error = "Sync lease lost; run stopped early"
                    logger.warning(f"Sync-all {run_id}: lease lost, stopping")
                    break

            outcome = classify_outcome(items)
            if error and outcome == SyncLogStatus.COMPLETED:
                outcome = SyncLogStatus.PARTIAL

        except Exception as e:
            logger.exception(f"Sync-all {run_id} aborted")
            error = str(e)
            processed = any(item.succeeded for item in items)
            outcome = SyncLogStatus.PARTIAL if processed else SyncLogStatus.FAILED

        result = SyncAllResult(
            run_id=run_id,
            dry_run=dry_run,
            outcome=outcome,
            items=items,
            log=None,
            error=error,
        )

        result.log = await db.commit_sync(
            log=SyncLog(
                type=SyncLogType.SYNC_ALL,
                status=outcome,
                error_message=error,
                payload_sent=payload_sent,
                response_received={
                    "summary": result.summary,
                    "items": [item.to_dict() for item in items],
                },
            )
        )

        summary = result.summary
        logger.info(
            f"Sync-all ({mode}) {outcome.value}: {summary['updated']} updated, "
            f"{summary['unchanged']} unchanged, {summary['failed']} failed, "
            f"{summary['skipped']} skipped"
        )
        return result

    finally:
        await db.release_lease(SYNC_ALL_LEASE, run_id)


async def _run_in_background(
    db: SQLiteDatabase,
    client_factory: Callable[[], GineeClient],
    run_id: str,
    dry_run: bool,
    lease_ttl_seconds: int
) -> Optional[SyncAllResult]:
    client = None
    try:
        client = client_factory()
        return await run_sync_all(db, client, run_id, dry_run, lease_ttl_seconds)
    except Exception:
        logger.exception(f"Sync-all {run_id} crashed")
        await db.release_lease(SYNC_ALL_LEASE, run_id)
        return None
    finally:
        if client:
            await client.close()


async def _acquire(
    db: SQLiteDatabase,
    dry_run: bool,
    live_sync_enabled: bool,
    lease_ttl_seconds: int
) -> StartResult:
    mode = SyncMode.DRY_RUN if dry_run else SyncMode.LIVE

    if not dry_run and not live_sync_enabled:
        logger.warning("Live sync-all requested but live sync is disabled")
        return StartResult(accepted=False, reason=LIVE_SYNC_DISABLED, mode=mode)

    run_id = generate_uuid()
    lease = await db.acquire_lease(SYNC_ALL_LEASE, run_id, mode, lease_ttl_seconds)
    if lease is None:
        logger.warning("Sync-all requested while another run holds the lease")
        return StartResult(accepted=False, reason=ALREADY_RUNNING, mode=mode)

    return StartResult(accepted=True, run_id=run_id, mode=mode)


async def start_sync_all(
    db: SQLiteDatabase,
    client_factory: Callable[[], GineeClient],
    dry_run: bool,
    live_sync_enabled: bool = True,
    lease_ttl_seconds: int = DEFAULT_LEASE_TTL_SECONDS
) -> StartResult:
    """
    Accept or reject a sync-all and return at once.

    The lease is taken here, before the background task exists, so a
    second request made right after this one is rejected. Completion is
    observable only through the sync log.
    """
    start = await _acquire(db, dry_run, live_sync_enabled, lease_ttl_seconds)
    if not start.accepted:
        return start

    task = asyncio.create_task(
        _run_in_background(db, client_factory, start.run_id, dry_run, lease_ttl_seconds)
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return start


async def run_sync_all_now(
    db: SQLiteDatabase,
    client: GineeClient,
    dry_run: bool,
    live_sync_enabled: bool = True,
    lease_ttl_seconds: int = DEFAULT_LEASE_TTL_SECONDS
) -> SyncAllResult:
    """
    Foreground variant for the cron script.

    Raises:
        SyncAllRejected: If live sync is disabled or another run holds the lease
    """
    start = await _acquire(db, dry_run, live_sync_enabled, lease_ttl_seconds)
    if not start.accepted:
        raise SyncAllRejected(start.reason)
    return await run_sync_all(db, client, start.run_id, dry_run, lease_ttl_seconds)


async def get_sync_status(db: SQLiteDatabase) -> dict:
    """Current sync-all lease, if any."""
    lease = await db.get_active_lease(SYNC_ALL_LEASE)
    if lease is None:
        return {"running": False}
    return {
        "running": True,
        "run_id": lease.holder_id,
        "mode": lease.mode.value,
        "started_at": lease.acquired_at,
        "expires_at": lease.expires_at,
    }
