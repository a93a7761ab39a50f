"""
Ginee sync trigger API routes.
"""

from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..config import settings
from ..dependencies import get_db, get_ginee_client, get_ginee_client_factory, require_auth
from ..db import SQLiteDatabase, SyncBadge, SyncLog
from ..ginee import GineeClient
from ..processor import (
    push_product, pull_product, pull_stock, push_order, get_sync_badge,
    start_sync_all, get_sync_status,
    SyncError, ProductNotFound, UnlinkedProduct, OrderNotFound, OrderNotPushable,
)

router = APIRouter(prefix="/api/ginee", dependencies=[Depends(require_auth)])


class ProductRequest(BaseModel):
    product_id: str


class StockRequest(BaseModel):
    product_ids: Optional[List[str]] = None


class OrderRequest(BaseModel):
    order_id: str


class SyncAllRequest(BaseModel):
    dry_run: bool = True


class SyncResponse(BaseModel):
    success: bool
    message: str
    log: Optional[SyncLog] = None


class SyncAllResponse(BaseModel):
    accepted: bool
    message: str
    reason: Optional[str] = None
    run_id: Optional[str] = None
    dry_run: bool


class BadgeResponse(BaseModel):
    product_id: str
    badge: SyncBadge


async def _run(operation, *args) -> SyncLog:
    """Run a sync operation, mapping its failures to HTTP errors."""
    try:
        return await operation(*args)
    except (ProductNotFound, OrderNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (UnlinkedProduct, OrderNotPushable) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except SyncError as e:
        raise HTTPException(
            status_code=502,
            detail={"message": str(e), "log_id": e.log.id if e.log else None},
        )


@router.post("/sync/push-product", response_model=SyncResponse)
async def sync_push_product(
    body: ProductRequest,
    db: SQLiteDatabase = Depends(get_db),
    client: GineeClient = Depends(get_ginee_client),
):
    """Push a local product to Ginee (Local -> Ginee)."""
    log = await _run(push_product, db, client, body.product_id)
    return SyncResponse(success=True, message="Product pushed to Ginee", log=log)


@router.post("/sync/pull-product", response_model=SyncResponse)
async def sync_pull_product(
    body: ProductRequest,
    db: SQLiteDatabase = Depends(get_db),
    client: GineeClient = Depends(get_ginee_client),
):
    """Pull a linked product from Ginee (Ginee -> Local)."""
    log = await _run(pull_product, db, client, body.product_id)
    return SyncResponse(success=True, message="Product pulled from Ginee", log=log)


@router.post("/sync/pull-stock", response_model=SyncResponse)
async def sync_pull_stock(
    body: StockRequest,
    db: SQLiteDatabase = Depends(get_db),
    client: GineeClient = Depends(get_ginee_client),
):
    """Refresh stock for the given products, or all active linked products."""
    log = await _run(pull_stock, db, client, body.product_ids)
    return SyncResponse(
        success=True,
        message=f"Stock pull {log.status.value}",
        log=log,
    )


@router.post("/sync/push-order", response_model=SyncResponse)
async def sync_push_order(
    body: OrderRequest,
    db: SQLiteDatabase = Depends(get_db),
    client: GineeClient = Depends(get_ginee_client),
):
    """Forward an order to Ginee."""
    log = await _run(push_order, db, client, body.order_id)
    return SyncResponse(success=True, message="Order pushed to Ginee", log=log)


@router.post("/sync/all", response_model=SyncAllResponse)
async def sync_all(
    body: SyncAllRequest,
    db: SQLiteDatabase = Depends(get_db),
    client_factory: Callable[[], GineeClient] = Depends(get_ginee_client_factory),
):
    """
    Start a full-catalog sync in the background.

    Returns as soon as the run is accepted; the outcome lands in the sync log.
    A request while another run is in flight is rejected, not queued.
    """
    result = await start_sync_all(
        db,
        client_factory,
        dry_run=body.dry_run,
        live_sync_enabled=settings.ginee_live_sync_enabled,
        lease_ttl_seconds=settings.sync_lease_ttl_seconds,
    )

    if not result.accepted:
        return SyncAllResponse(
            accepted=False,
            message=f"Sync all not started: {result.reason}",
            reason=result.reason,
            dry_run=body.dry_run,
        )

    mode = "Dry run" if body.dry_run else "Sync all"
    return SyncAllResponse(
        accepted=True,
        message=f"{mode} started in the background. Check the Ginee logs for the result.",
        run_id=result.run_id,
        dry_run=body.dry_run,
    )


@router.get("/sync/status")
async def sync_status(db: SQLiteDatabase = Depends(get_db)):
    """Whether a sync-all is currently running."""
    return await get_sync_status(db)


@router.get("/products/{product_id}/badge", response_model=BadgeResponse)
async def product_badge(product_id: str, db: SQLiteDatabase = Depends(get_db)):
    """Link badge shown in the product list."""
    try:
        badge = await get_sync_badge(db, product_id)
    except ProductNotFound:
        raise HTTPException(status_code=404, detail="Product not found")
    return BadgeResponse(product_id=product_id, badge=badge)
