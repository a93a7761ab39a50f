"""
Single-product and single-order sync operations against Ginee.

Each operation writes exactly one sync log entry when it completes,
successful or not, in the same transaction as the product and link
changes it commits. Local validation failures are raised before any
remote call and are not logged.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..db import (
    SQLiteDatabase, Product, MarketplaceLink, LinkSyncStatus, SyncBadge,
    SyncLog, SyncLogType, SyncLogStatus, VariantUpdate,
)
from ..ginee import (
    GineeClient, build_product_payload, build_order_payload,
    parse_product, parse_created_product_id, parse_stocks,
)
from .orders import OrderNotFound
from .reconcile import (
    compute_variant_changes, compute_stock_changes,
    find_unmatched_skus, summarize_changes, to_variant_updates,
)
from .rules import MARKETPLACE_ORDER_STATUSES

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """A sync operation failed after reaching Ginee. The failure is logged."""

    def __init__(self, message: str, log: Optional[SyncLog] = None):
        super().__init__(message)
        self.log = log


class ProductNotFound(LookupError):
    """No product with the given id."""
    pass


class UnlinkedProduct(Exception):
    """Pull requested for a product that has no Ginee product id."""

    def __init__(self, product: Product):
        self.product_id = product.id
        super().__init__(
            f"Product '{product.name}' is not linked to Ginee yet. Push it to Ginee first."
        )


class OrderNotPushable(Exception):
    """Order is in a status Ginee does not track."""
    pass


def _error_response(error: Exception):
    """What to store as the response of a failed call."""
    return getattr(error, "response", None)


async def _get_product(db: SQLiteDatabase, product_id: str) -> Product:
    product = await db.get_product(product_id)
    if product is None:
        raise ProductNotFound(f"Product not found: {product_id}")
    return product


async def _commit_outcome(
    db: SQLiteDatabase,
    log: SyncLog,
    product_ids: Iterable[str],
    variant_updates: Iterable[VariantUpdate] = (),
    links: Iterable[MarketplaceLink] = ()
) -> SyncLog:
    """
    Commit the result of a call Ginee already answered.

    When the local write is rejected, the remote side has still changed,
    so a failed entry carrying the Ginee response is written on its own
    and the links are marked failed.
    """
    product_ids = list(product_ids)
    try:
        return await db.commit_sync(log=log, variant_updates=variant_updates, links=links)
    except Exception as e:
        logger.error(f"Saving {log.type.value} result failed after Ginee answered: {e}")
        failed = await db.commit_sync(
            log=log.model_copy(update={
                "status": SyncLogStatus.FAILED,
                "error_message": f"Ginee call succeeded but the local save failed: {e}",
            }),
            links=[
                MarketplaceLink(product_id=pid, sync_status=LinkSyncStatus.FAILED)
                for pid in product_ids
            ],
        )
        raise SyncError(f"Ginee call succeeded but the local save failed: {e}", log=failed) from e


async def get_sync_badge(db: SQLiteDatabase, product_id: str) -> SyncBadge:
    """
    Badge for the product list.

    Unlinked until a push has assigned a Ginee id; afterwards the last
    recorded outcome, pending when nothing has been recorded yet.
    """
    await _get_product(db, product_id)
    link = await db.get_link(product_id)

    if link is None or not link.is_linked:
        return SyncBadge.UNLINKED
    if link.sync_status is None:
        return SyncBadge.PENDING
    return SyncBadge(link.sync_status.value)


async def push_product(
    db: SQLiteDatabase,
    client: GineeClient,
    product_id: str
) -> SyncLog:
    """
    Create or update the Ginee listing of a local product.

    The first successful push stores the Ginee product id on the link.
    """
    product = await _get_product(db, product_id)
    link = await db.get_link(product_id)
    external_id = link.external_id if link else None

    payload = build_product_payload(product)
    payload_sent = {"productId": product.id, "externalId": external_id, "product": payload}

    await db.mark_links_pending([product.id])

    try:
        if external_id:
            response = await client.update_product(external_id, payload)
        else:
            response = await client.create_product(payload)
            external_id = parse_created_product_id(response)
    except Exception as e:
        logger.error(f"Push failed for product '{product.name}': {e}")
        log = await db.commit_sync(
            log=SyncLog(
                type=SyncLogType.PUSH_PRODUCT,
                status=SyncLogStatus.FAILED,
                error_message=str(e),
                payload_sent=payload_sent,
                response_received=_error_response(e),
            ),
            links=[MarketplaceLink(product_id=product.id, sync_status=LinkSyncStatus.FAILED)],
        )
        raise SyncError(f"Push to Ginee failed: {e}", log=log) from e

    logger.info(f"Pushed product '{product.name}' to Ginee as {external_id}")
    return await _commit_outcome(
        db,
        SyncLog(
            type=SyncLogType.PUSH_PRODUCT,
            status=SyncLogStatus.SUCCESS,
            payload_sent=payload_sent,
            response_received=response,
        ),
        [product.id],
        links=[MarketplaceLink(
            product_id=product.id,
            external_id=external_id,
            sync_status=LinkSyncStatus.SYNCED,
            last_synced_at=datetime.utcnow(),
        )],
    )


async def pull_product(
    db: SQLiteDatabase,
    client: GineeClient,
    product_id: str
) -> SyncLog:
    """
    Overwrite local variant stock and price from the Ginee listing.

    Raises:
        ProductNotFound: If the product does not exist
        UnlinkedProduct: If the product has no Ginee id (no remote call made)
        SyncError: If Ginee failed; the failure is logged
    """
    product = await _get_product(db, product_id)
    link = await db.get_link(product_id)
    if link is None or not link.is_linked:
        raise UnlinkedProduct(product)

    payload_sent = {"productId": product.id, "externalId": link.external_id}
    await db.mark_links_pending([product.id])

    try:
        response = await client.get_product(link.external_id)
        remote = parse_product(response)
        changes = compute_variant_changes(product, remote)
    except Exception as e:
        logger.error(f"Pull failed for product '{product.name}': {e}")
        log = await db.commit_sync(
            log=SyncLog(
                type=SyncLogType.PULL_PRODUCT,
                status=SyncLogStatus.FAILED,
                error_message=str(e),
                payload_sent=payload_sent,
                response_received=_error_response(e),
            ),
            links=[MarketplaceLink(product_id=product.id, sync_status=LinkSyncStatus.FAILED)],
        )
        raise SyncError(f"Pull from Ginee failed: {e}", log=log) from e

    summary = summarize_changes(changes)
    unmatched = find_unmatched_skus(product, remote)
    if unmatched:
        logger.warning(f"Product '{product.name}' has SKUs unknown to Ginee: {', '.join(unmatched)}")

    logger.info(
        f"Pulled product '{product.name}' from Ginee: "
        f"{summary['stock']} stock, {summary['price']} price changes"
    )
    return await _commit_outcome(
        db,
        SyncLog(
            type=SyncLogType.PULL_PRODUCT,
            status=SyncLogStatus.SUCCESS,
            payload_sent=payload_sent,
            response_received={
                "product": response,
                "changes": [c.to_dict() for c in changes],
                "summary": summary,
                "unmatchedSkus": unmatched or [],
            },
        ),
        [product.id],
        variant_updates=to_variant_updates(product, changes),
        links=[MarketplaceLink(
            product_id=product.id,
            sync_status=LinkSyncStatus.SYNCED,
            last_synced_at=datetime.utcnow(),
        )],
    )


async def pull_stock(
    db: SQLiteDatabase,
    client: GineeClient,
    product_ids: Optional[Iterable[str]] = None
) -> SyncLog:
    """
    Refresh variant stock for some products, or every active one.

    Unlinked products are skipped. Products Ginee does not return are
    marked failed; the log is `partial` when only some came back.
    """
    if product_ids is None:
        products = await db.get_active_products()
        explicit = False
    else:
        products = [await _get_product(db, pid) for pid in product_ids]
        explicit = True

    links = await db.get_links(p.id for p in products)
    linked: List[Product] = [p for p in products if p.id in links and links[p.id].is_linked]
    linked_ids = {p.id for p in linked}
    skipped = [p.id for p in products if p.id not in linked_ids]

    if explicit and products and not linked:
        raise UnlinkedProduct(products[0])

    external_ids = {p.id: links[p.id].external_id for p in linked}
    payload_sent = {"productIds": list(external_ids.values()), "skipped": skipped}

    await db.mark_links_pending(external_ids.keys())

    try:
        response = await client.get_stocks(list(external_ids.values())) if linked else []
        stocks = parse_stocks(response)
    except Exception as e:
        logger.error(f"Stock pull failed: {e}")
        log = await db.commit_sync(
            log=SyncLog(
                type=SyncLogType.PULL_STOCK,
                status=SyncLogStatus.FAILED,
                error_message=str(e),
                payload_sent=payload_sent,
                response_received=_error_response(e),
            ),
            links=[
                MarketplaceLink(product_id=p.id, sync_status=LinkSyncStatus.FAILED)
                for p in linked
            ],
        )
        raise SyncError(f"Stock pull from Ginee failed: {e}", log=log) from e

    now = datetime.utcnow()
    variant_updates: List[VariantUpdate] = []
    new_links: List[MarketplaceLink] = []
    changes_by_product: Dict[str, list] = {}
    missing: List[str] = []

    for product in linked:
        per_sku = stocks.get(external_ids[product.id])
        if per_sku is None:
            missing.append(product.id)
            new_links.append(MarketplaceLink(product_id=product.id, sync_status=LinkSyncStatus.FAILED))
            continue

        changes = compute_stock_changes(product, per_sku)
        if changes:
            variant_updates.extend(to_variant_updates(product, changes))
            changes_by_product[product.id] = [c.to_dict() for c in changes]
        new_links.append(MarketplaceLink(
            product_id=product.id,
            sync_status=LinkSyncStatus.SYNCED,
            last_synced_at=now,
        ))

    if not missing:
        status = SyncLogStatus.SUCCESS
    elif len(missing) < len(linked):
        status = SyncLogStatus.PARTIAL
    else:
        status = SyncLogStatus.FAILED

    error_message = f"{len(missing)} products not found in Ginee" if missing else None
    log = await _commit_outcome(
        db,
        SyncLog(
            type=SyncLogType.PULL_STOCK,
            status=status,
            error_message=error_message,
            payload_sent=payload_sent,
            response_received={
                "stocks": response,
                "changes": changes_by_product,
                "missing": missing,
            },
        ),
        linked_ids,
        variant_updates=variant_updates,
        links=new_links,
    )

    logger.info(
        f"Stock pull {status.value}: {len(linked) - len(missing)} refreshed, "
        f"{len(missing)} missing, {len(skipped)} unlinked"
    )

    if status == SyncLogStatus.FAILED:
        raise SyncError(f"Stock pull from Ginee failed: {error_message}", log=log)
    return log


async def push_order(
    db: SQLiteDatabase,
    client: GineeClient,
    order_id: str
) -> SyncLog:
    """
    Forward an order's fulfillment data to Ginee.

    Raises:
        OrderNotFound: If the order does not exist
        OrderNotPushable: If the order status is not tracked by Ginee
        SyncError: If Ginee failed; the failure is logged
    """
    order = await db.get_order(order_id)
    if order is None:
        raise OrderNotFound(f"Order not found: {order_id}")

    if order.status not in MARKETPLACE_ORDER_STATUSES:
        raise OrderNotPushable(
            f"Order {order.order_number} is {order.status.value} and cannot be pushed to Ginee"
        )

    payload = build_order_payload(order)

    try:
        response = await client.push_order(payload)
    except Exception as e:
        logger.error(f"Order push failed for {order.order_number}: {e}")
        log = await db.commit_sync(
            log=SyncLog(
                type=SyncLogType.PUSH_ORDER,
                status=SyncLogStatus.FAILED,
                error_message=str(e),
                payload_sent=payload,
                response_received=_error_response(e),
            )
        )
        raise SyncError(f"Order push to Ginee failed: {e}", log=log) from e

    logger.info(f"Pushed order {order.order_number} to Ginee")
    return await db.commit_sync(
        log=SyncLog(
            type=SyncLogType.PUSH_ORDER,
            status=SyncLogStatus.SUCCESS,
            payload_sent=payload,
            response_received=response,
        )
    )
