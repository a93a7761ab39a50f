"""
SQLite database implementation.
Simple and direct - no abstraction layers.
"""

import aiosqlite
import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Dict, Iterable, List, Optional
import os

from .models import (
    Order, OrderEvent, OrderFilters, OrderPage, OrderPageMeta, OrderStatus,
    Product, ProductVariant, VariantUpdate, MarketplaceLink, LinkSyncStatus,
    SyncLog, SyncLogPage, SyncLogType, SyncLogStatus, SyncLease, SyncMode,
    PageMeta, last_page_for,
)


ORDER_SORT_COLUMNS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "order_number": "order_number",
    "total": "total",
    "status": "status",
}


def _to_str(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp, dropping tzinfo to avoid comparison issues."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    return parsed


def _dump_json(value) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _load_json(value: Optional[str]):
    if value is None:
        return None
    return json.loads(value)


class SQLiteDatabase:
    """SQLite database for all operations."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
        return self._connection

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialize writers on the shared connection; commit or roll back as a unit."""
        conn = await self._get_connection()
        async with self._write_lock:
            try:
                yield conn
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

    async def initialize(self) -> None:
        """Create database tables."""
        conn = await self._get_connection()

        await conn.executescript("""
            CREATE TABLE IF NOT EXISTS orders (
                id TEXT PRIMARY KEY,
                order_number TEXT NOT NULL UNIQUE,
                status TEXT NOT NULL,
                payment_method TEXT NOT NULL,
                payment_status TEXT NOT NULL,
                subtotal INTEGER NOT NULL,
                shipping_cost INTEGER NOT NULL,
                discount_amount INTEGER NOT NULL DEFAULT 0,
                total INTEGER NOT NULL,
                voucher_code TEXT,
                notes TEXT,
                customer_name TEXT NOT NULL,
                customer_email TEXT NOT NULL,
                user_json TEXT NOT NULL,
                address_json TEXT NOT NULL,
                courier_json TEXT NOT NULL,
                items_json TEXT NOT NULL,
                tracking_number TEXT,
                cancelled_at TEXT,
                created_at TEXT NOT NULL,
                paid_at TEXT,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS order_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                order_id TEXT NOT NULL,
                from_status TEXT NOT NULL,
                to_status TEXT NOT NULL,
                tracking_number TEXT,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (order_id) REFERENCES orders(id)
            );

            CREATE TABLE IF NOT EXISTS products (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                sku TEXT NOT NULL UNIQUE,
                base_price INTEGER NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                variants_json TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS marketplace_links (
                product_id TEXT PRIMARY KEY,
                external_id TEXT UNIQUE,
                sync_status TEXT,
                last_synced_at TEXT,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (product_id) REFERENCES products(id)
            );

            CREATE TABLE IF NOT EXISTS sync_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL,
                status TEXT NOT NULL,
                error_message TEXT,
                payload_sent TEXT,
                response_received TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS sync_leases (
                name TEXT PRIMARY KEY,
                holder_id TEXT NOT NULL,
                mode TEXT NOT NULL,
                acquired_at TEXT NOT NULL,
                expires_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);
            CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at DESC);
            CREATE INDEX IF NOT EXISTS idx_order_events_order_id ON order_events(order_id);
            CREATE INDEX IF NOT EXISTS idx_sync_logs_type ON sync_logs(type);
            CREATE INDEX IF NOT EXISTS idx_sync_logs_created_at ON sync_logs(created_at DESC);
        """)
        await conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    # ===== Helper Methods =====

    def _row_to_order(self, row: aiosqlite.Row) -> Order:
        return Order(
            id=row["id"],
            order_number=row["order_number"],
            status=OrderStatus(row["status"]),
            payment_method=row["payment_method"],
            payment_status=row["payment_status"],
            subtotal=row["subtotal"],
            shipping_cost=row["shipping_cost"],
            discount_amount=row["discount_amount"],
            total=row["total"],
            voucher_code=row["voucher_code"],
            notes=row["notes"],
            user=json.loads(row["user_json"]),
            address=json.loads(row["address_json"]),
            courier=json.loads(row["courier_json"]),
            items=json.loads(row["items_json"]),
            tracking_number=row["tracking_number"],
            cancelled_at=_parse_dt(row["cancelled_at"]),
            created_at=_parse_dt(row["created_at"]),
            paid_at=_parse_dt(row["paid_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    def _row_to_event(self, row: aiosqlite.Row) -> OrderEvent:
        return OrderEvent(
            order_id=row["order_id"],
            from_status=OrderStatus(row["from_status"]),
            to_status=OrderStatus(row["to_status"]),
            tracking_number=row["tracking_number"],
            notes=row["notes"],
            created_at=_parse_dt(row["created_at"]),
        )

    def _row_to_product(self, row: aiosqlite.Row) -> Product:
        return Product(
            id=row["id"],
            name=row["name"],
            sku=row["sku"],
            base_price=row["base_price"],
            is_active=bool(row["is_active"]),
            variants=[ProductVariant(**v) for v in json.loads(row["variants_json"])],
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    def _row_to_link(self, row: aiosqlite.Row) -> MarketplaceLink:
        return MarketplaceLink(
            product_id=row["product_id"],
            external_id=row["external_id"],
            sync_status=LinkSyncStatus(row["sync_status"]) if row["sync_status"] else None,
            last_synced_at=_parse_dt(row["last_synced_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    def _row_to_log(self, row: aiosqlite.Row) -> SyncLog:
        return SyncLog(
            id=row["id"],
            type=SyncLogType(row["type"]),
            status=SyncLogStatus(row["status"]),
            error_message=row["error_message"],
            payload_sent=_load_json(row["payload_sent"]),
            response_received=_load_json(row["response_received"]),
            created_at=_parse_dt(row["created_at"]),
        )

    def _row_to_lease(self, row: aiosqlite.Row) -> SyncLease:
        return SyncLease(
            name=row["name"],
            holder_id=row["holder_id"],
            mode=SyncMode(row["mode"]),
            acquired_at=_parse_dt(row["acquired_at"]),
            expires_at=_parse_dt(row["expires_at"]),
        )

    # ===== Order Operations =====

    async def create_order(self, order: Order) -> Order:
        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO orders (id, order_number, status, payment_method, payment_status,
                                    subtotal, shipping_cost, discount_amount, total,
                                    voucher_code, notes, customer_name, customer_email,
                                    user_json, address_json, courier_json, items_json,
                                    tracking_number, cancelled_at, created_at, paid_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    order.id,
                    order.order_number,
                    order.status.value,
                    order.payment_method.value,
                    order.payment_status.value,
                    order.subtotal,
                    order.shipping_cost,
                    order.discount_amount,
                    order.total,
                    order.voucher_code,
                    order.notes,
                    order.user.name,
                    order.user.email,
                    order.user.model_dump_json(),
                    order.address.model_dump_json(),
                    order.courier.model_dump_json(),
                    json.dumps([item.model_dump() for item in order.items]),
                    order.tracking_number,
                    _to_str(order.cancelled_at),
                    _to_str(order.created_at),
                    _to_str(order.paid_at),
                    _to_str(order.updated_at),
                )
            )
        return order

    async def get_order(self, order_id: str) -> Optional[Order]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,))
        row = await cursor.fetchone()
        return self._row_to_order(row) if row else None

    async def get_order_events(self, order_id: str) -> List[OrderEvent]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM order_events WHERE order_id = ? ORDER BY id",
            (order_id,)
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def list_orders(
        self,
        filters: Optional[OrderFilters] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc"
    ) -> OrderPage:
        filters = filters or OrderFilters()
        conn = await self._get_connection()

        where = " WHERE 1=1"
        params: list = []

        if filters.status:
            where += " AND status = ?"
            params.append(filters.status.value)

        if filters.payment_method:
            where += " AND payment_method = ?"
            params.append(filters.payment_method.value)

        if filters.search:
            where += " AND (order_number LIKE ? OR customer_name LIKE ? OR customer_email LIKE ?)"
            pattern = f"%{filters.search}%"
            params.extend([pattern, pattern, pattern])

        if filters.start_date:
            where += " AND created_at >= ?"
            params.append(_to_str(filters.start_date))

        if filters.end_date:
            where += " AND created_at <= ?"
            params.append(_to_str(filters.end_date))

        cursor = await conn.execute(f"SELECT COUNT(*) FROM orders{where}", params)
        total = (await cursor.fetchone())[0]

        column = ORDER_SORT_COLUMNS.get(sort_by, "created_at")
        direction = "ASC" if sort_order.lower() == "asc" else "DESC"
        offset = (page - 1) * limit

        cursor = await conn.execute(
            f"SELECT * FROM orders{where} ORDER BY {column} {direction}, id {direction} LIMIT ? OFFSET ?",
            params + [limit, offset]
        )
        rows = await cursor.fetchall()

        last_page = last_page_for(total, limit)
        return OrderPage(
            data=[self._row_to_order(row) for row in rows],
            meta=OrderPageMeta(
                total=total,
                page=page,
                limit=limit,
                last_page=last_page,
                has_next_page=page < last_page,
                has_prev_page=page > 1,
            )
        )

    async def update_order_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        tracking_number: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Optional[Order]:
        """
        Compare-and-set the status of an order.

        Returns the updated order, or None when the stored status no longer
        equals expected_status (another writer got there first).
        """
        now = now or datetime.utcnow()

        async with self._transaction() as conn:
            cursor = await conn.execute(
                "SELECT courier_json FROM orders WHERE id = ? AND status = ?",
                (order_id, expected_status.value)
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            courier = json.loads(row["courier_json"])
            if tracking_number is not None:
                courier["tracking_number"] = tracking_number

            cursor = await conn.execute(
                """
                UPDATE orders
                SET status = ?,
                    courier_json = ?,
                    tracking_number = COALESCE(?, tracking_number),
                    cancelled_at = CASE WHEN ? = 'CANCELLED' THEN ? ELSE cancelled_at END,
                    updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    new_status.value,
                    json.dumps(courier),
                    tracking_number,
                    new_status.value,
                    _to_str(now),
                    _to_str(now),
                    order_id,
                    expected_status.value,
                )
            )
            if cursor.rowcount == 0:
                return None

            await conn.execute(
                """
                INSERT INTO order_events (order_id, from_status, to_status, tracking_number, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (order_id, expected_status.value, new_status.value, tracking_number, notes, _to_str(now))
            )

        return await self.get_order(order_id)

    # ===== Product Operations =====

    async def create_product(self, product: Product) -> Product:
        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO products (id, name, sku, base_price, is_active, variants_json,
                                      created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    product.id,
                    product.name,
                    product.sku,
                    product.base_price,
                    int(product.is_active),
                    json.dumps([v.model_dump() for v in product.variants]),
                    _to_str(product.created_at),
                    _to_str(product.updated_at),
                )
            )
        return product

    async def get_product(self, product_id: str) -> Optional[Product]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM products WHERE id = ?", (product_id,))
        row = await cursor.fetchone()
        return self._row_to_product(row) if row else None

    async def get_active_products(self) -> List[Product]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM products WHERE is_active = 1 ORDER BY name")
        rows = await cursor.fetchall()
        return [self._row_to_product(row) for row in rows]

    # ===== Marketplace Link Operations =====

    async def get_link(self, product_id: str) -> Optional[MarketplaceLink]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM marketplace_links WHERE product_id = ?", (product_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_link(row) if row else None

    async def get_links(self, product_ids: Iterable[str]) -> Dict[str, MarketplaceLink]:
        ids = list(product_ids)
        if not ids:
            return {}
        conn = await self._get_connection()
        placeholders = ", ".join("?" for _ in ids)
        cursor = await conn.execute(
            f"SELECT * FROM marketplace_links WHERE product_id IN ({placeholders})", ids
        )
        rows = await cursor.fetchall()
        return {row["product_id"]: self._row_to_link(row) for row in rows}

    async def mark_links_pending(self, product_ids: Iterable[str]) -> None:
        """Flag products as having a push/pull in flight."""
        ids = list(product_ids)
        if not ids:
            return
        now = _to_str(datetime.utcnow())
        async with self._transaction() as conn:
            for product_id in ids:
                await conn.execute(
                    """
                    INSERT INTO marketplace_links (product_id, external_id, sync_status, updated_at)
                    VALUES (?, NULL, ?, ?)
                    ON CONFLICT(product_id) DO UPDATE SET
                        sync_status = excluded.sync_status,
                        updated_at = excluded.updated_at
                    """,
                    (product_id, LinkSyncStatus.PENDING.value, now)
                )

    # ===== Sync Commit =====

    async def commit_sync(
        self,
        log: Optional[SyncLog] = None,
        variant_updates: Iterable[VariantUpdate] = (),
        links: Iterable[MarketplaceLink] = ()
    ) -> Optional[SyncLog]:
        """
        Write the outcome of a sync step in one transaction.

        Variant fields, link state and the log entry are committed
        together, so the link badge never disagrees with the log. Variant
        updates are applied to the row as stored now, touching only the
        named SKU fields.
        """
        now = datetime.utcnow()
        log_id = None

        by_product: Dict[str, List[VariantUpdate]] = {}
        for update in variant_updates:
            by_product.setdefault(update.product_id, []).append(update)

        async with self._transaction() as conn:
            for product_id, updates in by_product.items():
                cursor = await conn.execute(
                    "SELECT variants_json FROM products WHERE id = ?", (product_id,)
                )
                row = await cursor.fetchone()
                if row is None:
                    continue

                variants = json.loads(row["variants_json"])
                by_sku = {v["sku"]: v for v in variants}
                for update in updates:
                    if update.sku in by_sku:
                        by_sku[update.sku][update.field] = update.value

                await conn.execute(
                    "UPDATE products SET variants_json = ?, updated_at = ? WHERE id = ?",
                    (json.dumps(variants), _to_str(now), product_id)
                )

            for link in links:
                await conn.execute(
                    """
                    INSERT INTO marketplace_links (product_id, external_id, sync_status,
                                                   last_synced_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(product_id) DO UPDATE SET
                        external_id = COALESCE(excluded.external_id, marketplace_links.external_id),
                        sync_status = excluded.sync_status,
                        last_synced_at = COALESCE(excluded.last_synced_at, marketplace_links.last_synced_at),
                        updated_at = excluded.updated_at
                    """,
                    (
                        link.product_id,
                        link.external_id,
                        link.sync_status.value if link.sync_status else None,
                        _to_str(link.last_synced_at),
                        _to_str(now),
                    )
                )

            if log is not None:
                cursor = await conn.execute(
                    """
                    INSERT INTO sync_logs (type, status, error_message, payload_sent,
                                           response_received, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        log.type.value,
                        log.status.value,
                        log.error_message,
                        _dump_json(log.payload_sent),
                        _dump_json(log.response_received),
                        _to_str(log.created_at),
                    )
                )
                log_id = cursor.lastrowid

        if log_id is None:
            return None
        return await self.get_log(log_id)

    # ===== Log Operations =====

    async def get_logs(
        self,
        type: Optional[SyncLogType] = None,
        status: Optional[SyncLogStatus] = None,
        page: int = 1,
        limit: int = 20
    ) -> SyncLogPage:
        conn = await self._get_connection()

        where = " WHERE 1=1"
        params: list = []

        if type:
            where += " AND type = ?"
            params.append(type.value)

        if status:
            where += " AND status = ?"
            params.append(status.value)

        cursor = await conn.execute(f"SELECT COUNT(*) FROM sync_logs{where}", params)
        total = (await cursor.fetchone())[0]

        cursor = await conn.execute(
            f"SELECT * FROM sync_logs{where} ORDER BY id DESC LIMIT ? OFFSET ?",
            params + [limit, (page - 1) * limit]
        )
        rows = await cursor.fetchall()

        return SyncLogPage(
            data=[self._row_to_log(row) for row in rows],
            meta=PageMeta(
                total=total,
                page=page,
                limit=limit,
                last_page=last_page_for(total, limit),
            )
        )

    async def get_log(self, log_id: int) -> Optional[SyncLog]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM sync_logs WHERE id = ?", (log_id,))
        row = await cursor.fetchone()
        return self._row_to_log(row) if row else None

    async def count_logs(self) -> int:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT COUNT(*) FROM sync_logs")
        return (await cursor.fetchone())[0]

    # ===== Lease Operations =====

    async def acquire_lease(
        self,
        name: str,
        holder_id: str,
        mode: SyncMode,
        ttl_seconds: int,
        now: Optional[datetime] = None
    ) -> Optional[SyncLease]:
        """
        Take the named lease if it is free or expired.

        Returns the lease on success, None while another holder owns it.
        """
        now = now or datetime.utcnow()
        expires_at = now + timedelta(seconds=ttl_seconds)

        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO sync_leases (name, holder_id, mode, acquired_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    holder_id = excluded.holder_id,
                    mode = excluded.mode,
                    acquired_at = excluded.acquired_at,
                    expires_at = excluded.expires_at
                WHERE sync_leases.expires_at <= ?
                """,
                (name, holder_id, mode.value, _to_str(now), _to_str(expires_at), _to_str(now))
            )
            cursor = await conn.execute("SELECT * FROM sync_leases WHERE name = ?", (name,))
            row = await cursor.fetchone()

        if row is None or row["holder_id"] != holder_id:
            return None
        return self._row_to_lease(row)

    async def renew_lease(
        self,
        name: str,
        holder_id: str,
        ttl_seconds: int,
        now: Optional[datetime] = None
    ) -> bool:
        now = now or datetime.utcnow()
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "UPDATE sync_leases SET expires_at = ? WHERE name = ? AND holder_id = ?",
                (_to_str(now + timedelta(seconds=ttl_seconds)), name, holder_id)
            )
            return cursor.rowcount > 0

    async def release_lease(self, name: str, holder_id: str) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM sync_leases WHERE name = ? AND holder_id = ?",
                (name, holder_id)
            )
            return cursor.rowcount > 0

    async def get_active_lease(
        self,
        name: str,
        now: Optional[datetime] = None
    ) -> Optional[SyncLease]:
        now = now or datetime.utcnow()
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM sync_leases WHERE name = ? AND expires_at > ?",
            (name, _to_str(now))
        )
        row = await cursor.fetchone()
        return self._row_to_lease(row) if row else None
