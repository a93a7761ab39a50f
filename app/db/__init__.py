"""
Database package - SQLite only.
"""

from .models import (
    Order, OrderUser, OrderAddress, CourierInfo, OrderItem, OrderEvent,
    OrderFilters, OrderPage, OrderStatus, PaymentMethod, PaymentStatus,
    Product, ProductVariant, VariantUpdate, MarketplaceLink, LinkSyncStatus, SyncBadge,
    SyncLog, SyncLogPage, SyncLogType, SyncLogStatus, SyncLease, SyncMode,
    PageMeta, generate_uuid
)
from .sqlite import SQLiteDatabase

__all__ = [
    "SQLiteDatabase",
    "Order",
    "OrderUser",
    "OrderAddress",
    "CourierInfo",
    "OrderItem",
    "OrderEvent",
    "OrderFilters",
    "OrderPage",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "Product",
    "ProductVariant",
    "VariantUpdate",
    "MarketplaceLink",
    "LinkSyncStatus",
    "SyncBadge",
    "SyncLog",
    "SyncLogPage",
    "SyncLogType",
    "SyncLogStatus",
    "SyncLease",
    "SyncMode",
    "PageMeta",
    "generate_uuid",
]
