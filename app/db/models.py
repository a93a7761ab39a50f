"""
Pydantic models for database entities.
Orders and sync logs carry JSON snapshots; money is whole rupiah.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, Field, model_validator
import uuid


class OrderStatus(str, Enum):
    """Fulfillment status of an order."""
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    GOPAY = "gopay"
    QRIS = "qris"
    CREDIT_CARD = "credit_card"
    COD = "cod"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"
    REFUNDED = "refunded"


class SyncLogType(str, Enum):
    """Kind of marketplace operation a log entry records."""
    PULL_STOCK = "pull_stock"
    PUSH_ORDER = "push_order"
    PULL_PRODUCT = "pull_product"
    PUSH_PRODUCT = "push_product"
    SYNC_ALL = "sync_all"


class SyncLogStatus(str, Enum):
    """Outcome of a sync attempt."""
    SUCCESS = "success"
    FAILED = "failed"
    COMPLETED = "completed"
    PARTIAL = "partial"


class LinkSyncStatus(str, Enum):
    """Last recorded outcome of a push/pull against a product."""
    SYNCED = "synced"
    PENDING = "pending"
    FAILED = "failed"


class SyncBadge(str, Enum):
    """What the product list shows in its Ginee column."""
    UNLINKED = "unlinked"
    SYNCED = "synced"
    PENDING = "pending"
    FAILED = "failed"


class SyncMode(str, Enum):
    DRY_RUN = "dry_run"
    LIVE = "live"


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


# ===== Orders =====

class OrderUser(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None


class OrderAddress(BaseModel):
    recipient_name: str
    phone: str
    street: str
    subdistrict: str
    city: str
    province: str
    postal_code: str
    notes: Optional[str] = None


class CourierInfo(BaseModel):
    name: str  # e.g. "JNE"
    service: str  # e.g. "REG"
    cost: int
    tracking_number: Optional[str] = None
    estimated_days: Optional[int] = None


class OrderItem(BaseModel):
    """Snapshot of a purchased variant. Never changes after checkout."""
    model_config = {"frozen": True}

    id: str = Field(default_factory=generate_uuid)
    product_name: str
    variant_sku: str
    size: str
    color: Optional[str] = None
    quantity: int
    unit_price: int
    subtotal: int


class OrderEvent(BaseModel):
    """One accepted status transition."""
    order_id: str
    from_status: OrderStatus
    to_status: OrderStatus
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Order(BaseModel):
    """An order with its checkout-time snapshots."""
    id: str = Field(default_factory=generate_uuid)
    order_number: str
    status: OrderStatus = OrderStatus.PENDING_PAYMENT
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING

    subtotal: int
    shipping_cost: int
    discount_amount: int = 0
    total: int

    voucher_code: Optional[str] = None
    notes: Optional[str] = None

    user: OrderUser
    address: OrderAddress
    courier: CourierInfo
    items: List[OrderItem] = Field(default_factory=list)

    tracking_number: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    paid_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def check_total(self) -> "Order":
        expected = self.subtotal + self.shipping_cost - self.discount_amount
        if self.total != expected:
            raise ValueError(
                f"total {self.total} does not equal subtotal + shipping_cost "
                f"- discount_amount ({expected})"
            )
        return self


class OrderFilters(BaseModel):
    status: Optional[OrderStatus] = None
    payment_method: Optional[PaymentMethod] = None
    search: Optional[str] = None  # order number, customer name or email
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


# ===== Products and marketplace links =====

class ProductVariant(BaseModel):
    id: str = Field(default_factory=generate_uuid)
    sku: str
    size: str
    price: int
    stock: int = 0


class Product(BaseModel):
    """Local catalog product (managed by the catalog CRUD, read here)."""
    id: str = Field(default_factory=generate_uuid)
    name: str
    sku: str
    base_price: int
    is_active: bool = True
    variants: List[ProductVariant] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class VariantUpdate(BaseModel):
    """New value for one field of one variant, matched by SKU."""
    product_id: str
    sku: str
    field: Literal["stock", "price"]
    value: int


class MarketplaceLink(BaseModel):
    """Mapping of a local product to its Ginee listing."""
    product_id: str
    external_id: Optional[str] = None
    sync_status: Optional[LinkSyncStatus] = None
    last_synced_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_linked(self) -> bool:
        return self.external_id is not None


# ===== Sync logs and leases =====

class SyncLog(BaseModel):
    """An immutable record of one synchronization attempt."""
    id: Optional[int] = None
    type: SyncLogType
    status: SyncLogStatus
    error_message: Optional[str] = None
    payload_sent: Optional[Any] = None
    response_received: Optional[Any] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class SyncLease(BaseModel):
    """Holder of the single full-catalog sync slot."""
    name: str
    holder_id: str
    mode: SyncMode
    acquired_at: datetime
    expires_at: datetime


# ===== Pagination =====

class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    last_page: int


class OrderPageMeta(PageMeta):
    has_next_page: bool
    has_prev_page: bool


class OrderPage(BaseModel):
    data: List[Order]
    meta: OrderPageMeta


class SyncLogPage(BaseModel):
    data: List[SyncLog]
    meta: PageMeta


def last_page_for(total: int, limit: int) -> int:
    """Number of the last page; an empty result still has page 1."""
    return max(1, -(-total // limit))
