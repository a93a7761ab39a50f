"""
Order listing and status routes.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..dependencies import get_db, require_auth
from ..db import (
    SQLiteDatabase, Order, OrderEvent, OrderFilters, OrderPage, OrderStatus, PaymentMethod,
)
from ..processor import (
    request_transition, allowed_transitions, InvalidTransition, OrderNotFound,
)

router = APIRouter(prefix="/api/orders", dependencies=[Depends(require_auth)])


class OrderDetail(BaseModel):
    order: Order
    allowed_transitions: List[OrderStatus]
    history: List[OrderEvent]


class StatusUpdate(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


def _sorted_targets(status: OrderStatus) -> List[OrderStatus]:
    ranking = list(OrderStatus)
    return sorted(allowed_transitions(status), key=ranking.index)


@router.get("", response_model=OrderPage)
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    payment_method: Optional[PaymentMethod] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: SQLiteDatabase = Depends(get_db),
):
    """List orders with filtering, sorting and pagination."""
    filters = OrderFilters(
        status=status,
        payment_method=payment_method,
        search=search.strip() if search and search.strip() else None,
        start_date=start_date,
        end_date=end_date,
    )
    return await db.list_orders(filters, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)


async def _detail(db: SQLiteDatabase, order: Order) -> OrderDetail:
    return OrderDetail(
        order=order,
        allowed_transitions=_sorted_targets(order.status),
        history=await db.get_order_events(order.id),
    )


@router.get("/{order_id}", response_model=OrderDetail)
async def get_order(order_id: str, db: SQLiteDatabase = Depends(get_db)):
    """Full order detail with the actions currently available."""
    order = await db.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return await _detail(db, order)


@router.patch("/{order_id}/status", response_model=OrderDetail)
async def update_order_status(
    order_id: str,
    body: StatusUpdate,
    db: SQLiteDatabase = Depends(get_db),
):
    """Request a status transition."""
    try:
        order = await request_transition(
            db,
            order_id,
            body.status,
            tracking_number=body.tracking_number,
            notes=body.notes,
        )
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    except InvalidTransition as e:
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "current_status": e.current.value,
                "attempted_status": e.attempted.value,
            },
        )

    return await _detail(db, order)
