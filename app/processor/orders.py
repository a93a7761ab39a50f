"""
Order status changes requested by an admin.
"""

import logging
from datetime import datetime
from typing import Optional

from ..db import SQLiteDatabase, Order, OrderStatus
from .rules import InvalidTransition, validate_transition

logger = logging.getLogger(__name__)


class OrderNotFound(LookupError):
    """No order with the given id."""
    pass


class TransitionConflict(InvalidTransition):
    """A concurrent request changed the order first."""

    def __init__(self, current: OrderStatus, attempted: OrderStatus):
        super().__init__(
            current,
            attempted,
            f"Order status changed to {current.value} by another request; "
            f"{attempted.value} was not applied",
        )


async def request_transition(
    db: SQLiteDatabase,
    order_id: str,
    target_status: OrderStatus,
    tracking_number: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None
) -> Order:
    """
    Move an order to `target_status`.

    The transition is validated before anything is written. A tracking
    number is only attached when shipping. The write is a compare-and-set
    on the status read here, so of two racing requests only one applies.

    Raises:
        OrderNotFound: If the order does not exist
        InvalidTransition: If the target is not legal from the current status
        TransitionConflict: If another request changed the status first
    """
    order = await db.get_order(order_id)
    if order is None:
        raise OrderNotFound(f"Order not found: {order_id}")

    validate_transition(order.status, target_status)

    if target_status != OrderStatus.SHIPPED:
        if tracking_number:
            logger.debug(f"Ignoring tracking number for {order.order_number} -> {target_status.value}")
        tracking_number = None
    elif tracking_number is not None:
        tracking_number = tracking_number.strip() or None

    updated = await db.update_order_status(
        order_id,
        expected_status=order.status,
        new_status=target_status,
        tracking_number=tracking_number,
        notes=notes,
        now=now,
    )

    if updated is None:
        latest = await db.get_order(order_id)
        current = latest.status if latest else order.status
        logger.warning(
            f"Transition conflict on {order.order_number}: "
            f"expected {order.status.value}, found {current.value}"
        )
        raise TransitionConflict(current, target_status)

    logger.info(
        f"Order {order.order_number}: {order.status.value} -> {target_status.value}"
        + (f" (tracking {tracking_number})" if tracking_number else "")
    )
    return updated
