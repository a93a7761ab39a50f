"""
Business rules for order status transitions.
"""

from typing import Dict, FrozenSet, Optional

from ..db import OrderStatus


# Admin-driven forward path; every other move comes from the payment webhook.
NEXT_STATUSES: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PAID: frozenset({OrderStatus.PROCESSING}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
}

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
})

# Statuses Ginee cares about when an order is pushed
MARKETPLACE_ORDER_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
})


class InvalidTransition(Exception):
    """Requested status is not reachable from the current status."""

    def __init__(self, current: OrderStatus, attempted: OrderStatus, message: Optional[str] = None):
        self.current = current
        self.attempted = attempted
        super().__init__(
            message or f"Cannot change order status from {current.value} to {attempted.value}"
        )


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_transitions(status: OrderStatus) -> FrozenSet[OrderStatus]:
    """
    Every status an admin may move an order to from `status`.

    Forward targets from the table plus CANCELLED for any non-terminal
    status. Terminal statuses allow nothing.
    """
    if is_terminal(status):
        return frozenset()
    return NEXT_STATUSES.get(status, frozenset()) | {OrderStatus.CANCELLED}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in allowed_transitions(current)


def validate_transition(current: OrderStatus, target: OrderStatus) -> None:
    """
    Raise InvalidTransition unless current -> target is legal.

    Re-requesting the status an order already holds is invalid: status
    changes are events, not assignments.
    """
    if is_terminal(current):
        raise InvalidTransition(
            current,
            target,
            f"Order is already {current.value}; cannot change it to {target.value}",
        )
    if not can_transition(current, target):
        raise InvalidTransition(current, target)
