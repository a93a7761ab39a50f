"""
Processor package for order transitions and Ginee sync operations.
"""

from .rules import (
    NEXT_STATUSES,
    TERMINAL_STATUSES,
    MARKETPLACE_ORDER_STATUSES,
    InvalidTransition,
    allowed_transitions,
    can_transition,
    is_terminal,
    validate_transition,
)
from .orders import request_transition, OrderNotFound, TransitionConflict
from .sync import (
    push_product,
    pull_product,
    pull_stock,
    push_order,
    get_sync_badge,
    SyncError,
    ProductNotFound,
    UnlinkedProduct,
    OrderNotPushable,
)
from .runner import (
    start_sync_all,
    run_sync_all,
    run_sync_all_now,
    get_sync_status,
    StartResult,
    SyncAllResult,
    SyncAllRejected,
    ALREADY_RUNNING,
    LIVE_SYNC_DISABLED,
)

__all__ = [
    "NEXT_STATUSES",
    "TERMINAL_STATUSES",
    "MARKETPLACE_ORDER_STATUSES",
    "InvalidTransition",
    "allowed_transitions",
    "can_transition",
    "is_terminal",
    "validate_transition",
    "request_transition",
    "OrderNotFound",
    "TransitionConflict",
    "push_product",
    "pull_product",
    "pull_stock",
    "push_order",
    "get_sync_badge",
    "SyncError",
    "ProductNotFound",
    "UnlinkedProduct",
    "OrderNotPushable",
    "start_sync_all",
    "run_sync_all",
    "run_sync_all_now",
    "get_sync_status",
    "StartResult",
    "SyncAllResult",
    "SyncAllRejected",
    "ALREADY_RUNNING",
    "LIVE_SYNC_DISABLED",
]
