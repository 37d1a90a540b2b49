"""
Order status lifecycle: remote status mapping and the allowed transitions
"""

from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from pouchshop.models.order import ORDER_STATUSES, Order
from pouchshop.utils.error_handler import InvalidTransition, ValidationFailed

PAID_REMOTE_STATUSES = frozenset({
    "authorized", "captured", "paid", "closed", "completed", "checkout_complete",
})
CANCELLED_REMOTE_STATUSES = frozenset({"cancelled", "canceled", "expired", "failed"})
REFUNDED_REMOTE_STATUSES = frozenset({"refunded"})

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"processing", "cancelled", "refunded"}),
    "processing": frozenset({"shipped", "delivered", "cancelled", "refunded"}),
    "shipped": frozenset({"delivered", "processing", "cancelled", "refunded"}),
    "delivered": frozenset({"shipped", "refunded"}),
    "cancelled": frozenset({"pending", "processing"}),
    "refunded": frozenset(),
}

# Provider polling never pulls an order back out of fulfilment
FULFILMENT_STATUSES = frozenset({"shipped", "delivered"})
PAID_ORDER_STATUSES = frozenset({"processing", "shipped", "delivered"})


def map_kustom_status(remote_status: Optional[str]) -> str:
    """Map a raw Kustom order status onto pending/processing/cancelled/refunded"""
    status = (remote_status or "").strip().lower()
    if status in PAID_REMOTE_STATUSES:
        return "processing"
    if status in CANCELLED_REMOTE_STATUSES:
        return "cancelled"
    if status in REFUNDED_REMOTE_STATUSES:
        return "refunded"
    return "pending"


def can_transition(current: str, target: str) -> bool:
    if current == target:
        return True
    return target in TRANSITIONS.get(current, frozenset())


def can_reconcile(current: str, target: str) -> bool:
    """Whether a status mapped from the provider may replace the stored one"""
    if current in FULFILMENT_STATUSES and target in ("pending", "processing"):
        return False
    return can_transition(current, target)


def ensure_transition(current: str, target: str) -> None:
    if target not in ORDER_STATUSES:
        raise ValidationFailed(f"Status must be one of: {', '.join(ORDER_STATUSES)}")
    if not can_transition(current, target):
        raise InvalidTransition(f"Cannot move order from '{current}' to '{target}'")


def apply_admin_status(order: Order, target: str, now: Optional[datetime] = None) -> None:
    """Change status the way the back office does, stamping shipping timestamps"""
    ensure_transition(order.status, target)
    now = now or datetime.now(timezone.utc)

    if target == "shipped":
        order.shipped_at = now
        order.delivered_at = None
    elif target == "delivered":
        order.shipped_at = order.shipped_at or now
        order.delivered_at = now
    else:
        order.shipped_at = None
        order.delivered_at = None

    order.status = target
