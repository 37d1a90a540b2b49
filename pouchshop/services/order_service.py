"""
Back-office order management: listing, manual status changes, provider sync, deletion
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from pouchshop.models.order import Order
from pouchshop.schemas.checkout import MarkPaidRequest, MarkPaidResult
from pouchshop.services.checkout_service import CheckoutService
from pouchshop.services.order_status import apply_admin_status
from pouchshop.services.provider_metadata import ProviderMetadata
from pouchshop.utils.error_handler import DatabaseManager, OrderNotFound, ValidationFailed

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "newest": (Order.created_at, False),
    "oldest": (Order.created_at, True),
    "totalHigh": (Order.total, False),
    "totalLow": (Order.total, True),
}


class OrderService:
    """Order store operations behind the admin order screens"""

    def __init__(self, db: Session):
        self.db = db

    def list_orders(
        self,
        page: int = 1,
        page_size: int = 20,
        status: Optional[str] = None,
        search: Optional[str] = None,
        sort: str = "newest",
    ) -> Tuple[list[Order], int]:
        if sort not in SORT_COLUMNS:
            raise ValidationFailed(f"Sort must be one of: {', '.join(SORT_COLUMNS)}")

        query = self.db.query(Order)
        if status and status != "all":
            query = query.filter(Order.status == status)
        if search and search.strip():
            term = f"%{search.strip()}%"
            query = query.filter(or_(
                Order.order_number.ilike(term),
                Order.customer_email.ilike(term),
                Order.customer_name.ilike(term),
            ))

        total = query.count()

        column, ascending = SORT_COLUMNS[sort]
        ordering = column.asc() if ascending else column.desc()
        tiebreak = Order.id.asc() if ascending else Order.id.desc()
        orders = (
            query.order_by(ordering, tiebreak)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return orders, total

    def get_order(self, order_id: int) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise OrderNotFound()
        return order

    def metadata_for(self, order: Order) -> ProviderMetadata:
        return ProviderMetadata.from_notes(order.notes)

    def change_status(self, order_id: int, target: str) -> Order:
        order = self.get_order(order_id)
        previous = order.status
        with DatabaseManager(self.db):
            apply_admin_status(order, target)
        self.db.refresh(order)

        logger.info(f"Order {order.order_number} status changed: {previous} -> {target}")
        return order

    async def sync_with_provider(self, order_id: int, checkout_service: CheckoutService) -> MarkPaidResult:
        """Re-run reconciliation with the identifiers stored on the order"""
        order = self.get_order(order_id)
        metadata = self.metadata_for(order)
        if not metadata.kustom_order_id:
            raise ValidationFailed("Order has no Kustom order id to sync")

        return await checkout_service.mark_paid(MarkPaidRequest(
            operation="mark_paid",
            order_id=order.id,
            kustom_order_id=metadata.kustom_order_id,
            kustom_order_token=metadata.kustom_order_token,
        ))

    def delete_order(self, order_id: int) -> None:
        order = self.get_order(order_id)
        order_number = order.order_number
        with DatabaseManager(self.db):
            self.db.delete(order)

        logger.info(f"Deleted order {order_number} (ID {order_id})")
