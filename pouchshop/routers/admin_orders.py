"""
Back-office order management endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from typing import Optional
import logging
import math

from pouchshop.auth.auth_handler import admin_required
from pouchshop.config import Settings, get_settings
from pouchshop.database import get_db
from pouchshop.rate_limit import limiter
from pouchshop.schemas.checkout import MarkPaidResult
from pouchshop.schemas.order import (
    SORT_MODES,
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    ProviderMetadataResponse,
)
from pouchshop.services.checkout_service import CheckoutService
from pouchshop.services.kustom_client import KustomClient, get_kustom_client
from pouchshop.services.order_service import OrderService
from pouchshop.utils.error_handler import DatabaseError, ServiceError, new_request_id

logger = logging.getLogger(__name__)

router = APIRouter()


def _as_http_error(e: ServiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/", response_model=OrderListResponse)
@limiter.limit("60/minute")
async def list_orders(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    status: Optional[str] = Query(None, description="Filter by status, 'all' for every status"),
    search: Optional[str] = Query(None, description="Order number, email or customer name"),
    sort: str = Query("newest", description=f"One of: {', '.join(SORT_MODES)}"),
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Paginated order list with filtering, search and sorting"""
    try:
        orders, total = OrderService(db).list_orders(page, page_size, status, search, sort)
        return OrderListResponse(
            orders=[OrderResponse.model_validate(order) for order in orders],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )
    except ServiceError as e:
        raise _as_http_error(e)


@router.get("/{order_id}", response_model=OrderDetailResponse)
@limiter.limit("60/minute")
async def get_order(
    request: Request,
    order_id: int,
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Single order with its decoded provider metadata"""
    service = OrderService(db)
    try:
        order = service.get_order(order_id)
    except ServiceError as e:
        raise _as_http_error(e)

    metadata = service.metadata_for(order)
    return OrderDetailResponse(
        **OrderResponse.model_validate(order).model_dump(),
        metadata=ProviderMetadataResponse(**metadata.model_dump(include=set(ProviderMetadataResponse.model_fields))),
    )


@router.patch("/{order_id}/status", response_model=OrderResponse)
@limiter.limit("30/minute")
async def update_order_status(
    request: Request,
    order_id: int,
    update: OrderStatusUpdate,
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Manual status change; stamps shipped_at/delivered_at"""
    try:
        order = OrderService(db).change_status(order_id, update.status)
        logger.info(f"Admin {current_user['email']} set order {order_id} to {update.status}")
        return order
    except ServiceError as e:
        raise _as_http_error(e)
    except DatabaseError as e:
        logger.error(f"Failed to update order {order_id}: {e.message}")
        raise HTTPException(status_code=500, detail="Failed to update order")


@router.post("/{order_id}/sync", response_model=MarkPaidResult)
@limiter.limit("10/minute")
async def sync_order(
    request: Request,
    order_id: int,
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    client: KustomClient = Depends(get_kustom_client)
):
    """Poll Kustom for the order and reconcile its status"""
    request_id = new_request_id()
    checkout_service = CheckoutService(db, client, settings, request_id)
    try:
        return await OrderService(db).sync_with_provider(order_id, checkout_service)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message, headers={"X-Request-ID": request_id})
    except DatabaseError as e:
        logger.error(f"Failed to sync order {order_id}: {e.message}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to sync order")


@router.delete("/{order_id}")
@limiter.limit("10/minute")
async def delete_order(
    request: Request,
    order_id: int,
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Delete an order"""
    try:
        OrderService(db).delete_order(order_id)
    except ServiceError as e:
        raise _as_http_error(e)
    except DatabaseError as e:
        logger.error(f"Failed to delete order {order_id}: {e.message}")
        raise HTTPException(status_code=500, detail="Failed to delete order")

    logger.info(f"Admin {current_user['email']} deleted order {order_id}")
    return {"message": "Order deleted successfully"}
