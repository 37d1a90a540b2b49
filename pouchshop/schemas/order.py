"""
Pydantic schemas for order responses and back-office actions
"""

from pydantic import BaseModel, Field, validator
from typing import Any, Dict, List, Optional
from datetime import datetime

from pouchshop.models.order import ORDER_STATUSES

SORT_MODES = ("newest", "oldest", "totalHigh", "totalLow")


class OrderResponse(BaseModel):
    """Raw order row"""
    id: int
    order_number: str
    customer_email: str
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    items: List[Dict[str, Any]] = []
    subtotal: float
    shipping_cost: float
    total: float
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProviderMetadataResponse(BaseModel):
    processor: Optional[str] = None
    kustom_order_id: Optional[str] = None
    kustom_order_token: Optional[str] = None
    kustom_status: Optional[str] = None
    kustom_last_poll_at: Optional[str] = None
    checkout_error: Optional[str] = None


class OrderDetailResponse(OrderResponse):
    """Order row plus the decoded provider metadata"""
    metadata: ProviderMetadataResponse


class OrderListResponse(BaseModel):
    """Schema for paginated order list responses"""
    orders: List[OrderResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class OrderStatusUpdate(BaseModel):
    """Manual status change from the back office"""
    status: str = Field(..., description="Target order status")

    @validator('status')
    def validate_status(cls, v):
        if v not in ORDER_STATUSES:
            raise ValueError(f'Status must be one of: {", ".join(ORDER_STATUSES)}')
        return v
