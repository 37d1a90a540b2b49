"""
Order model for checkout and back-office operations
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, JSON
from sqlalchemy.sql import func
from pouchshop.database import Base

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled", "refunded")

class Order(Base):
    """Customer purchase created by the checkout bridge"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, index=True, nullable=False)
    customer_email = Column(String(255), index=True, nullable=False)
    customer_name = Column(String(200), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    shipping_address = Column(JSON, nullable=True)
    items = Column(JSON, nullable=False, default=list)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), default="pending", nullable=False, index=True)
    notes = Column(Text, nullable=True)  # JSON-encoded provider metadata
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Order(id={self.id}, order_number='{self.order_number}', status='{self.status}')>"
