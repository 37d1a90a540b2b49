"""
Activity log model for tracing function invocations
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func
from pouchshop.database import Base

class ActivityLog(Base):
    """One row per bridge or proxy invocation"""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(String(64), index=True, nullable=True)
    endpoint = Column(String(255), nullable=False)
    method = Column(String(10), nullable=False)
    operation = Column(String(50), nullable=True)
    status_code = Column(Integer, nullable=False)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<ActivityLog(id={self.id}, operation='{self.operation}', status={self.status_code})>"
