"""
Activity logging service for tracing function invocations by request id
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pouchshop.models.activity_log import ActivityLog

logger = logging.getLogger(__name__)

class ActivityLogger:
    """Service for logging bridge and proxy invocations"""

    def __init__(self, db: Session):
        self.db = db

    async def log_activity(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        response_time_ms: Optional[int] = None,
        error_message: Optional[str] = None
    ) -> Optional[ActivityLog]:
        """Log an activity to the database; never fails the calling request"""
        try:
            activity_log = ActivityLog(
                request_id=request_id,
                endpoint=endpoint,
                method=method,
                operation=operation,
                status_code=status_code,
                ip_address=ip_address,
                user_agent=user_agent,
                response_time_ms=response_time_ms,
                error_message=error_message
            )

            self.db.add(activity_log)
            self.db.commit()
            self.db.refresh(activity_log)

            return activity_log

        except SQLAlchemyError as e:
            logger.error(f"Failed to log activity: {e}", extra={"request_id": request_id})
            self.db.rollback()
            return None

    def get_by_request_id(self, request_id: str) -> list[ActivityLog]:
        """All entries written while serving one request, oldest first"""
        return self.db.query(ActivityLog).filter(ActivityLog.request_id == request_id).order_by(ActivityLog.id).all()
