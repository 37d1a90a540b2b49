"""
Error types, response envelopes and transaction helpers shared by every endpoint
"""

import uuid
import traceback
import logging
from typing import Optional, Any
from datetime import datetime
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def new_request_id() -> str:
    return str(uuid.uuid4())


class ErrorContext:
    """Context object for tracking error information across the request lifecycle"""

    def __init__(self, request: Request, request_id: Optional[str] = None):
        self.request_id = request_id or new_request_id()
        self.request = request
        self.endpoint = str(request.url.path)
        self.method = request.method
        self.client_ip = self._get_client_ip()
        self.user_agent = request.headers.get("user-agent")
        self.timestamp = datetime.utcnow()

    def _get_client_ip(self) -> Optional[str]:
        """Extract client IP from request headers"""
        if "x-forwarded-for" in self.request.headers:
            return self.request.headers["x-forwarded-for"].split(",")[0].strip()
        elif "x-real-ip" in self.request.headers:
            return self.request.headers["x-real-ip"]
        elif self.request.client:
            return self.request.client.host
        return None


class DatabaseError(Exception):
    """Custom exception for database-related errors"""
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


class ServiceError(Exception):
    """Base class for errors that map onto an HTTP status in the envelope"""
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationFailed(ServiceError):
    status_code = 400


class NotFound(ServiceError):
    status_code = 404


class OrderNotFound(NotFound):
    def __init__(self, message: str = "Order not found"):
        super().__init__(message)


class Forbidden(ServiceError):
    status_code = 403


class InvalidTransition(ServiceError):
    status_code = 409


class ConfigurationError(ServiceError):
    status_code = 500


class KustomAPIError(ServiceError):
    """Failed or malformed call to the Kustom checkout API"""
    status_code = 500

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        detail: Any = None,
        status_code: Optional[int] = None,
    ):
        self.upstream_status = upstream_status
        self.detail = detail
        super().__init__(message, status_code)


def first_validation_error(error: ValidationError) -> str:
    """Human readable message of the first pydantic error"""
    errors = error.errors()
    if not errors:
        return "Invalid input"
    first = errors[0]
    message = first.get("msg", "Invalid input").removeprefix("Value error, ")
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body",))
    return f"{location}: {message}" if location else message


def envelope_success(data: Any, request_id: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    """Build the {success, data, request_id} envelope"""
    content = {"success": True, "data": data}
    headers = {}
    if request_id:
        content["request_id"] = request_id
        headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def envelope_error(message: str, status_code: int = 400, request_id: Optional[str] = None) -> JSONResponse:
    """Build the {success: false, error, request_id} envelope"""
    content = {"success": False, "error": message}
    headers = {}
    if request_id:
        content["request_id"] = request_id
        headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(status_code=status_code, content=content, headers=headers)


class ErrorHandler:
    """Centralized error logging and unexpected-error responses"""

    @staticmethod
    def create_error_response(
        error_context: ErrorContext,
        error: Exception,
        status_code: int = 500,
        include_details: bool = False
    ) -> JSONResponse:
        """Create a standardized error response for unexpected failures"""
        ErrorHandler.log_error(error_context, error, status_code)

        content = {
            "success": False,
            "error": "An unexpected error occurred. Please try again later.",
            "request_id": error_context.request_id,
            "timestamp": error_context.timestamp.isoformat(),
        }
        if include_details:
            content["details"] = {
                "original_error": str(error),
                "error_type": type(error).__name__,
            }

        return JSONResponse(
            status_code=status_code,
            content=content,
            headers={REQUEST_ID_HEADER: error_context.request_id},
        )

    @staticmethod
    def log_error(error_context: ErrorContext, error: Exception, status_code: int):
        """Log error with comprehensive context"""
        logger.error(
            f"Error {error_context.request_id}: {type(error).__name__} in {error_context.method} {error_context.endpoint}",
            extra={
                "request_id": error_context.request_id,
                "endpoint": error_context.endpoint,
                "method": error_context.method,
                "status_code": status_code,
                "client_ip": error_context.client_ip,
                "user_agent": error_context.user_agent,
                "error_type": type(error).__name__,
                "error_message": str(error),
                "stack_trace": traceback.format_exc()
            }
        )


class DatabaseManager:
    """Context manager committing on success and rolling back on failure"""

    def __init__(self, db: Session):
        self.db = db

    def __enter__(self) -> Session:
        return self.db

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.db.rollback()
            if isinstance(exc_val, IntegrityError):
                raise DatabaseError("Database integrity constraint violation", exc_val) from exc_val
            if isinstance(exc_val, SQLAlchemyError):
                raise DatabaseError(f"Database operation failed: {str(exc_val)}", exc_val) from exc_val
            return False
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database transaction error: {e}")
            self.db.rollback()
            raise DatabaseError(f"Database transaction failed: {str(e)}", e)
        return False
