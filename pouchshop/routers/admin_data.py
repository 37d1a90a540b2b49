"""
admin-data function: table passthrough and user RPCs for the back office
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging
import time

from pouchshop.auth.auth_handler import admin_required
from pouchshop.database import get_db
from pouchshop.rate_limit import limiter
from pouchshop.schemas.admin_data import ADMIN_DATA_OPERATIONS, AdminDataRequest
from pouchshop.services.activity_logger import ActivityLogger
from pouchshop.services.admin_data_service import AdminDataService
from pouchshop.utils.error_handler import (
    DatabaseError,
    ErrorContext,
    ServiceError,
    ValidationFailed,
    envelope_error,
    envelope_success,
    first_validation_error,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ENDPOINT = "/functions/v1/admin-data"


async def _parse_request(request: Request) -> AdminDataRequest:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationFailed("Invalid JSON body")

    if not isinstance(body, dict) or not body.get("operation"):
        raise ValidationFailed("Missing operation")
    if body["operation"] not in ADMIN_DATA_OPERATIONS:
        raise ValidationFailed(f"Unknown operation: {body['operation']}")

    try:
        return AdminDataRequest.model_validate(body)
    except ValidationError as e:
        raise ValidationFailed(f"Invalid request body: {first_validation_error(e)}")


@router.post("/admin-data")
@limiter.limit("60/minute")
async def admin_data(
    request: Request,
    current_user: dict = Depends(admin_required),
    db: Session = Depends(get_db)
):
    """Run one insert/update/delete/select or rpc call"""
    ctx = ErrorContext(request)
    started_at = time.monotonic()
    operation = None
    error_message = None

    try:
        payload = await _parse_request(request)
        operation = payload.operation
        if operation == "rpc" and isinstance(payload.data, dict):
            operation = f"rpc:{payload.data.get('function')}"

        logger.info(
            f"admin-data {operation} on {payload.table or '-'} by {current_user['email']}",
            extra={"request_id": ctx.request_id},
        )
        result = await AdminDataService(db).execute(payload)
        response = envelope_success(jsonable_encoder(result), ctx.request_id)

    except ServiceError as e:
        error_message = e.message
        response = envelope_error(e.message, e.status_code, ctx.request_id)

    except HTTPException as e:
        error_message = str(e.detail)
        response = envelope_error(error_message, e.status_code, ctx.request_id)

    except DatabaseError as e:
        logger.error(f"admin-data {operation} failed: {e.message}", extra={"request_id": ctx.request_id})
        error_message = e.message
        status_code = 400 if isinstance(e.original_error, IntegrityError) else 500
        response = envelope_error(e.message, status_code, ctx.request_id)

    except Exception as e:
        logger.exception(f"admin-data {operation} crashed", extra={"request_id": ctx.request_id})
        error_message = str(e) or type(e).__name__
        response = envelope_error(f"admin-data function failed: {error_message}", 500, ctx.request_id)

    await ActivityLogger(db).log_activity(
        endpoint=ENDPOINT,
        method="POST",
        status_code=response.status_code,
        request_id=ctx.request_id,
        operation=operation,
        ip_address=ctx.client_ip,
        user_agent=ctx.user_agent,
        response_time_ms=int((time.monotonic() - started_at) * 1000),
        error_message=error_message,
    )
    return response
