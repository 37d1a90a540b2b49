"""
kustom-checkout function: one POST endpoint dispatching on the operation field
"""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError
from sqlalchemy.orm import Session
import logging
import time

from pouchshop.config import Settings, get_settings
from pouchshop.database import get_db
from pouchshop.rate_limit import limiter
from pouchshop.schemas.checkout import (
    CHECKOUT_OPERATIONS,
    CreateCheckoutRequest,
    MarkPaidRequest,
    checkout_operation_adapter,
)
from pouchshop.schemas.order import OrderResponse
from pouchshop.services.activity_logger import ActivityLogger
from pouchshop.services.checkout_service import CheckoutService
from pouchshop.services.kustom_client import KustomClient, get_kustom_client
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

ENDPOINT = "/functions/v1/kustom-checkout"


async def _parse_command(request: Request):
    try:
        body = await request.json()
    except ValueError:
        raise ValidationFailed("Invalid JSON body")

    if not isinstance(body, dict) or not body.get("operation"):
        raise ValidationFailed("Missing operation")
    operation = body["operation"]
    if operation not in CHECKOUT_OPERATIONS:
        raise ValidationFailed(f"Unknown operation: {operation}")

    try:
        return checkout_operation_adapter.validate_python(body)
    except ValidationError as e:
        raise ValidationFailed(f"Invalid request body: {first_validation_error(e)}")


@router.post("/kustom-checkout")
@limiter.limit("30/minute")
async def kustom_checkout(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    client: KustomClient = Depends(get_kustom_client),
):
    """Create a checkout session, reconcile payment status or read an order"""
    ctx = ErrorContext(request)
    request_id = ctx.request_id
    started_at = time.monotonic()
    operation = None
    error_message = None

    logger.info(f"[kustom-checkout][{request_id}] incoming request", extra={"request_id": request_id})

    try:
        command = await _parse_command(request)
        operation = command.operation
        service = CheckoutService(db, client, settings, request_id)

        if isinstance(command, CreateCheckoutRequest):
            data = (await service.create_checkout(command)).model_dump()
        elif isinstance(command, MarkPaidRequest):
            data = (await service.mark_paid(command)).model_dump()
        else:
            order = service.get_order(command.order_id)
            data = {"order": OrderResponse.model_validate(order).model_dump()}

        response = envelope_success(jsonable_encoder(data), request_id)

    except ServiceError as e:
        error_message = e.message
        response = envelope_error(e.message, e.status_code, request_id)

    except DatabaseError as e:
        logger.error(
            f"[kustom-checkout][{request_id}] database failure: {e.message}",
            extra={"request_id": request_id, "operation": operation},
        )
        error_message = e.message
        response = envelope_error(f"Kustom checkout function failed: {e.message}", 500, request_id)

    except Exception as e:
        logger.exception(
            f"[kustom-checkout][{request_id}] unhandled error",
            extra={"request_id": request_id, "operation": operation},
        )
        error_message = str(e) or type(e).__name__
        response = envelope_error(f"Kustom checkout function failed: {error_message}", 500, request_id)

    elapsed_ms = int((time.monotonic() - started_at) * 1000)
    await ActivityLogger(db).log_activity(
        endpoint=ENDPOINT,
        method="POST",
        status_code=response.status_code,
        request_id=request_id,
        operation=operation,
        ip_address=ctx.client_ip,
        user_agent=ctx.user_agent,
        response_time_ms=elapsed_ms,
        error_message=error_message,
    )
    logger.info(
        f"[kustom-checkout][{request_id}] completed with {response.status_code}",
        extra={"request_id": request_id, "operation": operation, "took_ms": elapsed_ms},
    )
    return response


@router.options("/kustom-checkout")
async def kustom_checkout_options():
    """Bare preflight answer when no CORS headers were sent"""
    return Response(status_code=200)


@router.api_route("/kustom-checkout", methods=["GET", "PUT", "PATCH", "DELETE"])
async def kustom_checkout_method_not_allowed(request: Request):
    request_id = ErrorContext(request).request_id
    logger.warning(
        f"[kustom-checkout][{request_id}] rejected {request.method}",
        extra={"request_id": request_id},
    )
    response = envelope_error("Method not allowed", 405, request_id)
    response.headers["Allow"] = "POST, OPTIONS"
    return response

