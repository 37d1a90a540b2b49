"""
Checkout-session bridge between the order store and the Kustom checkout API

create_checkout: validate cart -> insert pending order -> create remote session -> store ids
mark_paid: fetch remote status -> map -> persist status and notes
"""

import logging
import uuid
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from pouchshop.config import Settings
from pouchshop.models.order import Order
from pouchshop.schemas.checkout import (
    CartItemInput,
    CreateCheckoutRequest,
    CreateCheckoutResult,
    CustomerInput,
    MarkPaidRequest,
    MarkPaidResult,
    SanitizedCartItem,
)
from pouchshop.services.kustom_client import KustomClient
from pouchshop.services.order_status import PAID_ORDER_STATUSES, can_reconcile, map_kustom_status
from pouchshop.services.provider_metadata import PROCESSOR_TAG, ProviderMetadata, merge_notes
from pouchshop.utils.error_handler import DatabaseManager, KustomAPIError, OrderNotFound, ValidationFailed
from pouchshop.utils.money import to_major_amount, to_minor_amount

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = "IT"
_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_number() -> str:
    """PO-<base36 millisecond timestamp>-<8 random hex chars>"""
    return f"PO-{_base36(time.time_ns() // 1_000_000)}-{uuid.uuid4().hex[:8]}"


def normalize_country(country: Optional[str]) -> str:
    if not country:
        return DEFAULT_COUNTRY
    normalized = country.strip().upper()
    return normalized if len(normalized) == 2 and normalized.isalpha() else DEFAULT_COUNTRY


def sanitize_cart(cart: List[CartItemInput]) -> List[SanitizedCartItem]:
    """Drop unusable lines and clamp pack size and quantity to at least 1"""
    sanitized = []
    for item in cart:
        if item.price is None or item.price < 0:
            continue
        if item.quantity is None or item.quantity <= 0:
            continue
        if not item.name:
            continue
        sanitized.append(SanitizedCartItem(
            id="" if item.id is None else str(item.id),
            name=item.name,
            packSize=max(1, int(item.packSize or 1)),
            price=float(item.price),
            quantity=max(1, int(item.quantity)),
            image=item.image or None,
        ))
    return sanitized


def build_order_lines(items: List[SanitizedCartItem]) -> List[Dict[str, Any]]:
    """Kustom order lines, amounts in minor units"""
    lines = []
    for item in items:
        unit_price = to_minor_amount(item.price)
        line = {
            "type": "physical",
            "reference": f"item-{item.id}-{item.packSize}",
            "name": f"{item.name} ({item.packSize} pcs)",
            "quantity": item.quantity,
            "quantity_unit": "pcs",
            "unit_price": unit_price,
            "tax_rate": 0,
            "total_amount": unit_price * item.quantity,
            "total_discount_amount": 0,
            "total_tax_amount": 0,
        }
        if item.image:
            line["image_url"] = item.image
        lines.append(line)
    return lines


def build_shipping_address(customer: CustomerInput, country: str) -> Dict[str, Any]:
    return {
        "email": customer.email,
        "given_name": customer.firstName,
        "family_name": customer.lastName,
        "street_address": customer.address,
        "city": customer.city,
        "postal_code": customer.postalCode,
        "country": country,
        "phone": customer.phone,
    }


class CheckoutService:
    """Orchestrates order persistence and the Kustom checkout session"""

    def __init__(self, db: Session, client: KustomClient, settings: Settings, request_id: str = "-"):
        self.db = db
        self.client = client
        self.settings = settings
        self.request_id = request_id

    def _log_prefix(self) -> str:
        return f"[kustom-checkout][{self.request_id}]"

    async def create_checkout(self, body: CreateCheckoutRequest) -> CreateCheckoutResult:
        self.client.ensure_configured(self.request_id)

        customer = body.customer
        if customer is None or not customer.email or not body.cart:
            logger.error(
                f"{self._log_prefix()} invalid payload",
                extra={"request_id": self.request_id, "has_email": bool(customer and customer.email), "cart_length": len(body.cart)},
            )
            raise ValidationFailed("Missing customer email or empty cart")

        locale = body.locale or "it"
        currency = (body.currency or "EUR").upper()
        logger.info(
            f"{self._log_prefix()} create_checkout start",
            extra={"request_id": self.request_id, "locale": locale, "currency": currency, "cart_length": len(body.cart)},
        )

        items = sanitize_cart(body.cart)
        if not items:
            logger.error(f"{self._log_prefix()} sanitized cart empty", extra={"request_id": self.request_id})
            raise ValidationFailed("Cart data is invalid")

        order_lines = build_order_lines(items)
        subtotal_minor = sum(line["total_amount"] for line in order_lines)
        shipping_minor = 0
        total_minor = subtotal_minor + shipping_minor

        order_number = generate_order_number()
        country = normalize_country(customer.country)
        shipping_address = build_shipping_address(customer, country)
        customer_name = f"{customer.firstName or ''} {customer.lastName or ''}".strip()

        initial_notes = {
            "created_at": _utcnow_iso(),
            "processor": PROCESSOR_TAG,
            "checkout": {"order_number": order_number, "cart_size": len(items)},
        }

        order = Order(
            order_number=order_number,
            customer_email=customer.email,
            customer_name=customer_name or None,
            customer_phone=customer.phone or None,
            shipping_address=shipping_address,
            items=[item.model_dump() for item in items],
            subtotal=to_major_amount(subtotal_minor),
            shipping_cost=to_major_amount(shipping_minor),
            total=to_major_amount(total_minor),
            status="pending",
            notes=merge_notes(None, initial_notes),
        )
        with DatabaseManager(self.db):
            self.db.add(order)
        self.db.refresh(order)

        logger.debug(
            f"{self._log_prefix()} order inserted",
            extra={"request_id": self.request_id, "order_id": order.id, "order_number": order.order_number},
        )

        site = self.settings.site_base_url.rstrip("/")
        payload = {
            "locale": "it-IT" if locale == "it" else "en-US",
            "purchase_country": country,
            "purchase_currency": currency,
            "order_amount": total_minor,
            "order_tax_amount": 0,
            "merchant_urls": {
                "terms": f"{site}/terms",
                "checkout": f"{site}/checkout",
                "confirmation": f"{site}/checkout/confirmation",
                "push": f"{site}/checkout/return",
            },
            "order_lines": order_lines,
            "merchant_reference1": order_number,
            "billing_address": shipping_address,
            "shipping_address": shipping_address,
        }

        try:
            session = await self.client.create_order(payload, request_id=self.request_id)
            kustom_order_id, html_snippet = self._require_session_fields(session)
        except Exception as e:
            message = e.message if isinstance(e, KustomAPIError) else (str(e) or type(e).__name__)
            logger.error(
                f"{self._log_prefix()} kustom checkout creation failed: {message}",
                extra={"request_id": self.request_id, "order_id": order.id},
            )
            self._cancel_after_failure(order, message)
            raise

        kustom_order_token = session.get("order_token") or ""
        with DatabaseManager(self.db):
            order.notes = merge_notes(order.notes, {
                "processor": PROCESSOR_TAG,
                "created_order_id": order.id,
                "kustom_order_id": kustom_order_id,
                "kustom_order_token": kustom_order_token or None,
                "checkout_snippet_created_at": _utcnow_iso(),
            })

        logger.info(
            f"{self._log_prefix()} create_checkout complete",
            extra={"request_id": self.request_id, "order_id": order.id, "kustom_order_id": kustom_order_id},
        )

        return CreateCheckoutResult(
            order_id=order.id,
            order_number=order.order_number,
            kustom_order_id=kustom_order_id,
            kustom_order_token=kustom_order_token,
            html_snippet=html_snippet,
            checkout_url=session.get("checkout_url") or "",
            status="pending",
        )

    def _require_session_fields(self, session: Any) -> Tuple[str, str]:
        if not isinstance(session, dict):
            raise KustomAPIError("Unexpected response from Kustom checkout API", status_code=400)
        kustom_order_id = session.get("order_id")
        html_snippet = session.get("html_snippet")
        if not kustom_order_id or not html_snippet:
            logger.error(
                f"{self._log_prefix()} invalid checkout response",
                extra={"request_id": self.request_id, "has_order_id": bool(kustom_order_id), "has_html_snippet": bool(html_snippet)},
            )
            raise KustomAPIError("Unexpected response from Kustom checkout API", status_code=400)
        return str(kustom_order_id), str(html_snippet)

    def _cancel_after_failure(self, order: Order, message: str) -> None:
        """Leave no pending order without a remote session behind"""
        with DatabaseManager(self.db):
            order.status = "cancelled"
            order.notes = merge_notes(order.notes, {
                "processor": PROCESSOR_TAG,
                "checkout_failed_at": _utcnow_iso(),
                "checkout_error": message,
            })

    def _load_order(self, order_id: Optional[int]) -> Order:
        if order_id is None:
            logger.error(f"{self._log_prefix()} missing order_id", extra={"request_id": self.request_id})
            raise ValidationFailed("Missing order_id")
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            logger.error(f"{self._log_prefix()} order not found", extra={"request_id": self.request_id, "order_id": order_id})
            raise OrderNotFound()
        return order

    async def mark_paid(self, body: MarkPaidRequest) -> MarkPaidResult:
        self.client.ensure_configured(self.request_id)
        order = self._load_order(body.order_id)

        logger.info(f"{self._log_prefix()} mark_paid start", extra={"request_id": self.request_id, "order_id": order.id})

        metadata = ProviderMetadata.from_notes(order.notes)
        kustom_order_id = body.kustom_order_id or metadata.kustom_order_id
        kustom_order_token = body.kustom_order_token or metadata.kustom_order_token
        if not kustom_order_id:
            logger.error(f"{self._log_prefix()} missing kustom_order_id", extra={"request_id": self.request_id})
            raise ValidationFailed("Missing Kustom order id")

        remote = await self.client.get_order(kustom_order_id, token=kustom_order_token, request_id=self.request_id)

        remote_status = ""
        if isinstance(remote, dict) and remote.get("status") is not None:
            remote_status = str(remote.get("status"))
        mapped_status = map_kustom_status(remote_status)

        with DatabaseManager(self.db):
            if can_reconcile(order.status, mapped_status):
                order.status = mapped_status
            else:
                logger.warning(
                    f"{self._log_prefix()} ignoring remote status '{remote_status}' for order in '{order.status}'",
                    extra={"request_id": self.request_id, "order_id": order.id},
                )
            patch = {
                "processor": PROCESSOR_TAG,
                "kustom_last_poll_at": _utcnow_iso(),
                "kustom_order_id": kustom_order_id,
                "kustom_status": remote_status or "unknown",
                "kustom_order_payload": remote,
            }
            if kustom_order_token:
                patch["kustom_order_token"] = kustom_order_token
            order.notes = merge_notes(order.notes, patch)

        self.db.refresh(order)
        return MarkPaidResult(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            payment_confirmed=mapped_status == "processing" and order.status in PAID_ORDER_STATUSES,
            kustom_status=remote_status or "unknown",
            confirmation_data=remote,
        )

    def get_order(self, order_id: Optional[int]) -> Order:
        logger.info(f"{self._log_prefix()} get_order start", extra={"request_id": self.request_id, "order_id": order_id})
        return self._load_order(order_id)
