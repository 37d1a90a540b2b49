"""
Tests for the kustom-checkout function: session creation, reconciliation and dispatch
"""

import base64
import json
from decimal import Decimal

import httpx

from conftest import CHECKOUT_URL, checkout_body
from pouchshop.models.order import Order
from pouchshop.services.activity_logger import ActivityLogger
from pouchshop.services.kustom_client import KustomClient, get_kustom_client
from pouchshop.services.provider_metadata import parse_notes
from main import app


def create_checkout(client, **overrides):
    return client.post(CHECKOUT_URL, json=checkout_body(**overrides))


class TestCreateCheckout:
    """create_checkout against a healthy provider"""

    def test_happy_path_returns_session(self, client, db_session):
        response = create_checkout(client)
        assert response.status_code == 200

        body = response.json()
        assert body["success"] is True
        assert body["request_id"] == response.headers["X-Request-ID"]

        data = body["data"]
        assert data["kustom_order_id"] == "K-1"
        assert data["kustom_order_token"] == "tok-1"
        assert data["html_snippet"].startswith("<div")
        assert data["checkout_url"] == "https://kustom.test/checkout/K-1"
        assert data["status"] == "pending"
        assert data["order_number"].startswith("PO-")

        order = db_session.query(Order).filter(Order.id == data["order_id"]).one()
        assert order.status == "pending"
        assert order.total == Decimal("14.97")
        assert order.subtotal == Decimal("14.97")
        assert order.shipping_cost == Decimal("0")
        assert order.customer_name == "Mario Rossi"
        assert order.items[0]["id"] == "7"

        notes = parse_notes(order.notes)
        assert notes["processor"] == "kustom-playground"
        assert notes["kustom_order_id"] == "K-1"
        assert notes["kustom_order_token"] == "tok-1"
        assert notes["created_order_id"] == order.id
        assert notes["checkout"] == {"order_number": order.order_number, "cart_size": 1}
        assert "checkout_snippet_created_at" in notes

    def test_provider_payload_uses_minor_units(self, client, fake_kustom):
        response = create_checkout(client)
        assert response.status_code == 200

        sent = fake_kustom.last_request
        assert sent.method == "POST"
        assert sent.url.path == "/checkout/v3/orders"
        expected_auth = base64.b64encode(b"M-TEST:S-TEST").decode()
        assert sent.headers["Authorization"] == f"Basic {expected_auth}"

        payload = json.loads(sent.content)
        assert payload["locale"] == "it-IT"
        assert payload["purchase_country"] == "IT"
        assert payload["purchase_currency"] == "EUR"
        assert payload["order_amount"] == 1497
        assert payload["order_tax_amount"] == 0
        assert payload["merchant_reference1"] == response.json()["data"]["order_number"]
        assert payload["merchant_urls"] == {
            "terms": "https://shop.test/terms",
            "checkout": "https://shop.test/checkout",
            "confirmation": "https://shop.test/checkout/confirmation",
            "push": "https://shop.test/checkout/return",
        }

        line = payload["order_lines"][0]
        assert line["reference"] == "item-7-10"
        assert line["name"] == "Velo Ice Cool (10 pcs)"
        assert line["unit_price"] == 499
        assert line["quantity"] == 3
        assert line["total_amount"] == 1497
        assert line["image_url"] == "https://img.test/velo.png"
        assert payload["shipping_address"]["country"] == "IT"
        assert payload["billing_address"]["email"] == "mario@example.com"

    def test_english_locale_and_invalid_country(self, client, fake_kustom):
        body = checkout_body(locale="en")
        body["customer"]["country"] = "Italy"
        response = client.post(CHECKOUT_URL, json=body)
        assert response.status_code == 200

        payload = json.loads(fake_kustom.last_request.content)
        assert payload["locale"] == "en-US"
        assert payload["purchase_country"] == "IT"

    def test_order_total_is_sum_of_lines(self, client, fake_kustom):
        cart = [
            {"id": 1, "name": "Zyn Mint", "packSize": 1, "price": 5.50, "quantity": 2},
            {"id": 2, "name": "Velo Berry", "packSize": 5, "price": 21.95, "quantity": 1},
            {"id": 3, "name": "Broken", "packSize": 1, "price": -3, "quantity": 1},
        ]
        response = create_checkout(client, cart=cart)
        assert response.status_code == 200

        payload = json.loads(fake_kustom.last_request.content)
        assert len(payload["order_lines"]) == 2
        assert payload["order_amount"] == sum(line["total_amount"] for line in payload["order_lines"])
        assert payload["order_amount"] == 1100 + 2195

    def test_provider_rejection_cancels_order(self, client, db_session, fake_kustom):
        fake_kustom.create_response = (500, {"error_code": "INTERNAL_ERROR"})

        response = create_checkout(client)
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"].startswith("Kustom API error (500)")
        assert "INTERNAL_ERROR" in body["error"]

        order = db_session.query(Order).one()
        assert order.status == "cancelled"
        notes = parse_notes(order.notes)
        assert "checkout_failed_at" in notes
        assert "Kustom API error (500)" in notes["checkout_error"]
        assert "kustom_order_id" not in notes

    def test_provider_empty_error_body(self, client, fake_kustom):
        fake_kustom.create_response = (503, "")

        response = create_checkout(client)
        assert response.status_code == 500
        assert response.json()["error"] == "Kustom API error (503): No response body"

    def test_missing_snippet_is_contract_violation(self, client, db_session, fake_kustom):
        fake_kustom.create_response = (200, {"order_id": "K-2"})

        response = create_checkout(client)
        assert response.status_code == 400
        assert response.json()["error"] == "Unexpected response from Kustom checkout API"

        order = db_session.query(Order).one()
        assert order.status == "cancelled"
        assert parse_notes(order.notes)["checkout_error"] == "Unexpected response from Kustom checkout API"

    def test_unexpected_transport_failure_cancels_order(self, client, db_session, settings):
        def explode(request):
            raise RuntimeError("connection pool exhausted")

        app.dependency_overrides[get_kustom_client] = lambda: KustomClient.from_settings(
            settings, transport=httpx.MockTransport(explode),
        )

        response = create_checkout(client)
        assert response.status_code == 500
        assert response.json()["error"] == "Kustom checkout function failed: connection pool exhausted"

        order = db_session.query(Order).one()
        assert order.status == "cancelled"
        assert parse_notes(order.notes)["checkout_error"] == "connection pool exhausted"

    def test_half_cent_prices_round_like_the_storefront(self, client, db_session, fake_kustom):
        cart = [{"id": 9, "name": "Zyn Citrus", "packSize": 1, "price": 1.005, "quantity": 2}]
        response = create_checkout(client, cart=cart)
        assert response.status_code == 200

        line = json.loads(fake_kustom.last_request.content)["order_lines"][0]
        assert line["unit_price"] == 100
        assert line["total_amount"] == 200
        assert db_session.query(Order).one().total == Decimal("2.00")

    def test_missing_email_creates_nothing(self, client, db_session, fake_kustom):
        body = checkout_body()
        body["customer"]["email"] = ""
        response = client.post(CHECKOUT_URL, json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Missing customer email or empty cart"
        assert db_session.query(Order).count() == 0
        assert fake_kustom.requests == []

    def test_empty_cart_rejected(self, client, db_session):
        response = create_checkout(client, cart=[])
        assert response.status_code == 400
        assert response.json()["error"] == "Missing customer email or empty cart"
        assert db_session.query(Order).count() == 0

    def test_cart_with_only_invalid_lines(self, client, db_session, fake_kustom):
        cart = [
            {"id": 1, "name": "Free?", "packSize": 1, "price": -1, "quantity": 1},
            {"id": 2, "name": "Nothing", "packSize": 1, "price": 4.0, "quantity": 0},
            {"id": 3, "packSize": 1, "price": 4.0, "quantity": 1},
        ]
        response = create_checkout(client, cart=cart)
        assert response.status_code == 400
        assert response.json()["error"] == "Cart data is invalid"
        assert db_session.query(Order).count() == 0
        assert fake_kustom.requests == []

    def test_missing_credentials(self, client, db_session):
        app.dependency_overrides[get_kustom_client] = lambda: KustomClient(None, None, "https://kustom.test")

        response = create_checkout(client)
        assert response.status_code == 500
        assert "KUSTOM_PLAYGROUND_MERCHANT_ID" in response.json()["error"]
        assert db_session.query(Order).count() == 0


class TestMarkPaid:
    """Reconciliation of stored orders against the provider"""

    def _checkout(self, client):
        return create_checkout(client).json()["data"]["order_id"]

    def test_captured_order_becomes_processing(self, client, db_session, fake_kustom):
        order_id = self._checkout(client)
        fake_kustom.orders["K-1"] = (200, {"order_id": "K-1", "status": "checkout_complete"})

        response = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": order_id})
        assert response.status_code == 200

        data = response.json()["data"]
        assert data["status"] == "processing"
        assert data["payment_confirmed"] is True
        assert data["kustom_status"] == "checkout_complete"
        assert data["confirmation_data"]["order_id"] == "K-1"

        poll = fake_kustom.last_request
        assert poll.method == "GET"
        assert poll.url.params["token"] == "tok-1"

        order = db_session.query(Order).filter(Order.id == order_id).one()
        assert order.status == "processing"
        notes = parse_notes(order.notes)
        assert notes["kustom_status"] == "checkout_complete"
        assert notes["kustom_order_payload"]["status"] == "checkout_complete"
        assert "kustom_last_poll_at" in notes
        assert notes["checkout"]["cart_size"] == 1

    def test_reconciliation_is_idempotent(self, client, db_session, fake_kustom):
        order_id = self._checkout(client)
        fake_kustom.orders["K-1"] = (200, {"order_id": "K-1", "status": "CAPTURED"})

        first = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": order_id})
        second = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": order_id})

        assert first.json()["data"]["status"] == "processing"
        assert second.json()["data"]["status"] == "processing"
        order = db_session.query(Order).filter(Order.id == order_id).one()
        assert order.status == "processing"

    def test_incomplete_checkout_stays_pending(self, client, fake_kustom):
        order_id = self._checkout(client)
        fake_kustom.orders["K-1"] = (200, {"order_id": "K-1", "status": "checkout_incomplete"})

        data = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": order_id}).json()["data"]
        assert data["status"] == "pending"
        assert data["payment_confirmed"] is False

    def test_missing_remote_status_recorded_as_unknown(self, client, db_session, fake_kustom):
        order_id = self._checkout(client)
        fake_kustom.orders["K-1"] = (200, {"order_id": "K-1"})

        data = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": order_id}).json()["data"]
        assert data["kustom_status"] == "unknown"
        order = db_session.query(Order).filter(Order.id == order_id).one()
        assert parse_notes(order.notes)["kustom_status"] == "unknown"

    def test_explicit_identifiers_override_notes(self, client, order_factory, fake_kustom):
        order = order_factory(notes={"kustom_order_id": "K-OLD"})
        fake_kustom.orders["K-NEW"] = (200, {"status": "paid"})

        response = client.post(CHECKOUT_URL, json={
            "operation": "mark_paid",
            "order_id": order.id,
            "kustom_order_id": "K-NEW",
            "kustom_order_token": "tok-new",
        })
        assert response.status_code == 200
        assert fake_kustom.last_request.url.path.endswith("/K-NEW")
        assert fake_kustom.last_request.url.params["token"] == "tok-new"

    def test_legacy_nested_identifier(self, client, db_session, order_factory, fake_kustom):
        order = order_factory(notes={"kustom": {"order_id": "K-LEGACY"}, "source": "import"})
        fake_kustom.orders["K-LEGACY"] = (200, {"status": "authorized"})

        response = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": order.id})
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "processing"
        assert "token" not in fake_kustom.last_request.url.params

        db_session.refresh(order)
        notes = parse_notes(order.notes)
        assert notes["kustom_order_id"] == "K-LEGACY"
        assert notes["source"] == "import"

    def test_identifier_is_url_encoded(self, client, order_factory, fake_kustom):
        order = order_factory(notes={"kustom_order_id": "K/1 x"})
        fake_kustom.orders["K/1 x"] = (200, {"status": "captured"})

        response = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": order.id})
        assert response.status_code == 200
        assert b"K%2F1%20x" in fake_kustom.last_request.url.raw_path

    def test_refunded_order_is_not_reopened(self, client, db_session, order_factory, fake_kustom):
        order = order_factory(status="refunded", notes={"kustom_order_id": "K-R"})
        fake_kustom.orders["K-R"] = (200, {"status": "captured"})

        data = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": order.id}).json()["data"]
        assert data["status"] == "refunded"
        assert data["payment_confirmed"] is False

        db_session.refresh(order)
        assert order.status == "refunded"
        assert parse_notes(order.notes)["kustom_status"] == "captured"

    def test_provider_failure_leaves_order_untouched(self, client, db_session, order_factory, fake_kustom):
        order = order_factory(notes={"kustom_order_id": "K-GONE"})
        before = order.notes

        response = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": order.id})
        assert response.status_code == 500
        assert response.json()["error"].startswith("Kustom API error (404)")

        db_session.refresh(order)
        assert order.status == "pending"
        assert order.notes == before

    def test_missing_order_id(self, client):
        response = client.post(CHECKOUT_URL, json={"operation": "mark_paid"})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing order_id"

    def test_unknown_order(self, client):
        response = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": 424242})
        assert response.status_code == 404
        assert response.json()["error"] == "Order not found"

    def test_order_without_provider_id(self, client, order_factory, fake_kustom):
        order = order_factory(notes={"processor": "kustom-playground"})

        response = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": order.id})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing Kustom order id"
        assert fake_kustom.requests == []


class TestGetOrder:

    def test_returns_order_row(self, client, order_factory):
        order = order_factory(total="12.50")

        response = client.post(CHECKOUT_URL, json={"operation": "get_order", "order_id": order.id})
        assert response.status_code == 200
        data = response.json()["data"]["order"]
        assert data["order_number"] == order.order_number
        assert data["total"] == 12.5
        assert data["status"] == "pending"

    def test_unknown_order(self, client):
        response = client.post(CHECKOUT_URL, json={"operation": "get_order", "order_id": 1})
        assert response.status_code == 404


class TestDispatch:
    """Envelope and method handling of the function endpoint"""

    def test_missing_operation(self, client):
        response = client.post(CHECKOUT_URL, json={"order_id": 1})
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Missing operation",
            "request_id": response.headers["X-Request-ID"],
        }

    def test_unknown_operation(self, client):
        response = client.post(CHECKOUT_URL, json={"operation": "refund"})
        assert response.status_code == 400
        assert response.json()["error"] == "Unknown operation: refund"

    def test_malformed_json(self, client):
        response = client.post(CHECKOUT_URL, content="{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_wrong_field_type(self, client):
        response = client.post(CHECKOUT_URL, json={"operation": "mark_paid", "order_id": "abc"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request body")

    def test_get_not_allowed(self, client):
        response = client.get(CHECKOUT_URL)
        assert response.status_code == 405
        assert response.json()["error"] == "Method not allowed"
        assert "X-Request-ID" in response.headers

    def test_options_answers_ok(self, client):
        response = client.options(CHECKOUT_URL)
        assert response.status_code == 200

    def test_cors_preflight(self, client):
        response = client.options(CHECKOUT_URL, headers={
            "Origin": "https://shop.test",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type,authorization",
        })
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] in ("*", "https://shop.test")

    def test_every_call_is_logged_with_request_id(self, client, db_session):
        response = create_checkout(client, cart=[])
        request_id = response.headers["X-Request-ID"]

        entries = ActivityLogger(db_session).get_by_request_id(request_id)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.endpoint == CHECKOUT_URL
        assert entry.operation == "create_checkout"
        assert entry.status_code == 400
        assert entry.error_message == "Missing customer email or empty cart"
