"""
Shared fixtures: in-memory database, fake Kustom API and admin credentials
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from decimal import Decimal
from urllib.parse import unquote

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from pouchshop.auth.auth_handler import AuthHandler
from pouchshop.config import Settings, get_settings
from pouchshop.database import Base, get_db
from pouchshop.models.order import Order
from pouchshop.models.user import User, UserRole
from pouchshop.services.checkout_service import generate_order_number
from pouchshop.services.kustom_client import KustomClient, get_kustom_client
from pouchshop.services.provider_metadata import merge_notes

CHECKOUT_URL = "/functions/v1/kustom-checkout"
ADMIN_DATA_URL = "/functions/v1/admin-data"
ADMIN_PASSWORD = "AdminPass123"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeKustom:
    """Stands in for the Kustom checkout API through httpx.MockTransport"""

    def __init__(self):
        self.requests = []
        self.create_response = (200, {
            "order_id": "K-1",
            "order_token": "tok-1",
            "html_snippet": "<div id='kco'>snippet</div>",
            "checkout_url": "https://kustom.test/checkout/K-1",
        })
        self.orders = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            status_code, body = self.create_response
        else:
            raw_path = request.url.raw_path.decode().split("?")[0]
            order_id = unquote(raw_path.rsplit("/", 1)[-1])
            status_code, body = self.orders.get(order_id, (404, {"error_code": "NOT_FOUND"}))
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture()
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def settings():
    return Settings(
        kustom_merchant_id="M-TEST",
        kustom_shared_secret="S-TEST",
        kustom_api_base_url="https://kustom.test",
        site_base_url="https://shop.test",
        rate_limit_enabled=False,
    )


@pytest.fixture()
def fake_kustom():
    return FakeKustom()


@pytest.fixture()
def kustom_client(settings, fake_kustom):
    return KustomClient.from_settings(settings, transport=httpx.MockTransport(fake_kustom.handler))


@pytest.fixture()
def client(db_session, settings, kustom_client):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_kustom_client] = lambda: kustom_client
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_user(db_session):
    user = User(
        email="admin@example.com",
        hashed_password=AuthHandler().get_password_hash(ADMIN_PASSWORD),
        full_name="Shop Admin",
        is_active=True,
    )
    user.roles.append(UserRole(role="admin"))
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def token_headers(user_id: int, email: str, role: str) -> dict:
    token = AuthHandler().create_access_token({"sub": str(user_id), "email": email, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(admin_user):
    return token_headers(admin_user.id, admin_user.email, "admin")


@pytest.fixture()
def user_headers():
    return token_headers(999, "shopper@example.com", "user")


@pytest.fixture()
def order_factory(db_session):
    """Insert an order row directly, bypassing the checkout bridge"""
    def _create(status="pending", total="10.00", notes=None, email="buyer@example.com", name="Mario Rossi", **extra):
        order = Order(
            order_number=generate_order_number(),
            customer_email=email,
            customer_name=name,
            shipping_address={"email": email, "country": "IT"},
            items=[{"id": "1", "name": "Velo Ice", "packSize": 1, "price": float(total), "quantity": 1, "image": None}],
            subtotal=Decimal(total),
            shipping_cost=Decimal("0"),
            total=Decimal(total),
            status=status,
            notes=merge_notes(None, notes) if notes is not None else None,
            **extra,
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order
    return _create


def checkout_body(**overrides) -> dict:
    body = {
        "operation": "create_checkout",
        "customer": {
            "firstName": "Mario",
            "lastName": "Rossi",
            "email": "mario@example.com",
            "phone": "+39 333 1234567",
            "address": "Via Roma 1",
            "city": "Milano",
            "postalCode": "20100",
            "country": "it",
        },
        "cart": [
            {"id": 7, "name": "Velo Ice Cool", "packSize": 10, "price": 4.99, "quantity": 3, "image": "https://img.test/velo.png"},
        ],
        "locale": "it",
        "currency": "EUR",
    }
    body.update(overrides)
    return body
