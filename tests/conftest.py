import os
import tempfile
from decimal import Decimal

import pytest
import requests

# srodowisko testowe musi byc ustawione przed importem app.*
_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["PAYMENT_MODE"] = "synthetic"
os.environ["APP_ENV"] = "test"

from app.data import models  # noqa: E402,F401
from app.data.database import Base, SessionLocal, engine  # noqa: E402
from app.data.models import ProductModel  # noqa: E402
from app.services.order_service import BillingInfo  # noqa: E402
from app.services.payment_gateway import (  # noqa: E402
    RazorpayGateway,
    SyntheticGateway,
    reset_gateway,
    set_gateway,
)

GATEWAY_KEY_ID = "rzp_test_key"
GATEWAY_SECRET = "test_shared_secret"


class FakeResponse:
    def __init__(self, status_code: int, payload: dict):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


class FakeRazorpaySession:
    """Udaje REST procesora platnosci: /orders i /payments/{id}."""

    def __init__(self):
        self.auth = None
        self.orders: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.timeouts_before_create = 0
        self.lost_create_responses = 0
        self.reject_status: int | None = None

    def request(self, method, url, timeout=None, params=None, json=None):
        path = url.split("/v1", 1)[1]
        self.calls.append((method, path))

        if method == "GET" and path == "/orders":
            items = [o for o in self.orders.values() if o["receipt"] == params["receipt"]]
            return FakeResponse(200, {"entity": "collection", "count": len(items), "items": items})

        if method == "POST" and path == "/orders":
            if self.reject_status:
                return FakeResponse(self.reject_status, {"error": {"code": "BAD_REQUEST_ERROR"}})
            if self.timeouts_before_create:
                self.timeouts_before_create -= 1
                raise requests.Timeout("connect timed out")
            order = {
                "id": f"order_{len(self.orders) + 1:014d}",
                "entity": "order",
                "amount": json["amount"],
                "currency": json["currency"],
                "receipt": json["receipt"],
                "notes": json["notes"],
                "status": "created",
            }
            self.orders[order["id"]] = order
            if self.lost_create_responses:
                # utworzone po stronie procesora, klient widzi timeout
                self.lost_create_responses -= 1
                raise requests.Timeout("read timed out")
            return FakeResponse(200, order)

        if method == "GET" and path.startswith("/payments/"):
            payment_id = path.rsplit("/", 1)[1]
            return FakeResponse(200, {"id": payment_id, "entity": "payment", "method": "upi", "status": "captured"})

        return FakeResponse(404, {"error": {"code": "NOT_FOUND"}})

    def create_calls(self):
        return [c for c in self.calls if c == ("POST", "/orders")]


class FakeLockService:
    def __init__(self):
        self.held: dict[str, str] = {}
        self.acquired: list[str] = []

    def acquire(self, key, owner, ttl):
        if key in self.held:
            return False
        self.held[key] = owner
        self.acquired.append(key)
        return True

    def release(self, key, owner):
        if self.held.get(key) == owner:
            del self.held[key]
            return True
        return False


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    engine.dispose()


@pytest.fixture(autouse=True)
def synthetic_gateway():
    gateway = SyntheticGateway()
    set_gateway(gateway)
    yield gateway
    reset_gateway()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def fake_session():
    return FakeRazorpaySession()


@pytest.fixture
def live_gateway(fake_session):
    return RazorpayGateway(GATEWAY_KEY_ID, GATEWAY_SECRET, session=fake_session)


@pytest.fixture
def lock_service():
    return FakeLockService()


@pytest.fixture
def make_product(db):
    def _make(product_id: str, price: str, stock: int, name: str | None = None):
        product = ProductModel(
            id=product_id,
            name=name or product_id,
            price=Decimal(price),
            stock_quantity=stock,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def stock_of():
    def _stock(product_id: str) -> int:
        session = SessionLocal()
        try:
            return session.get(ProductModel, product_id).stock_quantity
        finally:
            session.close()

    return _stock


@pytest.fixture
def billing():
    return BillingInfo(
        billing_address={"line1": "12 MG Road", "city": "Jaipur", "postal_code": "302001", "country": "IN"},
        shipping_address={"line1": "12 MG Road", "city": "Jaipur", "postal_code": "302001", "country": "IN"},
        contact_email="buyer@example.com",
        contact_phone="+919800000000",
    )
