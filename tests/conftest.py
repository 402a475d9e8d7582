import json
import os

# Configure before any project module reads the environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_SECRET"] = "test-admin-secret"
os.environ["SMTP_HOST"] = ""
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from core.database import Base, SessionLocal, engine, get_db, init_db
from models.product import Product
from models.user import User
from utils.payments import (
    GatewayError,
    PaymentLineItem,
    PaymentSession,
    SessionNotFound,
    WebhookVerificationError,
)
from utils.settlement import get_gateway, get_notifier


def make_session(
    session_id="sess_123",
    payment_status="paid",
    amount_total=15000,
    lines=(("p1", 2, 7500),),
    order_number="ORDER-1",
    user_id="u1",
    shipping=None,
    metadata=None,
):
    if shipping is None:
        shipping = {
            "name": "Jane Buyer",
            "email": "jane@example.com",
            "phone": "0501234567",
            "address": "1 Market Street",
            "city": "Dubai",
            "state": "Dubai",
            "country": "AE",
            "postalCode": "00000",
            "shippingMethod": "standard",
        }
    if metadata is None:
        metadata = {
            "orderNumber": order_number,
            "userId": user_id,
            "shippingDetails": json.dumps(shipping),
        }
    return PaymentSession(
        id=session_id,
        payment_status=payment_status,
        amount_total=amount_total,
        currency="aed",
        customer_email="jane@example.com",
        metadata=metadata,
        line_items=[PaymentLineItem(product_id=p, quantity=q, unit_amount=u) for p, q, u in lines],
    )


class FakeGateway:
    def __init__(self):
        self.sessions = {}
        self.created = []
        self.fail_create = False
        self.unavailable = False
        self.webhook_configured = True

    def add(self, session):
        self.sessions[session.id] = session
        return session

    def retrieve_session(self, session_id):
        if self.unavailable:
            raise GatewayError("connection reset")
        if session_id not in self.sessions:
            raise SessionNotFound(session_id)
        return self.sessions[session_id]

    def create_checkout_session(self, params):
        if self.fail_create:
            raise GatewayError("card_declined")
        self.created.append(params)
        sid = f"cs_test_{len(self.created)}"
        return {"sessionId": sid, "sessionUrl": f"https://checkout.stripe.test/{sid}"}

    def construct_event(self, payload, sig_header):
        if not self.webhook_configured:
            raise GatewayError("STRIPE_WEBHOOK_SECRET not configured")
        if sig_header != "valid-signature":
            raise WebhookVerificationError("invalid signature")
        return json.loads(payload)


class FakeNotifier:
    def __init__(self, fail=False, raise_error=False):
        self.sent = []
        self.fail = fail
        self.raise_error = raise_error

    def send_order_confirmation(self, email, order):
        if self.raise_error:
            raise RuntimeError("smtp exploded")
        self.sent.append((email, order))
        if self.fail:
            return {"success": False, "error": "Email service not configured"}
        return {"success": True, "error": None}


@pytest.fixture
def db():
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def catalog(db):
    """Vendor v1 selling p1; house product p2 without a vendor."""
    db.add_all([
        User(id="v1", email="vendor1@example.com", name="Vendor One", is_vendor=True, balance=0, commission=0),
        User(id="v2", email="vendor2@example.com", name="Vendor Two", is_vendor=True, balance=0, commission=0),
        User(id="u1", email="jane@example.com", name="Jane Buyer"),
    ])
    db.flush()
    db.add_all([
        Product(id="p1", title="Ceramic Mug", slug="ceramic-mug", sku="MUG-1", image_url="https://cdn.test/mug.png",
                product_price=Decimal("75.00"), product_stock=10, qty=10, vendor_id="v1"),
        Product(id="p2", title="Gift Card", slug="gift-card", sku="GIFT-1", image_url=None,
                product_price=Decimal("20.00"), product_stock=5, qty=5, vendor_id=None),
        Product(id="p3", title="Linen Towel", slug="linen-towel", sku="TWL-1", image_url="https://cdn.test/towel.png",
                product_price=Decimal("40.00"), product_stock=10, qty=10, vendor_id="v2"),
    ])
    db.commit()
    return db


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def client(catalog, gateway, notifier):
    from main import app

    def _get_db():
        s = SessionLocal()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
