"""
Shared fixtures for the escrow ledger tests.

Every test gets a fresh Flask app on in-memory SQLite with the schema created
from the models, a seller with a bank payout method, an admin, and a product
priced at 100.
"""

import json

import pytest

from app import create_app
from app.extensions import db as _db
from app.ledger import create_order, mark_paid
from app.models import Product, User
from app.utils.jwt_utils import create_access_token

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "SECRET_KEY": "test-secret-key-0123456789",
    "PLATFORM_FEE_PERCENTAGE": 10,
    "HOLDING_PERIOD_DAYS": 7,
    "MIN_PAYOUT_AMOUNT": 50,
    "PAYOUT_METHODS": ("bank", "paypal", "crypto"),
    "ESCROW_CURRENCY": "USD",
    "PAYOUT_ALLOCATION": "fifo",
    "SMS_WEBHOOK_SECRET": "sms-secret",
    "CARD_WEBHOOK_SECRET": "card-secret",
    "CRON_SECRET": "cron-secret",
    "COINREMITTER_API_KEY": "",
    "COINREMITTER_PASSWORD": "",
    "NOTIFY_WEBHOOK_URL": "",
    "TELEGRAM_BOT_TOKEN": "",
    "TELEGRAM_CHAT_ID": "",
    "ENABLE_SCHEDULER": False,
}


@pytest.fixture
def app():
    app = create_app(dict(TEST_CONFIG))
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def seller(db):
    u = User(
        name="Seller One",
        email="seller@example.com",
        role="seller",
        payout_method="bank",
        bank_details=json.dumps({"bank_name": "Test Bank", "account_number": "0011223344"}),
    )
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def other_seller(db):
    u = User(name="Seller Two", email="seller2@example.com", role="seller")
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def admin(db):
    u = User(name="Admin", email="admin@example.com", role="admin")
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def product(db, seller):
    p = Product(user_id=seller.id, title="Course", kind="course", price=100.0)
    db.session.add(p)
    db.session.commit()
    return p


@pytest.fixture
def auth_header():
    def _make(user):
        return {"Authorization": f"Bearer {create_access_token(int(user.id))}"}

    return _make


@pytest.fixture
def make_order(product):
    """Create a PENDING order for ``product``; returns the order dict."""

    def _make(channel="manual", quantity=1, **buyer):
        res = create_order([{"id": product.id, "quantity": quantity}], channel, buyer or None)
        assert res.ok, res.to_dict()
        return res.data["order"]

    return _make


@pytest.fixture
def paid_order(make_order):
    def _make(**buyer):
        order = make_order(**buyer)
        res = mark_paid(order["id"])
        assert res.ok and res.changed
        return order

    return _make
