"""Shared test fixtures for the connectpay test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, fake Stripe keys)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: a seller with an enabled connected account, plus a buyer
- make_event: builder for Stripe-shaped webhook event dicts
"""

import itertools

import pytest

from connectpay import create_app
from connectpay.extensions import db as _db
from connectpay.models.connected_account import ConnectedAccount
from connectpay.models.user import User


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_data(app, db_session):
    """Seed a seller (with an enabled connected account), an unonboarded
    seller and a buyer.

    Returns plain IDs so tests can use them after the session expires
    objects on commit.
    """
    seller = User(email="seller@shop.test", name="Sam Seller")
    pending_seller = User(email="pending@shop.test", name="Pat Pending")
    buyer = User(email="buyer@shop.test", name="Bea Buyer")
    _db.session.add_all([seller, pending_seller, buyer])
    _db.session.flush()

    account = ConnectedAccount(
        user_id=seller.id,
        stripe_account_id="acct_seller_123",
        charges_enabled=True,
        payouts_enabled=True,
        details_submitted=True,
        country="JP",
        default_currency="jpy",
    )
    pending_account = ConnectedAccount(
        user_id=pending_seller.id,
        stripe_account_id="acct_pending_456",
    )
    _db.session.add_all([account, pending_account])
    _db.session.commit()

    return {
        "seller_id": seller.id,
        "pending_seller_id": pending_seller.id,
        "buyer_id": buyer.id,
        "account_id": account.id,
        "stripe_account_id": account.stripe_account_id,
        "pending_account_id": pending_account.id,
        "pending_stripe_account_id": pending_account.stripe_account_id,
    }


_event_ids = itertools.count(1)


@pytest.fixture
def make_event():
    """Build a Stripe-shaped event dict: make_event(type, object, id=None)."""

    def _make(event_type, obj, event_id=None):
        return {
            "id": event_id or f"evt_test_{next(_event_ids):04d}",
            "object": "event",
            "type": event_type,
            "livemode": False,
            "api_version": "2025-09-30.clover",
            "request": {"id": None, "idempotency_key": None},
            "data": {"object": obj},
        }

    return _make
