"""
Pytest fixtures for RetailPOS backend tests.

Provides test database setup, master-data factories, and test client.
"""

from datetime import timedelta

import pytest
from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import (
    Store,
    Product,
    PaymentMethod,
    CustomerDiscount,
    Customer,
    Discount,
)
from retailpos.services import inventory_service
from retailpos.time_utils import utctoday


CASHIER_ID = 101
MANAGER_ID = 202


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SEQUENCE_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    """Create the main store."""
    store = Store(name="Main Street", code="MAIN", is_active=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session):
    """Create a second store (transfer destination, foreign store)."""
    store = Store(name="City Mall", code="MALL", is_active=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def make_product(db_session, store):
    """
    Factory: create a product, optionally stocked in the main store.

    Stock is received through the ledger so the opening purchase movement
    and average cost exist like in production.
    """
    counter = {"n": 0}

    def _make(name="Product", price_cents=1000, cost_cents=600, stock=0, store_id=None, minimum_stock=0):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:04d}",
            name=name,
            price_cents=price_cents,
            cost_cents=cost_cents,
            minimum_stock=minimum_stock,
            is_active=True,
        )
        db_session.add(product)
        db_session.commit()
        if stock:
            inventory_service.receive_stock(
                store_id=store_id or store.id,
                product_id=product.id,
                quantity=stock,
                unit_cost_cents=cost_cents,
                user_id=MANAGER_ID,
                notes="Opening stock",
            )
        return product

    return _make


@pytest.fixture(scope='function')
def cash(db_session):
    method = PaymentMethod(code="CASH", name="Cash", fee_percentage_bps=0, fee_fixed_cents=0, is_active=True)
    db_session.add(method)
    db_session.commit()
    return method


@pytest.fixture(scope='function')
def card(db_session):
    """Card payments: 1.5% + 100 cents fee."""
    method = PaymentMethod(code="CARD", name="Card", fee_percentage_bps=150, fee_fixed_cents=100, is_active=True)
    db_session.add(method)
    db_session.commit()
    return method


@pytest.fixture(scope='function')
def gold_tier(db_session):
    """5% membership tier, no minimum, no cap."""
    tier = CustomerDiscount(name="Gold", discount_percentage_bps=500, minimum_purchase_cents=0, is_active=True)
    db_session.add(tier)
    db_session.commit()
    return tier


@pytest.fixture(scope='function')
def member(db_session, gold_tier):
    customer = Customer(code="CUST-0001", name="Gold Member", customer_discount_id=gold_tier.id)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def make_discount(db_session):
    """Factory: create a promo discount (percentage 10% by default)."""
    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        values = {
            "name": f"Promo {counter['n']}",
            "code": f"PROMO{counter['n']}",
            "type": "percentage",
            "value": 1000,
            "is_active": True,
            "start_date": utctoday() - timedelta(days=1),
            "end_date": utctoday() + timedelta(days=30),
        }
        values.update(kwargs)
        discount = Discount(**values)
        db_session.add(discount)
        db_session.commit()
        return discount

    return _make


def actor_headers(user_id: int = CASHIER_ID) -> dict:
    """Helper to create the actor header forwarded by the gateway."""
    return {'X-User-Id': str(user_id)}
