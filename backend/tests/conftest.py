"""
Pytest fixtures for shiftpos tests.

Provides an in-memory app, per-test table wipe, and factories for
products, shift managers, and the checkout/void processors.
"""

from datetime import timedelta

import pytest
from shiftpos import create_app
from shiftpos.extensions import db
from shiftpos.models import Product, Sale, Shift
from shiftpos.services import catalog_service, settings_service
from shiftpos.services.cart import Cart
from shiftpos.services.checkout_service import TransactionProcessor
from shiftpos.services.shift_service import ShiftManager
from shiftpos.services.void_service import VoidReconciler


TERMINAL = "T1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TERMINAL_ID': TERMINAL,
        'DEFAULT_TAX_RATE_PERCENT': '0',
        'SHIFT_DAILY_ROTATION': True,
        'SETTLEMENT_MAX_ATTEMPTS': 3,
        'SETTLEMENT_BACKOFF_BASE': 0,
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
    """Fresh tables for each test."""
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
def make_product(db_session):
    """Factory: make_product(price_cents=500, stock_quantity=10, ...)."""
    counter = {"n": 0}

    def _make(price_cents=500, stock_quantity=10, reorder_level=0, name=None, cost_cents=0):
        counter["n"] += 1
        return catalog_service.create_product(
            name or f"Item {counter['n']}",
            price_cents,
            category="services",
            cost_cents=cost_cents,
            stock_quantity=stock_quantity,
            reorder_level=reorder_level,
        )

    return _make


@pytest.fixture(scope='function')
def tax_rate(db_session):
    """Setter for the store tax rate."""
    def _set(percent):
        settings_service.set_setting("tax_rate_percent", percent)
    return _set


@pytest.fixture(scope='function')
def shift_manager(db_session):
    return ShiftManager(TERMINAL)


@pytest.fixture(scope='function')
def processor(shift_manager):
    return TransactionProcessor(shift_manager, sleep=lambda seconds: None)


@pytest.fixture(scope='function')
def reconciler(shift_manager):
    return VoidReconciler(shift_manager)


@pytest.fixture(scope='function')
def cart_with(db_session):
    """Factory: cart_with((product, qty), ...) -> Cart."""
    def _build(*entries):
        cart = Cart()
        for product, quantity in entries:
            cart.add(product, quantity)
        return cart
    return _build


def reload(model, ident):
    """Re-read a row after commits from the service layer."""
    db.session.expire_all()
    return db.session.get(model, ident)


def backdate(shift: Shift, days: int = 1):
    shift.start_time = shift.start_time - timedelta(days=days)
    db.session.commit()


def open_shift_count(terminal_id: str = TERMINAL) -> int:
    return db.session.query(Shift).filter_by(terminal_id=terminal_id, closed=False).count()


def sale_count() -> int:
    return db.session.query(Sale).count()


def stock_of(product_id: int) -> int:
    return reload(Product, product_id).stock_quantity
