"""
Pytest fixtures for back office tests.

Provides the app on in-memory SQLite, a per-test table wipe, a pinned
clock, a controllable certifier and small data builders.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.services import cash_box_service, inventory_service, products_service, sales_service
from backoffice.services.certifier import CertifiedDocument
from backoffice.time_utils import FixedClock


START = datetime(2025, 1, 15, 10, 0, 0)

ADMIN_ID = 1
CASHIER_ID = 2
OUTSIDER_ID = 3


class FakeCertifier:
    """Signs instantly; set fail_with to make the next calls raise."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.fail_with = None
        self.calls = []

    def sign(self, payload):
        self.calls.append(payload)
        if self.fail_with is not None:
            raise self.fail_with
        n = len(self.calls)
        return CertifiedDocument(
            uuid=f"TEST-UUID-{payload['sale_id']}-{n}",
            serie="TEST",
            number=str(n).zfill(8),
            signed_document="<dte:GTDocumento/>",
        )


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CLOCK': FixedClock(START),
        'CERTIFIER': FakeCertifier(),
        'CAPABILITIES': {
            str(ADMIN_ID): ["*"],
            str(CASHIER_ID): ["CREATE_SALE", "CONFIRM_SALE", "MANAGE_CASH_BOX"],
        },
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

        app.extensions["clock"].at = START
        app.extensions["certifier"].reset()
        app.config["ANNULMENT_MODE"] = "atomic"
        app.config["DEFAULT_TAX_RATE"] = Decimal("0.12")

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def clock(app, db_session):
    return app.extensions["clock"]


@pytest.fixture(scope='function')
def certifier(app, db_session):
    return app.extensions["certifier"]


@pytest.fixture(scope='function')
def no_tax(app, db_session):
    """Totals equal subtotals (keeps cash arithmetic round)."""
    app.config["DEFAULT_TAX_RATE"] = Decimal("0")


@pytest.fixture(scope='function')
def product(db_session):
    """Active product with a unit (x1, 10.00) and a box (x10, 90.00) presentation."""
    p = products_service.create_product("Paracetamol 500mg", barcode="7401000000001")
    products_service.add_presentation(p.id, "Unit", 1, "10.00")
    products_service.add_presentation(p.id, "Box x10", 10, "90.00")
    return p


@pytest.fixture(scope='function')
def other_product(db_session):
    p = products_service.create_product("Ibuprofen 400mg", barcode="7401000000002")
    products_service.add_presentation(p.id, "Unit", 1, "5.00")
    return p


@pytest.fixture(scope='function')
def open_box(db_session):
    return cash_box_service.open_cash_box(ADMIN_ID, "100.00")


def presentation_of(product, name="Unit"):
    return next(pr for pr in product.presentations if pr.name == name)


def stock(product, quantity, batch_number="B-1", expiration=date(2025, 12, 31)):
    return inventory_service.add_stock(product.id, batch_number, expiration, quantity, ADMIN_ID)


def completed_sale(product, quantity=1, presentation="Unit", user_id=ADMIN_ID):
    """Pending sale with one item, confirmed. Needs stock and an open box."""
    sale = sales_service.create_sale(user_id)
    sales_service.add_item(sale.id, product.id, presentation_of(product, presentation).id, quantity)
    return sales_service.confirm_sale(sale.id)


def headers(actor_id=ADMIN_ID) -> dict:
    """Helper to create actor headers."""
    return {'X-Actor-Id': str(actor_id)}
