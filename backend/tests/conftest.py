"""
Pytest fixtures for Nexus POS backend tests.

Provides an in-memory database, two isolated businesses, one user of
each type, a stocked product, a register and an open cashier shift.
"""

import pytest

from nexuspos import create_app
from nexuspos.context import AuthContext
from nexuspos.extensions import db
from nexuspos.services import auth_service, inventory_service, products_service, session_service, shift_service


PASSWORD = "Password123!"
OWNER_PIN = "1234"
ADMIN_PIN = "2468"
CASHIER_PIN = "1357"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
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
    """Empty every table before each test."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    db.session.rollback()


def make_ctx(user) -> AuthContext:
    return AuthContext(user_id=user.id, business_id=user.business_id)


@pytest.fixture
def business_owner(db_session):
    """Business A and its owner."""
    return auth_service.register_business(
        business_name="Abarrotes A",
        location="Centro 1",
        business_phone="5550000001",
        first_name="Olivia",
        paternal_last_name="Owner",
        email="owner@a.test",
        phone="5551000001",
        password=PASSWORD,
        pin=OWNER_PIN,
    )


@pytest.fixture
def business(business_owner):
    return business_owner[0]


@pytest.fixture
def owner(business_owner):
    return business_owner[1]


@pytest.fixture
def owner_ctx(owner):
    return make_ctx(owner)


@pytest.fixture
def admin(owner_ctx):
    return auth_service.register_user(
        owner_ctx,
        first_name="Adam",
        paternal_last_name="Admin",
        email="admin@a.test",
        phone="5551000002",
        password=PASSWORD,
        pin=ADMIN_PIN,
    )


@pytest.fixture
def admin_ctx(admin):
    return make_ctx(admin)


@pytest.fixture
def cashier(admin_ctx):
    return auth_service.register_user(
        admin_ctx,
        first_name="Carla",
        paternal_last_name="Cashier",
        email="cashier@a.test",
        phone="5551000003",
        password=PASSWORD,
        pin=CASHIER_PIN,
    )


@pytest.fixture
def cashier_ctx(cashier):
    return make_ctx(cashier)


@pytest.fixture
def other_owner(db_session):
    """Owner of business B, a second tenant."""
    _, owner_b = auth_service.register_business(
        business_name="Tienda B",
        location="Norte 2",
        business_phone="5550000002",
        first_name="Bruno",
        paternal_last_name="Other",
        email="owner@b.test",
        phone="5552000001",
        password=PASSWORD,
        pin=OWNER_PIN,
    )
    return owner_b


@pytest.fixture
def other_ctx(other_owner):
    return make_ctx(other_owner)


@pytest.fixture
def product(owner_ctx):
    """Stocked product: price 50.00, cost 30.00, IVA 16%, 10 units on hand."""
    item = products_service.create_product(
        owner_ctx,
        name="Coffee 500g",
        barcode="7501000000011",
        cost_cents=3000,
        price_cents=5000,
        min_stock_level=2,
    )
    inventory_service.record_stock_entry(owner_ctx, item.id, 10, reason="Initial stock")
    return item


@pytest.fixture
def exempt_product(owner_ctx):
    """Stocked tax-exempt product: price 20.00, 5 units on hand."""
    item = products_service.create_product(
        owner_ctx,
        name="Tortillas 1kg",
        barcode="7501000000028",
        cost_cents=1200,
        price_cents=2000,
        tax_type="EXENTO",
        tax_rate=0,
    )
    inventory_service.record_stock_entry(owner_ctx, item.id, 5)
    return item


@pytest.fixture
def register(owner_ctx):
    return shift_service.create_register(owner_ctx, "POS-01", location="Front counter")


@pytest.fixture
def cashier_shift(cashier_ctx, register):
    """Open shift for the cashier with 100.00 opening float."""
    return shift_service.open_shift(cashier_ctx, register.id, 10000)


def auth_headers(user_or_email, password: str = PASSWORD) -> dict:
    """Open a session directly and build the Authorization header."""
    email = user_or_email if isinstance(user_or_email, str) else user_or_email.email
    _, token = session_service.login(email, password)
    return {'Authorization': f'Bearer {token}'}
