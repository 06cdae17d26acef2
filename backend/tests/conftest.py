"""
Pytest fixtures for StockPilot backend tests.

Provides the test application on in-memory SQLite, a per-test table wipe,
staff accounts, sample catalogue data and auth header helpers.
"""

from datetime import date

import pytest

from stockpilot import create_app
from stockpilot.extensions import cache, db
from stockpilot.models import Category, Customer, CustomerCategory, Product, User
from stockpilot.services.auth_service import hash_password

PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'CACHE_TYPE': 'SimpleCache',
        'CLOUDINARY_URL': None,
        'CLOUDINARY_CLOUD_NAME': None,
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
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        cache.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, *, name, email, role):
    user = User(name=name, email=email, password_hash=hash_password(PASSWORD), role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, name="Alex Admin", email="admin@stockpilot.test", role="admin")


@pytest.fixture(scope='function')
def employee_user(db_session):
    return _make_user(db_session, name="Emery Employee", email="employee@stockpilot.test", role="employee")


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Beverages", description="Drinks")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def product(db_session, category):
    """Product with stock 5 and no batches (stock not yet tracked by batch)."""
    p = Product(
        sku="TEA-001",
        name="Green Tea",
        category_id=category.id,
        unit_of_measure="box",
        price_cents=1500,
        cost_cents=900,
        stock=5,
        low_stock_threshold=10,
    )
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def empty_product(db_session, category):
    p = Product(
        sku="COF-001",
        name="Coffee Beans",
        category_id=category.id,
        price_cents=2500,
        cost_cents=1200,
        stock=0,
        low_stock_threshold=3,
    )
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def customer_category(db_session):
    cc = CustomerCategory(name="Wholesale", code="WHOLESALE", is_active=True)
    db_session.add(cc)
    db_session.commit()
    return cc


@pytest.fixture(scope='function')
def customer(db_session, customer_category):
    c = Customer(
        name="Linh Tran",
        customer_code="KH001",
        email="linh@example.com",
        phone="0901234567",
        category_id=customer_category.id,
    )
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture
def expiry():
    return date(2031, 6, 30)


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email, PASSWORD))


@pytest.fixture(scope='function')
def employee_headers(client, employee_user):
    return auth_headers(get_auth_token(client, employee_user.email, PASSWORD))


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
