"""
Pytest fixtures for STOQ backend tests.

Provides test database setup, user/inventory fixtures, and test client.
"""

import pytest
from stoq import create_app
from stoq.config import TestingConfig
from stoq.extensions import db
from stoq.models import User, InventoryItem, TaxRate
from stoq.models.auth import ROLE_ADMIN, ROLE_USER, APPROVAL_APPROVED, APPROVAL_PENDING
from stoq.services.auth_service import hash_password
from stoq.time_utils import parse_iso_date


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)
    app.config.update({
        'COMPANY_NAME': 'STOQ Test Wholesale',
        'COMPANY_ADDRESS': '1 Test Way, Toronto, ON',
        'COMPANY_HST_NUMBER': '123456789RT0001',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(PASSWORD)


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


def _make_user(db_session, password_hash, email, role=ROLE_USER, approval=APPROVAL_APPROVED, **profile):
    user = User(
        email=email,
        password_hash=password_hash,
        role=role,
        approval_status=approval,
        is_active=True,
        **profile,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, password_hash):
    return _make_user(db_session, password_hash, "admin@stoq.test", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def customer(db_session, password_hash):
    """Approved wholesale buyer in Toronto."""
    return _make_user(
        db_session, password_hash, "buyer@shop.test",
        business_name="Phone Shop Inc",
        business_address="10 King St W",
        business_city="Toronto",
        business_state="Ontario",
        business_country="Canada",
        shipping_address="10 King St W, Toronto",
        billing_address="10 King St W, Toronto",
    )


@pytest.fixture(scope='function')
def pending_customer(db_session, password_hash):
    return _make_user(db_session, password_hash, "new@shop.test", approval=APPROVAL_PENDING)


@pytest.fixture(scope='function')
def ontario_hst(db_session):
    rate = TaxRate(
        country="Canada",
        state_province="Ontario",
        city=None,
        rate_bps=1300,
        tax_type="HST",
        effective_date=parse_iso_date("2020-01-01"),
    )
    db_session.add(rate)
    db_session.commit()
    return rate


def make_item(db_session, device_name, quantity=20, price_cents=50000, grade="A", storage="128GB",
              brand="Apple", selling_price_cents=None, is_active=True):
    item = InventoryItem(
        device_name=device_name,
        brand=brand,
        grade=grade,
        storage=storage,
        quantity=quantity,
        price_per_unit_cents=price_cents,
        selling_price_cents=selling_price_cents,
        price_change="stable",
        is_active=is_active,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def inventory(db_session):
    """A small catalogue spread across every price range and stock status."""
    return {
        "iphone": make_item(db_session, "iPhone 13", quantity=25, price_cents=47500),
        "pixel": make_item(db_session, "Pixel 7", quantity=8, price_cents=30000, brand="Google", grade="B"),
        "galaxy": make_item(db_session, "Galaxy S21", quantity=3, price_cents=15000, brand="Samsung", grade="C",
                            storage="256GB"),
        "moto": make_item(db_session, "Moto G", quantity=0, price_cents=9900, brand="Motorola", grade="D",
                          storage="64GB"),
    }


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
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


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email))


@pytest.fixture(scope='function')
def customer_headers(client, customer):
    return auth_headers(get_auth_token(client, customer.email))
