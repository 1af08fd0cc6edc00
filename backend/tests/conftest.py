"""
Pytest fixtures for ShopDesk backend tests.

Provides test database setup, users of both roles, catalog fixtures and the
test client.
"""

import pytest

from shopdesk import create_app
from shopdesk.extensions import db
from shopdesk.models import User, Client, Product
from shopdesk.models.auth import ROLE_ADMIN, ROLE_USER
from shopdesk.services.auth_service import hash_password

PASSWORD = "Password123!"

_password_hash_cache = {}


def _password_hash() -> str:
    # bcrypt at cost 12 is slow; one hash serves every fixture user
    if PASSWORD not in _password_hash_cache:
        _password_hash_cache[PASSWORD] = hash_password(PASSWORD)
    return _password_hash_cache[PASSWORD]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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


def _make_user(db_session, email: str, role: str, full_name: str) -> User:
    user = User(
        email=email,
        full_name=full_name,
        password_hash=_password_hash(),
        role=role,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin@shop.local", ROLE_ADMIN, "Ana Admin")


@pytest.fixture(scope='function')
def operator(db_session):
    """Regular (non-admin) user."""
    return _make_user(db_session, "operator@shop.local", ROLE_USER, "Otto Operator")


@pytest.fixture(scope='function')
def other_operator(db_session):
    return _make_user(db_session, "other@shop.local", ROLE_USER, "Olga Other")


@pytest.fixture(scope='function')
def shop_client(db_session):
    """A buying client (named to avoid clashing with the Flask test client)."""
    c = Client(name="Maria Silva", phone="555-0100", email="maria@example.com")
    db_session.add(c)
    db_session.commit()
    return c


def make_product(db_session, *, name: str, code: str, price_cents: int, stock: int, min_stock: int = 5) -> Product:
    product = Product(
        name=name,
        code=code,
        price_cents=price_cents,
        stock_quantity=stock,
        min_stock_threshold=min_stock,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session):
    """Product A at 10.00 with 10 in stock."""
    return make_product(db_session, name="Product A", code="PROD-A", price_cents=1000, stock=10)


@pytest.fixture(scope='function')
def product_b(db_session):
    """Product B at 5.00 with 4 in stock."""
    return make_product(db_session, name="Product B", code="PROD-B", price_cents=500, stock=4)


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
def operator_headers(client, operator):
    return auth_headers(get_auth_token(client, operator.email))
