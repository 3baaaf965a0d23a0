"""
Pytest fixtures for orderpay backend tests.

Provides test database setup, a fake item API, and header helpers.
"""

import pytest
from orderpay import create_app
from orderpay.extensions import db
from orderpay.models import User
from orderpay.services.identity_service import issue_identity_token


API_KEY = "test-api-key"
ADMIN_API_KEY = "test-admin-key"


class FakeItemSource:
    """In-memory stand-in for the external item API."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.items = []
        self.error = None
        self.calls = 0

    def set_items(self, *items):
        self.items = [
            {"externalId": product_id, "name": name, "price": price}
            for product_id, name, price in items
        ]

    def fetch_items(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [dict(item) for item in self.items]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'API_KEY': API_KEY,
        'ADMIN_API_KEY': ADMIN_API_KEY,
        'CONSUMER_SITE_BASE_URL': 'https://shop.example',
        'CONSUMER_CORS_ORIGINS': ['https://shop.example'],
        'CATALOG_CLIENT': FakeItemSource(),
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
def catalog(app, db_session):
    """Fake item API, emptied for each test."""
    source = app.config['CATALOG_CLIENT']
    source.reset()
    return source


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory for prepaid accounts with a starting balance."""
    def _make(uid: str, balance: int = 0) -> User:
        user = User(uid=uid, balance=balance)
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def balance_of(db_session):
    """Committed balance, read past the session's identity map."""
    def _balance(uid: str):
        return db_session.query(User.balance).filter_by(uid=uid).scalar()
    return _balance


@pytest.fixture
def api_headers():
    return {'X-API-KEY': API_KEY}


@pytest.fixture
def admin_headers():
    return {'X-API-KEY': ADMIN_API_KEY}


@pytest.fixture
def identity_headers(app):
    """Factory for consumer Authorization headers."""
    def _headers(uid: str) -> dict:
        return {'Authorization': f'Bearer {issue_identity_token(uid)}'}
    return _headers
