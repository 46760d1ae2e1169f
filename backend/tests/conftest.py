"""
Pytest fixtures for RRSA backend tests.

Provides a controllable clock, an in-memory document store, the Flask app
and test client, and login helpers for the seeded accounts.
"""

from datetime import datetime, timedelta

import pytest

from rrsa import create_app
from rrsa.extensions import get_store
from rrsa.services.document_backends import MemoryDocumentBackend
from rrsa.services.document_store import DocumentStore
from rrsa.services.schema_migrator import SEED_PASSWORD


START = datetime(2026, 10, 19, 12, 0, 0)


class FakeClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope='function')
def clock():
    return FakeClock()


@pytest.fixture(scope='function')
def backend():
    return MemoryDocumentBackend()


@pytest.fixture(scope='function')
def store(backend, clock):
    """Initialized store over a fresh seed."""
    store = DocumentStore(backend, clock=clock)
    store.init()
    return store


@pytest.fixture(scope='function')
def app(backend, clock):
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'RRSA_DOCUMENT_BACKEND': 'memory',
        },
        backend=backend,
        clock=clock,
    )
    yield app


@pytest.fixture(scope='function')
def app_store(app):
    """The store the app under test is using."""
    return get_store(app)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


def get_auth_token(client, username: str, password: str = SEED_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def commissioner_headers(client):
    return auth_headers(get_auth_token(client, 'mrv'))


@pytest.fixture(scope='function')
def executive_headers(client):
    """EVP: every capability except full user management and import."""
    return auth_headers(get_auth_token(client, 'vp_pox'))


@pytest.fixture(scope='function')
def manager_headers(client):
    """RRFL league manager."""
    return auth_headers(get_auth_token(client, 'rrfl_mgr'))


@pytest.fixture(scope='function')
def head_refs_headers(client):
    return auth_headers(get_auth_token(client, 'head_refs'))


@pytest.fixture(scope='function')
def official_headers(client):
    """Baseline RRFL official."""
    return auth_headers(get_auth_token(client, 'ref_ava'))


@pytest.fixture(scope='function')
def media_headers(client):
    return auth_headers(get_auth_token(client, 'media_team'))
