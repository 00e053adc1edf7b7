"""
Shared pytest fixtures for the Todo Collaboration Service test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite, in-memory messaging)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - gateway: the app's InMemoryMessagingGateway, emptied per test
    - auth_headers: factory for Bearer headers of a given login name
    - alice / bob: identities, bob already provisioned as a Person
"""

import pytest

from todo_app import create_app
from todo_app.identity import IdentityContext
from todo_app.models import db as _db
from todo_app.services import person_service
from todo_app.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        app.extensions["messaging"].reset()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
        app.extensions["messaging"].reset()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def gateway(app):
    """The recording messaging gateway the app was built with."""
    return app.extensions["messaging"]


# ── Identity fixtures ────────────────────────────────────────────────────


@pytest.fixture()
def auth_headers():
    """Return a factory: auth_headers("bob") → {"Authorization": "Bearer ..."}."""

    def _make(name="alice", email=None):
        token = generate_access_token(name, email or f"{name}@example.com")
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture()
def alice():
    return IdentityContext(name="alice", email="alice@example.com")


@pytest.fixture()
def bob():
    """Bob's identity; his Person row exists so he can be invited."""
    identity = IdentityContext(name="bob", email="bob@example.com")
    person_service.get_or_create_person(identity)
    return identity
