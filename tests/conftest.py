"""Shared fixtures: in-memory database, app client, user factory."""

import os

# Settings are read once at import time, so the environment must be in place
# before any application module is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-0123456789abcdef0123456789abcdef"
os.environ["ENVIRONMENT"] = "test"
os.environ["PASSWORD_HASH_ROUNDS"] = "1000"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
import models.user            # noqa: F401
import models.audit_log       # noqa: F401
import models.password_reset  # noqa: F401
import models.family_tree     # noqa: F401
import models.onboarding      # noqa: F401


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register_user(client):
    """Register an account and return ``(user, token)``.  The cookie jar is
    cleared afterwards so each test chooses how to authenticate."""

    def _register(email="user@example.com", password="secret1", display_name="User"):
        res = client.post(
            "/auth/register",
            json={"email": email, "password": password, "displayName": display_name},
        )
        assert res.status_code == 200, res.text
        client.cookies.clear()
        body = res.json()
        return body["user"], body["token"]

    return _register
