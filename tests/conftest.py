"""Shared test configuration.

The environment is set before anything from ``portal_gateway`` is imported,
because configuration is read once at import time.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate_private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


TEST_PRIVATE_KEY_PEM = generate_private_key_pem()
ADMIN_EMAIL = "admin@example.com"
FRONTEND_URL = "http://portal.example.com"

os.environ.update(
    {
        "JWT_ALGORITHM": "RS256",
        "JWT_RSA_PRIVATE_KEY": TEST_PRIVATE_KEY_PEM,
        "JWT_KEY_ID": "test-key",
        "JWT_ISSUER": "portal.test",
        "JWT_AUDIENCE": "games.example.com,favor.example.com",
        "ADMIN_EMAILS": ADMIN_EMAIL,
        "FRONTEND_URL": FRONTEND_URL,
        "GOOGLE_CLIENT_ID": "google-client-id",
        "GOOGLE_CLIENT_SECRET": "google-client-secret",
        "QQ_APP_ID": "qq-app-id",
        "QQ_APP_KEY": "qq-app-key",
        "DATABASE_URL": "sqlite://",
        "COOKIE_SECURE": "false",
        "LOG_LEVEL": "WARNING",
    }
)

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from portal_gateway import models  # noqa: E402,F401 - register tables
from portal_gateway.api.deps import get_clock, get_codec  # noqa: E402
from portal_gateway.app import app  # noqa: E402
from portal_gateway.core import get_session  # noqa: E402
from portal_gateway.models import User  # noqa: E402
from portal_gateway.services.identity import IdentityResolver  # noqa: E402
from portal_gateway.services.kv import ExchangeStore, KVStore, RevocationStore  # noqa: E402
from portal_gateway.services.permissions import (  # noqa: E402
    PermissionEvaluator,
    PermissionService,
)
from portal_gateway.services.sessions import SessionManager  # noqa: E402


class FakeClock:
    """A clock tests can move forward by hand."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, **kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def codec():
    return get_codec()


@pytest.fixture
def evaluator():
    return PermissionEvaluator([ADMIN_EMAIL])


@pytest.fixture
def kv(session, clock):
    return KVStore(session, clock)


@pytest.fixture
def revocations(kv):
    return RevocationStore(kv)


@pytest.fixture
def exchange(kv):
    return ExchangeStore(kv)


@pytest.fixture
def identity(session, clock):
    return IdentityResolver(session, clock)


@pytest.fixture
def permissions(session, evaluator, clock):
    return PermissionService(session, evaluator, clock)


@pytest.fixture
def sessions(codec, revocations, permissions, clock):
    return SessionManager(
        codec,
        revocations,
        permissions,
        issuer="portal.test",
        audience=["games.example.com", "favor.example.com"],
        perm_version=1,
        clock=clock,
    )


@pytest.fixture
def make_user(session, clock):
    def _make_user(email: str, name: str = "Test User", **fields) -> User:
        user = User(email=email, name=name, created_at=clock(), updated_at=clock(), **fields)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def client(engine, clock):
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def bearer(sessions):
    """Authorization headers for a user, signed the same way the app signs."""

    def _bearer(user: User) -> dict:
        return {"Authorization": f"Bearer {sessions.issue(user)}"}

    return _bearer
