"""
Shared fixtures: in-memory SQLite, a frozen clock and a TestClient with auth overridden.
"""

import os

# Settings are read at import time, so the environment must be in place first
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("USE_ALEMBIC", "false")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")
os.environ.setdefault("IDEMPOTENCY_BACKEND", "sql")
os.environ.setdefault("IDEMPOTENCY_WAIT_SECONDS", "0.2")
os.environ.setdefault("IDEMPOTENCY_POLL_INTERVAL_SECONDS", "0.05")
os.environ.setdefault("SKIP_JWT", "false")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from insurer_consent.db.base import Base
from insurer_consent.db.init_db import init_db
from insurer_consent.db.session import SessionLocal, engine
from insurer_consent.main import app
from insurer_consent.security.jwt import get_authorisation_server, get_current_client
from insurer_consent.utils import timeutil

T0 = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

TPP = {"tpp_client_id": "tpp-1", "tenant_id": "default", "roles": ["tpp"], "sub": "svc-tpp-1", "scope": "", "raw": {}}
AUTH_SERVER = {
    "tpp_client_id": "authorization-server",
    "tenant_id": "default",
    "roles": ["consents:authorise"],
    "sub": "svc-as",
    "scope": "",
    "raw": {},
}


class FrozenClock:
    """Stand-in for ``timeutil.utcnow`` that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def schema():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock(monkeypatch):
    frozen = FrozenClock(T0)
    monkeypatch.setattr(timeutil, "utcnow", frozen)
    return frozen


@pytest.fixture
def caller():
    """Mutable identity returned by the auth override; tests switch clients by editing it."""
    return dict(TPP)


@pytest.fixture
def api(caller, clock):
    app.dependency_overrides[get_current_client] = lambda: caller
    app.dependency_overrides[get_authorisation_server] = lambda: dict(AUTH_SERVER)
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def consent_body(permissions=None, days=30, now=T0, cpf="76109277673", cnpj=None):
    body = {
        "permissions": permissions or ["RESOURCES_READ", "CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ"],
        "expiration_at": (now + timedelta(days=days)).isoformat(),
        "logged_user": {"document": {"identification": cpf, "rel": "CPF"}},
    }
    if cnpj:
        body["business_entity"] = {"document": {"identification": cnpj, "rel": "CNPJ"}}
    return body
