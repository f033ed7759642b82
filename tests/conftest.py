"""
tests/conftest.py -- Shared test fixtures for Credgate unit and integration tests.

This module provides:
  - settings / store / service: unit-level components over an in-memory DB
  - FakeMailer: records sent messages, or raises DeliveryError on demand
  - api: TestClient over the real FastAPI app with a patched lifespan, an
    admin account and its token

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

DEBUG, BCRYPT_ROUNDS and ALLOWED_HOSTS must be set before any app import so
Settings can be built without a real SECRET_KEY, hashing stays fast, and
TestClient's "testserver" Host passes TrustedHostMiddleware.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

# CRITICAL: set before any core/auth/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.errors import DeliveryError
from auth.models import Role
from auth.reset import ResetTokenGenerator
from auth.service import CredentialService
from auth.store import UserStore
from auth.tokens import TokenSigner
from core.config import Settings

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class SentMail:
    to: str
    subject: str
    body: str


@dataclass
class FakeMailer:
    """Mailer double. Set fail=True to simulate a relay outage or timeout."""

    fail: bool = False
    sent: list[SentMail] = field(default_factory=list)

    def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise DeliveryError("simulated SMTP timeout")
        self.sent.append(SentMail(to, subject, body))


class Clock:
    """Settable clock for TokenSigner / ResetTokenGenerator."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def make_settings(**overrides) -> Settings:
    values = {"debug": True, "secret_key": TEST_SECRET, "bcrypt_rounds": 4}
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def service(settings: Settings, store: UserStore, mailer: FakeMailer) -> CredentialService:
    return CredentialService(settings, store, TokenSigner(settings), ResetTokenGenerator(settings), mailer)


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    admin_token: str
    admin_id: str
    mailer: FakeMailer
    store: UserStore
    signer: TokenSigner


def _patch_lifespan(settings: Settings, store: UserStore, signer: TokenSigner, service: CredentialService):
    """Return a lifespan that wires pre-built test components into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_store = store
        app.state.signer = signer
        app.state.credentials = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    The admin account (admin@example.com / adminpw1) is created before the
    client starts. Rate limiting is switched off so tests can log in freely.
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    settings = make_settings()
    store = UserStore(db_url=f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    signer = TokenSigner(settings)
    mailer = FakeMailer()
    service = CredentialService(settings, store, signer, ResetTokenGenerator(settings), mailer)

    admin = service.create_user("Admin", "admin@example.com", "adminpw1", Role.admin)
    token = signer.issue(admin.id)

    app.router.lifespan_context = _patch_lifespan(settings, store, signer, service)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client, token, admin.id, mailer, store, signer)

    limiter.enabled = True
    store.close()
