"""
tests/conftest.py -- Shared test fixtures for the HonestInvoice auth subsystem.

This module provides:
  - clock: a controllable fake clock injected wherever code reads "now"
  - local_store: an in-memory LocalStore (single sqlite3 connection)
  - user_store: a file-backed UserStore under tmp_path
  - make_assertion: builds provider-shaped ID tokens (signature never checked)
  - fake_verifier: async AssertionVerifier double that can hold a verification
    in flight until the test releases it
  - api_client: TestClient for the verification service with a patched lifespan

Design: UserStore uses a file under tmp_path rather than :memory: because the
session core calls the store from a worker thread (asyncio.to_thread), and
SQLAlchemy gives each thread its own connection -- a plain :memory: database
would present a blank schema to the worker.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from api.limiter import limiter
from api.main import app
from auth.models import VerifiedIdentity
from auth.store import UserStore
from auth.tokens import read_claimed_identity
from auth.verifier import IdentityVerifier
from storage.local import LocalStore

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable returning a settable epoch-seconds value."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def local_store() -> Generator[LocalStore, None, None]:
    store = LocalStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def user_store(tmp_path) -> Generator[UserStore, None, None]:
    store = UserStore(db_url=f"sqlite:///{tmp_path / 'auth_test.db'}")
    yield store
    store.close()


# ---------------------------------------------------------------------------
# Assertions and verifier double
# ---------------------------------------------------------------------------


@pytest.fixture
def make_assertion() -> Callable[..., str]:
    """Return a factory for provider-shaped ID tokens.

    The signature is irrelevant: the client only reads the payload, and the
    real verifier asks the provider rather than checking it locally.
    """

    def _make(
        sub: str = "google-sub-1",
        email: str = "ada@example.com",
        name: str = "Ada Lovelace",
        picture: str | None = "https://example.com/ada.png",
    ) -> str:
        claims = {"iss": "https://accounts.google.com", "sub": sub, "email": email, "name": name}
        if picture is not None:
            claims["picture"] = picture
        return jwt.encode(claims, "provider-signing-key", algorithm="HS256")

    return _make


class FakeVerifier:
    """Async AssertionVerifier double.

    Echoes the claimed identity back as verified unless `error` is set. When
    `hold` is True, verify() waits on an event the test releases with
    release(), simulating a slow provider round-trip.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.error: Exception | None = None
        self.hold = False
        self._gate: asyncio.Event | None = None

    async def verify(self, assertion: str, claimed_subject: str, claimed_email: str) -> VerifiedIdentity:
        self.calls.append((claimed_subject, claimed_email))
        if self.hold:
            self._gate = asyncio.Event()
            await self._gate.wait()
        if self.error is not None:
            raise self.error
        claimed = read_claimed_identity(assertion)
        return VerifiedIdentity(subject=claimed_subject, email=claimed_email, name=claimed.name, picture=claimed.picture)

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()


@pytest.fixture
def fake_verifier() -> FakeVerifier:
    return FakeVerifier()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(verifier):
    """Return an async context manager that replaces the real lifespan.

    Wires a mock verifier into app.state so routes never call the real
    provider.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.verifier = verifier
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, MagicMock], None, None]:
    """Yield (client, verifier_mock) for verification route tests.

    base_url uses localhost so TrustedHostMiddleware accepts the requests.
    The shared slowapi counter is reset so each test starts with a full budget.
    """
    verifier = MagicMock(spec=IdentityVerifier)
    app.router.lifespan_context = _patch_lifespan(verifier)
    limiter.reset()
    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, verifier
