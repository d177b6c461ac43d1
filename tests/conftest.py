"""
Shared test fixtures.

Provides a FastAPI TestClient wired to:
  • a temporary SQLite user store (via app lifespan, bootstrapped with
    the test user from tests.mocks.models)
  • a FakeClock (time-machine) shared by the token issuer, TOTP verifier
    and rate limiters

The default `client` fixture uses generous rate limits so tests are not
throttled by accident; `limited_client` uses the production tiers.
"""

from __future__ import annotations

import time
from datetime import timedelta

import pytest
import time_machine
from fastapi import FastAPI
from fastapi.testclient import TestClient

from authgate.config import RateLimitTier, Settings
from authgate.db import UserStore
from authgate.main import create_app
from authgate.security.passwords import hash_password
from authgate.security.tokens import TokenIssuer
from authgate.security.totp import TotpVerifier
from authgate.services.auth import AuthService
from tests.mocks.models import (
    TEST_JWT_SECRET,
    TEST_PASSWORD,
    TEST_TOTP_SECRET,
    TEST_USERNAME,
)
from tests.mocks.services import FakeClock, totp_code

_UNLIMITED = RateLimitTier(max_requests=10_000, window_seconds=60)


# ── Credentials ────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def password_hash() -> str:
    """bcrypt hash of TEST_PASSWORD, computed once per session (bcrypt is slow)."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture()
def clock():
    """Freeze wall-clock time at a whole second for the duration of the test."""
    with time_machine.travel(float(int(time.time())), tick=False) as traveller:
        yield FakeClock(traveller)


@pytest.fixture()
def current_code(clock):
    """Callable returning the TOTP code valid at the fake clock's current time."""
    return lambda: totp_code(clock)


# ── Settings ───────────────────────────────────────────────────────────────


def _settings(tmp_path, password_hash: str, **overrides) -> Settings:
    values = dict(
        jwt_secret=TEST_JWT_SECRET,
        environment="test",
        db_path=str(tmp_path / "test.db"),
        auth_username=TEST_USERNAME,
        auth_password_hash=password_hash,
        auth_totp_secret=TEST_TOTP_SECRET,
        access_token_ttl=timedelta(minutes=15),
        refresh_token_ttl=timedelta(days=7),
        general_limit=_UNLIMITED,
        login_limit=_UNLIMITED,
        refresh_limit=_UNLIMITED,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def settings(tmp_path, password_hash) -> Settings:
    return _settings(tmp_path, password_hash)


@pytest.fixture()
def limited_settings(tmp_path, password_hash) -> Settings:
    """Settings with the default (production) rate-limit tiers."""
    defaults = Settings(jwt_secret=TEST_JWT_SECRET)
    return _settings(
        tmp_path,
        password_hash,
        general_limit=defaults.general_limit,
        login_limit=defaults.login_limit,
        refresh_limit=defaults.refresh_limit,
    )


# ── Application ────────────────────────────────────────────────────────────


@pytest.fixture()
def app(settings, clock) -> FastAPI:
    return create_app(settings, clock=clock)


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    """
    TestClient running the full lifespan (store open, bootstrap user, close).
    """
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
def limited_client(limited_settings, clock) -> TestClient:
    """TestClient with the default rate-limit tiers enforced."""
    app = create_app(limited_settings, clock=clock)
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
def login(client, current_code):
    """Log the test user in and return the token data dict."""

    def _login(password: str = TEST_PASSWORD) -> dict:
        resp = client.post(
            "/api/auth/login",
            json={"username": TEST_USERNAME, "password": password, "totpCode": current_code()},
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    return _login


# ── Service-level fixtures ─────────────────────────────────────────────────


@pytest.fixture()
async def store(tmp_path, password_hash) -> UserStore:
    """An open user store holding the test user."""
    user_store = UserStore(str(tmp_path / "store.db"))
    await user_store.open()
    await user_store.create_user(TEST_USERNAME, password_hash, TEST_TOTP_SECRET)
    yield user_store
    await user_store.close()


@pytest.fixture()
def issuer(clock) -> TokenIssuer:
    return TokenIssuer(TEST_JWT_SECRET, clock=clock)


@pytest.fixture()
def auth_service(store, issuer, clock) -> AuthService:
    return AuthService(store, issuer, TotpVerifier(valid_window=1, clock=clock))
