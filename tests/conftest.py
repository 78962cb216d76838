"""Pytest fixtures for the authentication core tests.

This module provides test fixtures that ensure:
1. No external API calls are made (OAuth providers are served by an
   in-process httpx transport)
2. Each test gets its own throwaway SQLite database
3. Session time is controlled by a fake clock
"""

import os
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

# Set test environment BEFORE importing application modules
# This ensures no real services are contacted during test collection
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("APPLE_CLIENT_ID", "test-apple-client-id")
os.environ.setdefault("APPLE_CLIENT_SECRET", "test-apple-client-secret")
os.environ.setdefault("ENVIRONMENT", "development")

from jose import jwt

from garden_auth.auth.identity import IdentityStore
from garden_auth.auth.oauth import (
    APPLE_TOKEN_URL,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    OAuthExchange,
)
from garden_auth.auth.session import SessionStore
from garden_auth.database.connection import Database


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeOAuthProvider:
    """In-process stand-in for the Google and Apple endpoints.

    Codes registered with ``add_code`` exchange successfully once; anything
    else gets a 400 like a real provider would.
    """

    def __init__(self):
        self.identities: dict[str, dict] = {}
        self.token_requests: list[dict[str, list[str]]] = []
        self.userinfo_requests: list[str] = []

    def add_code(self, code: str, email: str, name: str | None = "Test User") -> None:
        self.identities[code] = {
            "id": f"sub-{code}",
            "email": email,
            "name": name,
            "verified_email": True,
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url).split("?")[0]

        if url in (GOOGLE_TOKEN_URL, APPLE_TOKEN_URL):
            form = parse_qs(request.content.decode())
            self.token_requests.append(form)
            code = form.get("code", [""])[0]
            identity = self.identities.pop(code, None)
            if identity is None:
                return httpx.Response(400, json={"error": "invalid_grant"})

            body = {
                "access_token": f"access-{code}",
                "token_type": "Bearer",
                "expires_in": 3600,
            }
            if url == APPLE_TOKEN_URL:
                claims = {
                    "sub": identity["id"],
                    "email": identity["email"],
                    "exp": int(datetime.now(timezone.utc).timestamp()) + 600,
                }
                body["id_token"] = jwt.encode(claims, "apple-test-key", algorithm="HS256")
            else:
                self.identities[body["access_token"]] = identity
            return httpx.Response(200, json=body)

        if url == GOOGLE_USERINFO_URL:
            token = request.headers.get("Authorization", "").removeprefix("Bearer ")
            self.userinfo_requests.append(token)
            identity = self.identities.get(token)
            if identity is None:
                return httpx.Response(401, json={"error": "invalid_token"})
            return httpx.Response(200, json=identity)

        return httpx.Response(404)


# =============================================================================
# Test Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset settings cache before each test to ensure clean state."""
    from garden_auth.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def database_url(tmp_path, monkeypatch) -> str:
    """A fresh SQLite database file for this test."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'garden.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    return url


@pytest.fixture
async def database(database_url: str):
    """Open database with all tables created."""
    db = Database(database_url)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def session_store(database: Database, clock: FakeClock) -> SessionStore:
    return SessionStore(database, clock=clock)


@pytest.fixture
def identity_store(database: Database) -> IdentityStore:
    return IdentityStore(database)


@pytest.fixture
async def approved_user(identity_store: IdentityStore):
    """An approved, non-admin user."""
    return await identity_store.create_user("Alice", "alice@example.com", "approved")


@pytest.fixture
def oauth_provider() -> FakeOAuthProvider:
    return FakeOAuthProvider()


@pytest.fixture
def oauth_exchange(oauth_provider: FakeOAuthProvider) -> OAuthExchange:
    return OAuthExchange(timeout=5.0, transport=httpx.MockTransport(oauth_provider))
