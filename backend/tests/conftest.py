"""
Pytest configuration and fixtures for the backend tests.
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone

# Settings are validated at import time, so the environment must be ready first
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="mediahub-logs-"))
os.environ.setdefault("LOG_LEVEL", "WARNING")
# Never reach a real MongoDB; services get the in-memory fake
os.environ["MONGO_URI"] = ""

import pytest
from faker import Faker
from httpx import ASGITransport, AsyncClient

from mediahub.core.security import CredentialStore
from mediahub.core.tokens import TokenConfig, TokenIssuer
from mediahub.db.mongodb import ensure_indexes
from mediahub.schemas.user_schema import IdentityCreate
from mediahub.services.auth_service import AuthService
from mediahub.services.identity_service import IdentityService
from mediahub.services.pagination import AggregationPaginator
from mediahub.services.session_registry import SessionRegistry
from mediahub.services.video_service import VideoService
from fakes import FakeDatabase

# Initialize Faker for test data generation
fake = Faker()


class FrozenClock:
    """Manually advanced UTC clock for token expiry tests."""

    def __init__(self, start: datetime = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
async def fake_db() -> FakeDatabase:
    db = FakeDatabase()
    await ensure_indexes(db)
    return db


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(
        access_secret="unit-access-secret",
        refresh_secret="unit-refresh-secret",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=10),
    )


@pytest.fixture
def issuer(token_config, clock) -> TokenIssuer:
    return TokenIssuer(token_config, clock=clock)


@pytest.fixture(scope="session")
def credentials() -> CredentialStore:
    return CredentialStore(rounds=4)


@pytest.fixture
def sessions(fake_db, issuer) -> SessionRegistry:
    return SessionRegistry(fake_db, issuer)


@pytest.fixture
def identities(fake_db, credentials, sessions) -> IdentityService:
    return IdentityService(fake_db, credentials, sessions)


@pytest.fixture
def auth(identities, credentials, sessions) -> AuthService:
    return AuthService(identities, credentials, sessions)


@pytest.fixture
def paginator() -> AggregationPaginator:
    return AggregationPaginator(max_page_size=100, default_page_size=10)


@pytest.fixture
def videos(fake_db, paginator) -> VideoService:
    return VideoService(fake_db, paginator)


@pytest.fixture
def sample_user_data():
    """Sample registration payload."""
    return {
        "username": f"user_{fake.unique.random_int(1000, 999999)}",
        "email": fake.unique.email(),
        "full_name": fake.name(),
        "password": "testpassword123",
    }


@pytest.fixture
async def alice(identities):
    """Alice with credential 'correct-pw'."""
    return await identities.register(
        IdentityCreate(username="alice", email="alice@example.com", full_name="Alice Liddell", password="correct-pw")
    )


@pytest.fixture
async def async_client(fake_db):
    """Async client against the app with the fake database injected."""
    from mediahub.api.dependencies import get_db
    from mediahub.main import app

    async def override_get_db():
        return fake_db

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="https://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def api_login(async_client):
    """Log in through the API and return the envelope's ``data``.

    The client's cookie jar is emptied afterwards so each test chooses
    explicitly how it presents tokens.
    """

    async def _login(identifier: str = "alice", password: str = "correct-pw") -> dict:
        response = await async_client.post("/api/v1/auth/login", json={"username": identifier, "password": password})
        assert response.status_code == 200, response.text
        async_client.cookies.clear()
        return response.json()["data"]

    return _login


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
