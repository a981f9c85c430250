from datetime import date

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from invoice_manager.main import app
from invoice_manager.api.deps import get_manager, get_today
from invoice_manager.config import Settings
from invoice_manager.database import Base
from invoice_manager.models import HubSpotOAuthToken  # noqa: F401
from invoice_manager.services.hubspot_client import HubSpotClient
from invoice_manager.services.hubspot_oauth import HubSpotOAuthManager
from invoice_manager.services.oauth_state import OAuthStateRegistry
from invoice_manager.services.token_store import DatabaseTokenStore, MemoryTokenStore, TokenRecord

from fake_hubspot import FakeHubSpot

PORTAL_ID = "12345"
REFERENCE_DATE = date(2025, 6, 1)
START_TIME = 1_750_000_000.0


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "ENVIRONMENT": "development",
        "HUBSPOT_CLIENT_ID": "client-id",
        "HUBSPOT_CLIENT_SECRET": "client-secret",
        "HUBSPOT_REDIRECT_URI": "http://test/auth/callback",
        "HS_PRIVATE_APP_TOKEN": None,
        "TOKEN_STORE_BACKEND": "memory",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def token_record(clock: FakeClock, expires_in: int = 1800, **overrides) -> TokenRecord:
    values = {
        "portal_id": PORTAL_ID,
        "access_token": "access-0",
        "refresh_token": "refresh-0",
        "expires_at": int(clock()) + expires_in,
        "hub_domain": "acme.hubspot.com",
    }
    values.update(overrides)
    return TokenRecord(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_hubspot():
    return FakeHubSpot()


@pytest_asyncio.fixture
async def http_client(fake_hubspot: FakeHubSpot):
    async with fake_hubspot.client() as http:
        yield http


@pytest.fixture
def hubspot(http_client) -> HubSpotClient:
    """Client bound to a static token, for exercising CRM calls directly."""
    return HubSpotClient("test-token", http_client)


@pytest.fixture
def token_store():
    return MemoryTokenStore()


@pytest.fixture
def state_registry(clock: FakeClock):
    return OAuthStateRegistry(ttl_seconds=600, clock=clock)


@pytest.fixture
def settings_overrides():
    """Override per test module to change the manager's settings."""
    return {}


@pytest.fixture
def manager(token_store, state_registry, http_client, clock, settings_overrides):
    return HubSpotOAuthManager(
        store=token_store,
        states=state_registry,
        http=http_client,
        settings=make_settings(**settings_overrides),
        clock=clock,
    )


@pytest_asyncio.fixture
async def connected(token_store: MemoryTokenStore, clock: FakeClock) -> TokenRecord:
    """A fresh stored token for PORTAL_ID."""
    record = token_record(clock)
    await token_store.put(record)
    return record


@pytest_asyncio.fixture
async def db_session_maker(tmp_path):
    """SQLite-backed session factory with the token table created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'tokens.db'}",
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def db_token_store(db_session_maker):
    return DatabaseTokenStore(db_session_maker)


@pytest_asyncio.fixture
async def client(manager: HubSpotOAuthManager):
    """API client wired to the fake HubSpot through the test manager."""

    async def override_get_manager():
        return manager

    async def override_get_today():
        return REFERENCE_DATE

    app.dependency_overrides[get_manager] = override_get_manager
    app.dependency_overrides[get_today] = override_get_today

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
