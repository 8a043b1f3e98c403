import os

# Settings are read at import time, so the test environment goes in first
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"
for _provider in ("GOOGLE", "GITHUB", "MICROSOFT"):
    os.environ.pop(f"{_provider}_CLIENT_ID", None)
    os.environ.pop(f"{_provider}_CLIENT_SECRET", None)

from types import MappingProxyType
from typing import Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.exceptions import OAuthExchangeError
from app.core.security import issue_token
from app.db.base import Base
from app.db.session import get_db
from app.main import create_app
from app.models.user import User, UserRole
from app.schemas.oauth import ProviderName, ProviderTokens
from app.services.user_store import UserStore


class FakeOAuthClient:
    """Stands in for the Authlib-backed client; records exchanges."""

    def __init__(
        self,
        name: ProviderName,
        tokens: Optional[ProviderTokens] = None,
        error: Optional[Exception] = None,
    ):
        self.name = name
        self.display_name = name.value.capitalize()
        self.tokens = tokens or ProviderTokens(access_token="provider-access-token", expires_in=3600)
        self.error = error
        self.exchanges: List[Dict[str, Optional[str]]] = []

    async def create_authorization_url(self, redirect_uri: str):
        return f"https://provider.example/authorize?redirect_uri={redirect_uri}", "fake-state"

    async def exchange_code(self, code, redirect_uri, state=None, expected_state=None):
        self.exchanges.append({"code": code, "redirect_uri": redirect_uri, "state": state})
        if self.error is not None:
            raise self.error
        if not code:
            raise OAuthExchangeError("Authorization code missing")
        return self.tokens


def provider_transport(routes: Dict[str, httpx.Response]) -> httpx.MockTransport:
    """MockTransport answering by exact URL; anything else is a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        response = routes.get(url)
        if response is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return response

    return httpx.MockTransport(handler)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="test",
        secret_key="test-secret-key",
        log_level="WARNING",
        app_url="https://users.test",
    )


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session) -> UserStore:
    return UserStore(db_session)


@pytest.fixture
def app(test_settings, db_session):
    app = create_app(test_settings)

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client


@pytest.fixture
def make_user(store) -> Callable:
    async def _make_user(
        email: str = "user@example.com",
        name: str = "Test User",
        role: UserRole = UserRole.USER,
    ) -> User:
        return await store.create(name=name, email=email, role=role)

    return _make_user


def auth_headers(user: User, role: Optional[UserRole] = None) -> Dict[str, str]:
    token = issue_token(user.id, user.email, role if role is not None else user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def enable_providers(app):
    """Install fake OAuth clients on the app registry."""

    def _enable(*clients: FakeOAuthClient) -> None:
        app.state.oauth_clients = MappingProxyType({c.name: c for c in clients})

    return _enable
