from collections.abc import AsyncGenerator, Callable, Iterator
from datetime import datetime

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from adinsights.core.config import settings
from adinsights.core.session import AuthSession, encode_session
from adinsights.models.base import Base
from adinsights.providers import factory
from adinsights.providers.oauth import (
    FacebookOAuthClient,
    InstagramOAuthClient,
    TwitterOAuthClient,
)

# In-memory database shared by every session of one test (StaticPool)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_SESSION_SECRET = "test-session-secret-that-is-at-least-32-characters"  # nosec B105

TEST_APP_URL = "http://app.test"

# Handler signature for httpx.MockTransport
ProviderHandler = Callable[[httpx.Request], httpx.Response]


def create_session_token(
    session: AuthSession,
    *,
    secret: str = TEST_SESSION_SECRET,
    now: datetime | None = None,
) -> str:
    """Encode a session the way the session cookie carries it."""
    return encode_session(session, secret=secret, now=now)


def use_session(client: AsyncClient, token: str | None) -> None:
    """Replace whatever session cookie the client holds."""
    client.cookies.clear()
    if token:
        client.cookies.set(settings.session_cookie_name, token)


def build_oauth_clients(handler: ProviderHandler) -> dict:
    """Provider clients whose HTTP calls are answered by ``handler``."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    common = {"http_client": http_client, "timeout": 5.0}
    return {
        "facebook": FacebookOAuthClient(
            client_id="fb-app-id",
            client_secret="fb-app-secret",
            config_id="fb-config-id",
            **common,
        ),
        "instagram": InstagramOAuthClient(
            client_id="ig-app-id",
            client_secret="ig-app-secret",
            **common,
        ),
        "twitter": TwitterOAuthClient(
            client_id="tw-client-id",
            client_secret="tw-client-secret",
            **common,
        ),
    }


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create an in-memory sqlite engine with SAVEPOINT support.

    pysqlite's own transaction handling breaks begin_nested(); the connect
    and begin listeners hand transaction control back to SQLAlchemy.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Provider Fixtures
# =============================================================================


class FakeProviders:
    """Canned provider responses keyed by (method, host, path).

    Unknown routes answer 404 so an unexpected call fails the flow.
    """

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.routes: dict[tuple[str, str, str], httpx.Response] = {
            ("POST", "graph.facebook.com", "/v18.0/oauth/access_token"): (
                httpx.Response(
                    200, json={"access_token": "fb-token", "expires_in": 3600}
                )
            ),
            ("GET", "graph.facebook.com", "/me"): httpx.Response(
                200, json={"id": "fb-1", "name": "Ada", "email": "ada@example.com"}
            ),
            ("GET", "graph.facebook.com", "/me/businesses"): httpx.Response(
                200, json={"data": [{"id": "b1", "name": "Acme"}]}
            ),
            ("GET", "graph.facebook.com", "/me/adaccounts"): httpx.Response(
                200, json={"data": [{"id": "act_1", "account_status": 1}]}
            ),
            ("DELETE", "graph.facebook.com", "/fb-1/permissions"): httpx.Response(
                200, json={"success": True}
            ),
            ("POST", "api.twitter.com", "/2/oauth2/token"): httpx.Response(
                200,
                json={
                    "access_token": "tw-token",
                    "refresh_token": "tw-refresh",
                    "expires_in": 7200,
                },
            ),
            ("GET", "api.twitter.com", "/2/users/me"): httpx.Response(
                200, json={"data": {"id": "tw-1", "name": "Ada", "username": "ada"}}
            ),
            ("POST", "api.twitter.com", "/2/oauth2/revoke"): httpx.Response(
                200, json={"revoked": True}
            ),
            ("POST", "api.instagram.com", "/oauth/access_token"): httpx.Response(
                200, json={"access_token": "ig-token"}
            ),
            ("GET", "graph.instagram.com", "/v23.0/me"): httpx.Response(
                200, json={"id": "ig-1", "username": "ada.ig"}
            ),
        }

    def set(self, method: str, host: str, path: str, response: httpx.Response):
        self.routes[(method, host, path)] = response

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, request.url.host, request.url.path)
        canned = self.routes.get(key)
        if canned is None:
            return httpx.Response(404, json={"error": "no route"})
        # Fresh response per call; httpx binds a response to one request
        return httpx.Response(
            canned.status_code, headers=canned.headers, content=canned.content
        )

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.calls if r.url.path == path]


@pytest.fixture
def install_oauth_clients() -> Iterator[Callable[[ProviderHandler], dict]]:
    """Inject MockTransport-backed clients into the factory singleton.

    Yields:
        Function taking a request handler and returning the installed
        clients keyed by provider.
    """

    def _install(handler: ProviderHandler) -> dict:
        clients = build_oauth_clients(handler)
        factory._oauth_clients.update(clients)
        return clients

    yield _install

    factory.reset_oauth_clients()


@pytest.fixture(autouse=True)
def reset_oauth_client_cache() -> Iterator[None]:
    """Start and end every test without cached provider clients."""
    factory.reset_oauth_clients()
    yield
    factory.reset_oauth_clients()


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app with the test database.

    Sets up:
    - get_db dependency override bound to the in-memory database
    - Test session secret and APP_URL
    - httpx.AsyncClient with ASGI transport (no session cookie)

    Yields:
        Configured AsyncClient.
    """
    from adinsights.core.database import get_db
    from adinsights.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    original_secret = settings.session_secret
    original_app_url = settings.app_url
    settings.session_secret = SecretStr(TEST_SESSION_SECRET)
    settings.app_url = TEST_APP_URL

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    settings.session_secret = original_secret
    settings.app_url = original_app_url
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Rate limiting is tested separately; disable for other tests to avoid
    flaky failures from shared in-memory counters.
    """
    from adinsights.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled


@pytest.fixture
def providers(install_oauth_clients) -> FakeProviders:
    """Installed provider clients answered by a FakeProviders instance."""
    fake = FakeProviders()
    install_oauth_clients(fake)
    return fake
