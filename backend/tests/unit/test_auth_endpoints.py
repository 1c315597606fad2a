"""Tests for the /api/v1/auth endpoints.

Drives the full browser round-trip through the ASGI app: login sets the
state cookie, the callback redirects to the app root with ?success= or
?error=, logout clears or re-issues the cookie, status reports flags.
"""

import uuid
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from httpx import AsyncClient

from adinsights.core.config import settings
from adinsights.core.session import AuthSession, FacebookSession, decode_session
from adinsights.repositories.auth_provider_repository import (
    AuthProviderInput,
    AuthProviderRepository,
)
from adinsights.repositories.user_repository import UserRepository
from adinsights.services import oauth_flow
from tests.conftest import (
    TEST_APP_URL,
    TEST_SESSION_SECRET,
    create_session_token,
    use_session,
)

_AUTH = "/api/v1/auth"


def _session_cookie(response: httpx.Response) -> str | None:
    """Value of the session cookie set by a response, if any."""
    for header in response.headers.get_list("set-cookie"):
        name, _, rest = header.partition("=")
        if name == settings.session_cookie_name:
            return rest.split(";", 1)[0].strip('"')
    return None


def _decode(token: str) -> AuthSession | None:
    return decode_session(token, secret=TEST_SESSION_SECRET)


def _redirect_params(response: httpx.Response) -> dict[str, str]:
    location = response.headers["location"]
    assert location.startswith(f"{TEST_APP_URL}/?")
    return {k: v[0] for k, v in parse_qs(urlsplit(location).query).items()}


async def _login(client: AsyncClient, provider: str, token: str | None = None):
    use_session(client, token)
    response = await client.post(f"{_AUTH}/{provider}/login")
    assert response.status_code == 200
    return response


async def _linked_user(session_factory, *links):
    async with session_factory() as db:
        user = await UserRepository.create(db, email="ada@example.com", username="Ada")
        for provider, provider_id in links:
            await AuthProviderRepository.upsert(
                db,
                user.id,
                AuthProviderInput(
                    provider=provider,
                    provider_id=provider_id,
                    access_token=f"{provider}-token",
                ),
            )
        await db.commit()
        return user


# =============================================================================
# Login
# =============================================================================


class TestLogin:
    """POST /auth/{provider}/login."""

    async def test_returns_auth_url_and_sets_state_cookie(
        self, client: AsyncClient, providers
    ):
        response = await _login(client, "facebook")

        auth_url = response.json()["authUrl"]
        params = parse_qs(urlsplit(auth_url).query)
        session = _decode(_session_cookie(response))
        assert session.state == params["state"][0]
        assert params["redirect_uri"] == [
            f"{TEST_APP_URL}/api/v1/auth/facebook/callback"
        ]

    async def test_cookie_flags(self, client: AsyncClient, providers):
        response = await _login(client, "instagram")

        header = next(
            h
            for h in response.headers.get_list("set-cookie")
            if h.startswith(f"{settings.session_cookie_name}=")
        ).lower()
        assert "httponly" in header
        assert "samesite=lax" in header
        assert "path=/" in header
        assert "max-age=604800" in header

    async def test_twitter_cookie_carries_pkce_verifier(
        self, client: AsyncClient, providers
    ):
        response = await _login(client, "twitter")

        session = _decode(_session_cookie(response))
        params = parse_qs(urlsplit(response.json()["authUrl"]).query)
        assert len(session.code_verifier) == 128
        assert params["code_challenge"] == [session.code_challenge]

    async def test_unknown_provider_is_rejected(self, client: AsyncClient):
        response = await client.post(f"{_AUTH}/myspace/login")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_unconfigured_provider(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "twitter_client_id", "")

        response = await client.post(f"{_AUTH}/twitter/login")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


# =============================================================================
# Callback
# =============================================================================


class TestCallback:
    """GET /auth/{provider}/callback always redirects to the app root."""

    async def test_full_facebook_round_trip(
        self, client: AsyncClient, providers, session_factory
    ):
        login = await _login(client, "facebook")
        state_token = _session_cookie(login)
        state = _decode(state_token).state

        use_session(client, state_token)
        response = await client.get(
            f"{_AUTH}/facebook/callback", params={"code": "c", "state": state}
        )

        assert response.status_code == 307
        assert _redirect_params(response) == {"success": "facebook"}
        session = _decode(_session_cookie(response))
        assert session.user_id
        assert session.state is None
        assert session.facebook.user_id == "fb-1"

        async with session_factory() as db:
            user = await UserRepository.get_by_email(db, "ada@example.com")
            record = await AuthProviderRepository.find_by_provider(
                db, "facebook", "fb-1"
            )
        assert str(user.id) == session.user_id
        assert record.user_id == user.id

    async def test_state_mismatch_redirects_without_writes(
        self, client: AsyncClient, providers, session_factory
    ):
        login = await _login(client, "facebook")

        use_session(client, _session_cookie(login))
        response = await client.get(
            f"{_AUTH}/facebook/callback", params={"code": "c", "state": "forged"}
        )

        assert response.status_code == 307
        assert _redirect_params(response) == {"error": "invalid_state"}
        assert _session_cookie(response) is None
        assert providers.calls == []
        async with session_factory() as db:
            assert await UserRepository.count(db) == 0

    async def test_tampered_cookie_is_invalid_state(
        self, client: AsyncClient, providers
    ):
        login = await _login(client, "facebook")
        token = _session_cookie(login)
        state = _decode(token).state

        header, payload, signature = token.split(".")
        use_session(client, ".".join([header, payload, signature[::-1]]))
        response = await client.get(
            f"{_AUTH}/facebook/callback", params={"code": "c", "state": state}
        )

        assert _redirect_params(response) == {"error": "invalid_state"}

    async def test_denied(self, client: AsyncClient, providers):
        response = await client.get(
            f"{_AUTH}/instagram/callback",
            params={"error": "access_denied", "error_reason": "user_denied"},
        )

        assert response.status_code == 307
        assert _redirect_params(response) == {"error": "instagram_auth_denied"}

    async def test_missing_parameters(self, client: AsyncClient, providers):
        response = await client.get(f"{_AUTH}/twitter/callback")

        assert _redirect_params(response) == {"error": "invalid_callback"}

    async def test_unconfigured_provider(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "instagram_app_id", "")

        response = await client.get(
            f"{_AUTH}/instagram/callback", params={"code": "c", "state": "s"}
        )

        assert _redirect_params(response) == {"error": "instagram_not_configured"}

    async def test_exchange_failure_rolls_back(
        self, client: AsyncClient, providers, session_factory
    ):
        providers.set(
            "POST", "api.twitter.com", "/2/oauth2/token", httpx.Response(400)
        )
        login = await _login(client, "twitter")
        token = _session_cookie(login)

        use_session(client, token)
        response = await client.get(
            f"{_AUTH}/twitter/callback",
            params={"code": "c", "state": _decode(token).state},
        )

        assert _redirect_params(response) == {"error": "twitter_callback_failed"}
        async with session_factory() as db:
            assert await AuthProviderRepository.provider_counts(db) == {}

    async def test_malformed_token_lifetime_redirects(
        self, client: AsyncClient, providers, session_factory
    ):
        providers.set(
            "POST",
            "graph.facebook.com",
            "/v18.0/oauth/access_token",
            httpx.Response(
                200, json={"access_token": "t", "expires_in": "5183944.5"}
            ),
        )
        login = await _login(client, "facebook")
        token = _session_cookie(login)

        use_session(client, token)
        response = await client.get(
            f"{_AUTH}/facebook/callback",
            params={"code": "c", "state": _decode(token).state},
        )

        assert response.status_code == 307
        assert _redirect_params(response) == {"error": "facebook_callback_failed"}
        async with session_factory() as db:
            assert await UserRepository.count(db) == 0

    async def test_unexpected_error_still_redirects(
        self, client: AsyncClient, providers, monkeypatch
    ):
        async def _broken(**_kwargs):
            raise RuntimeError("resolver exploded")

        monkeypatch.setattr(oauth_flow, "resolve_local_user", _broken)
        login = await _login(client, "instagram")
        token = _session_cookie(login)

        use_session(client, token)
        response = await client.get(
            f"{_AUTH}/instagram/callback",
            params={"code": "c", "state": _decode(token).state},
        )

        assert response.status_code == 307
        assert _redirect_params(response) == {"error": "instagram_callback_failed"}
        assert _session_cookie(response) is None
        assert "resolver exploded" not in response.headers["location"]

    async def test_cookie_fits_browser_limit_for_large_ad_portfolio(
        self, client: AsyncClient, providers, session_factory
    ):
        """Ad accounts are stored server-side, not in the session cookie."""
        ad_accounts = [
            {
                "id": f"act_{n:012d}",
                "name": f"Agency client account number {n}",
                "account_status": 1,
                "business": {"id": f"{n:015d}", "name": "Agency Holdings"},
            }
            for n in range(40)
        ]
        providers.set(
            "GET",
            "graph.facebook.com",
            "/me/adaccounts",
            httpx.Response(200, json={"data": ad_accounts}),
        )
        login = await _login(client, "facebook")
        token = _session_cookie(login)

        use_session(client, token)
        response = await client.get(
            f"{_AUTH}/facebook/callback",
            params={"code": "c", "state": _decode(token).state},
        )

        assert _redirect_params(response) == {"success": "facebook"}
        header = next(
            h
            for h in response.headers.get_list("set-cookie")
            if h.startswith(f"{settings.session_cookie_name}=")
        )
        assert len(header.encode()) <= 4096
        session = _decode(_session_cookie(response))
        assert session.user_id
        async with session_factory() as db:
            record = await AuthProviderRepository.find_by_provider(
                db, "facebook", "fb-1"
            )
        assert len(record.ad_accounts) == 40

    async def test_second_provider_joins_signed_in_user(
        self, client: AsyncClient, providers, session_factory
    ):
        user = await _linked_user(session_factory, ("facebook", "fb-1"))
        signed_in = create_session_token(AuthSession(user_id=str(user.id)))

        login = await _login(client, "twitter", signed_in)
        token = _session_cookie(login)
        use_session(client, token)
        response = await client.get(
            f"{_AUTH}/twitter/callback",
            params={"code": "c", "state": _decode(token).state},
        )

        assert _redirect_params(response) == {"success": "twitter"}
        async with session_factory() as db:
            rows = await AuthProviderRepository.list_for_user(db, user.id)
            assert await UserRepository.count(db) == 1
        assert sorted(r.provider for r in rows) == ["facebook", "twitter"]


# =============================================================================
# Logout
# =============================================================================


class TestLogout:
    """POST /auth/logout and POST /auth/{provider}/logout."""

    async def test_logout_all_clears_cookie(
        self, client: AsyncClient, providers, session_factory
    ):
        user = await _linked_user(
            session_factory, ("facebook", "fb-1"), ("twitter", "tw-1")
        )
        providers.set(
            "DELETE", "graph.facebook.com", "/fb-1/permissions", httpx.Response(500)
        )
        use_session(client, create_session_token(AuthSession(user_id=str(user.id))))

        response = await client.post(f"{_AUTH}/logout")

        assert response.status_code == 200
        assert response.json() == {"success": True, "removed": 2}
        assert _session_cookie(response) == ""
        async with session_factory() as db:
            assert await AuthProviderRepository.list_for_user(db, user.id) == []

    async def test_logout_all_without_session(self, client: AsyncClient):
        use_session(client, None)

        response = await client.post(f"{_AUTH}/logout")

        assert response.status_code == 200
        assert response.json()["removed"] == 0

    async def test_provider_logout_reissues_cookie(
        self, client: AsyncClient, providers, session_factory
    ):
        user = await _linked_user(
            session_factory, ("facebook", "fb-1"), ("twitter", "tw-1")
        )
        session = AuthSession(
            user_id=str(user.id),
            facebook=FacebookSession(access_token="t", user_id="fb-1"),
        )
        use_session(client, create_session_token(session))

        response = await client.post(f"{_AUTH}/facebook/logout")

        assert response.status_code == 200
        assert response.json()["removed"] == 1
        reissued = _decode(_session_cookie(response))
        assert reissued.facebook is None
        assert reissued.user_id == str(user.id)

    async def test_provider_logout_requires_session(self, client: AsyncClient):
        use_session(client, None)

        response = await client.post(f"{_AUTH}/twitter/logout")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "MISSING_SESSION"


# =============================================================================
# Status
# =============================================================================


class TestStatus:
    """GET /auth/status."""

    async def test_anonymous(self, client: AsyncClient):
        use_session(client, None)

        response = await client.get(f"{_AUTH}/status")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == {
            "facebook": False,
            "instagram": False,
            "twitter": False,
        }
        assert body["user"] is None

    async def test_signed_in(self, client: AsyncClient, session_factory):
        user = await _linked_user(session_factory, ("instagram", "ig-1"))
        session = AuthSession(
            user_id=str(user.id),
            facebook=FacebookSession(access_token="secret-token", user_id="fb-1"),
        )
        use_session(client, create_session_token(session))

        response = await client.get(f"{_AUTH}/status")

        body = response.json()
        assert body["status"]["instagram"] is True
        assert body["status"]["facebook"] is False
        assert body["user"]["id"] == str(user.id)
        assert body["user"]["authProviders"] == 1
        assert body["session"]["facebook"]["userId"] == "fb-1"
        assert "secret-token" not in response.text

    async def test_unknown_session_user(self, client: AsyncClient):
        stale = AuthSession(user_id=str(uuid.uuid4()))
        use_session(client, create_session_token(stale))

        response = await client.get(f"{_AUTH}/status")

        assert response.status_code == 200
        assert response.json()["user"] is None


@pytest.mark.parametrize("path", ["/health", f"{_AUTH}/status"])
async def test_security_headers(client: AsyncClient, path: str):
    use_session(client, None)

    response = await client.get(path)

    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
