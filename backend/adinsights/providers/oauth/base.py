"""Abstract OAuth client contract.

One interface for every provider: build the authorization URL, exchange
the authorization code, fetch the minimal identity, revoke a token.
Adapters differ only in endpoints, parameters, and client-authentication
style; the flow service never branches on provider name.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, ClassVar
from urllib.parse import urlencode

import httpx
import structlog

from adinsights.core.errors import AuthError, AuthErrorKind
from adinsights.core.oauth import OAuthProviderConfig, get_provider_config

logger = structlog.get_logger()

# Provider error bodies are logged up to this many characters
_MAX_LOGGED_BODY = 1000


@dataclass(frozen=True)
class TokenSet:
    """Result of an authorization code exchange.

    Attributes:
        access_token: Bearer token for provider API calls.
        refresh_token: Refresh token, when the provider issues one.
        expires_in: Lifetime in seconds, or None if it never expires.
    """

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None


@dataclass(frozen=True)
class ProviderIdentity:
    """Minimal identity needed to key the local account.

    Attributes:
        id: Provider's unique account ID.
        name: Display name.
        username: Handle.
        email: Email, when the provider shares it.
    """

    id: str
    name: str | None = None
    username: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str | None:
        """Username if present, else name."""
        return self.username or self.name


@dataclass(frozen=True)
class BusinessData:
    """Facebook business enrichment. Empty when the fetch failed.

    Attributes:
        businesses: Linked Business Manager accounts.
        ad_accounts: Accessible ad accounts.
        primary_ad_account_id: First active ad account, if any.
    """

    businesses: list[dict[str, Any]] = field(default_factory=list)
    ad_accounts: list[dict[str, Any]] = field(default_factory=list)
    primary_ad_account_id: str | None = None


class OAuthClient(ABC):
    """Abstract interface for provider OAuth clients.

    Every network method raises AuthError(UPSTREAM_OAUTH_FAILURE) on a
    transport error or a non-2xx response. The raw provider body goes to
    the log only.
    """

    provider_name: ClassVar[str]

    # Business login configuration ID echoed into stored records
    config_id: str | None = None

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        config: OAuthProviderConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the client.

        Args:
            client_id: OAuth client / app ID.
            client_secret: OAuth client / app secret.
            config: Endpoint configuration. Defaults to the provider's entry.
            http_client: Shared httpx client. When None, each call opens and
                closes its own client.
            timeout: Per-request timeout in seconds.
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.config = config or get_provider_config(self.provider_name)
        self._http_client = http_client
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        """Whether both client credentials are present."""
        return bool(self.client_id and self.client_secret)

    @property
    def uses_pkce(self) -> bool:
        """Whether authorization requires a PKCE challenge."""
        return self.config.uses_pkce

    def build_authorization_url(
        self,
        *,
        state: str,
        redirect_uri: str,
        code_challenge: str | None = None,
    ) -> str:
        """Build the provider authorization URL.

        Args:
            state: CSRF state parameter echoed back on callback.
            redirect_uri: Callback URL registered with the provider.
            code_challenge: PKCE challenge. Required when uses_pkce is True.

        Returns:
            Absolute authorization URL.

        Raises:
            ValueError: If the provider uses PKCE and no challenge is given.
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.prepare_redirect_uri(redirect_uri),
            "scope": self.config.scope,
            "response_type": "code",
            "state": state,
        }
        if self.uses_pkce:
            if not code_challenge:
                msg = f"{self.provider_name} authorization requires a PKCE challenge"
                raise ValueError(msg)
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
        params.update(self._extra_authorization_params())
        return f"{self.config.authorization_url}?{urlencode(params)}"

    def prepare_redirect_uri(self, redirect_uri: str) -> str:
        """Hook for providers that need the redirect URI adjusted.

        Must return the same value at authorization and exchange time.
        """
        return redirect_uri

    def _extra_authorization_params(self) -> dict[str, str]:
        return {}

    @abstractmethod
    async def exchange_code(
        self,
        *,
        code: str,
        redirect_uri: str,
        code_verifier: str | None = None,
    ) -> TokenSet:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback.
            redirect_uri: Same redirect URI used at authorization time.
            code_verifier: PKCE verifier, for providers using PKCE.

        Returns:
            TokenSet with the access token and optional refresh/expiry.

        Raises:
            AuthError: On transport failure or non-2xx response.
        """
        ...

    @abstractmethod
    async def fetch_identity(self, access_token: str) -> ProviderIdentity:
        """Fetch the authenticated account's identity.

        Raises:
            AuthError: On transport failure or non-2xx response.
        """
        ...

    async def fetch_business_data(
        self,
        access_token: str,  # noqa: ARG002 - used by overriding adapters
    ) -> BusinessData | None:
        """Best-effort business enrichment. Never raises.

        Providers without business data return None.
        """
        return None

    @abstractmethod
    async def revoke_token(self, *, access_token: str, provider_id: str) -> None:
        """Revoke a token at the provider.

        Raises:
            AuthError: On transport failure or non-2xx response.
        """
        ...

    # -------------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method.
            url: Absolute URL.
            operation: Short label for logs (e.g., "token_exchange").
            **kwargs: Passed through to httpx.AsyncClient.request().

        Returns:
            Decoded JSON object, or {} for an empty body.

        Raises:
            AuthError: On transport failure, non-2xx status, or a body that
                is not JSON.
        """
        try:
            async with self._client() as client:
                response = await client.request(
                    method, url, timeout=self._timeout, **kwargs
                )
        except httpx.RequestError as exc:
            logger.error(
                "oauth_request_failed",
                provider=self.provider_name,
                operation=operation,
                error_type=type(exc).__name__,
            )
            raise AuthError(AuthErrorKind.UPSTREAM_OAUTH_FAILURE) from exc

        if response.is_error:
            logger.error(
                "oauth_provider_error",
                provider=self.provider_name,
                operation=operation,
                status_code=response.status_code,
                body=response.text[:_MAX_LOGGED_BODY],
            )
            raise AuthError(AuthErrorKind.UPSTREAM_OAUTH_FAILURE)

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            logger.error(
                "oauth_provider_invalid_body",
                provider=self.provider_name,
                operation=operation,
                body=response.text[:_MAX_LOGGED_BODY],
            )
            raise AuthError(AuthErrorKind.UPSTREAM_OAUTH_FAILURE) from exc
        if not isinstance(payload, dict):
            logger.error(
                "oauth_provider_invalid_body",
                provider=self.provider_name,
                operation=operation,
                body=response.text[:_MAX_LOGGED_BODY],
            )
            raise AuthError(AuthErrorKind.UPSTREAM_OAUTH_FAILURE)
        return payload

    def _with_client_credentials(self, data: dict[str, str]) -> dict[str, Any]:
        """Request kwargs carrying the client credentials.

        ``config.client_auth`` decides between an HTTP Basic header and
        credentials embedded in the form body.
        """
        if self.config.client_auth == "basic":
            return {
                "auth": httpx.BasicAuth(self.client_id, self.client_secret),
                "data": data,
            }
        return {
            "data": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                **data,
            }
        }

    def _expires_in(
        self,
        payload: dict[str, Any],
        *,
        default: int | None,
    ) -> int | None:
        """Parse ``expires_in`` from a token response.

        Missing or zero falls back to ``default``. Anything that is not a
        whole number of seconds is an upstream failure.
        """
        value = payload.get("expires_in")
        if not value:
            return default
        if isinstance(value, int) and not isinstance(value, bool):
            seconds = value
        elif isinstance(value, str) and value.isdigit():
            seconds = int(value)
        else:
            seconds = None
        if seconds is None or seconds < 0:
            logger.error(
                "oauth_provider_invalid_field",
                provider=self.provider_name,
                operation="token_exchange",
                field="expires_in",
                value=str(value)[:50],
            )
            raise AuthError(AuthErrorKind.UPSTREAM_OAUTH_FAILURE)
        return seconds

    def _require(self, payload: dict[str, Any], key: str, *, operation: str) -> str:
        """Return a required string field from a provider payload."""
        value = payload.get(key)
        if value is None or value == "":
            logger.error(
                "oauth_provider_missing_field",
                provider=self.provider_name,
                operation=operation,
                field=key,
            )
            raise AuthError(AuthErrorKind.UPSTREAM_OAUTH_FAILURE)
        return str(value)
