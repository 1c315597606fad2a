"""Twitter (X) OAuth 2.0 client with PKCE.

Client credentials travel as HTTP Basic auth (client_auth="basic") at the
token and revoke endpoints. The redirect URI has duplicate path slashes
collapsed, identically at authorization and exchange time.
"""

from adinsights.core.errors import AuthError, AuthErrorKind
from adinsights.core.urls import normalize_url
from adinsights.providers.oauth.base import OAuthClient, ProviderIdentity, TokenSet


class TwitterOAuthClient(OAuthClient):
    """OAuth client for Twitter."""

    provider_name = "twitter"

    def prepare_redirect_uri(self, redirect_uri: str) -> str:
        return normalize_url(redirect_uri)

    async def exchange_code(
        self,
        *,
        code: str,
        redirect_uri: str,
        code_verifier: str | None = None,
    ) -> TokenSet:
        if not code_verifier:
            # Without the original verifier the provider rejects the exchange
            raise AuthError(AuthErrorKind.INVALID_STATE)

        payload = await self._request_json(
            "POST",
            self.config.token_url,
            operation="token_exchange",
            **self._with_client_credentials(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.prepare_redirect_uri(redirect_uri),
                    "code_verifier": code_verifier,
                }
            ),
        )
        return TokenSet(
            access_token=self._require(
                payload, "access_token", operation="token_exchange"
            ),
            refresh_token=payload.get("refresh_token"),
            expires_in=self._expires_in(payload, default=None),
        )

    async def fetch_identity(self, access_token: str) -> ProviderIdentity:
        payload = await self._request_json(
            "GET",
            self.config.identity_url,
            operation="fetch_identity",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        data = payload.get("data") or {}
        return ProviderIdentity(
            id=self._require(data, "id", operation="fetch_identity"),
            name=data.get("name"),
            username=data.get("username"),
        )

    async def revoke_token(
        self,
        *,
        access_token: str,
        provider_id: str,  # noqa: ARG002 - revocation is keyed by token
    ) -> None:
        await self._request_json(
            "POST",
            self.config.revoke_url,
            operation="revoke_token",
            **self._with_client_credentials(
                {"token": access_token, "token_type_hint": "access_token"}
            ),
        )
