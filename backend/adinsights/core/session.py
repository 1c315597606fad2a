"""Session codec and session cookie helpers.

The browser holds a single signed session cookie. Its payload binds the
browser to zero or more linked provider identities plus the in-flight
OAuth state (and PKCE pair for Twitter).

Two independent expiry checks apply on decode:
1. The JWT ``exp`` claim, verified by PyJWT.
2. The application-level age check on ``created_at``.

Per-provider records are a denormalized display cache. The auth_providers
table is the source of truth for what is connected.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Annotated, Literal

import jwt
from fastapi import Request, Response
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from adinsights.core.config import settings

logger = logging.getLogger(__name__)

SESSION_DURATION = timedelta(days=7)

_ALGORITHM = "HS256"

ProviderName = Literal["facebook", "instagram", "twitter"]

PROVIDERS: tuple[ProviderName, ...] = ("facebook", "instagram", "twitter")


def _now_ms(now: datetime | None = None) -> int:
    return int((now or datetime.now(UTC)).timestamp() * 1000)


# =============================================================================
# Session payload
# =============================================================================


class FacebookSession(BaseModel):
    """Cached Facebook identity and token.

    Businesses and ad accounts stay in the auth_providers row; the cookie
    has to fit the browser limit of 4096 bytes.
    """

    provider: Literal["facebook"] = "facebook"
    access_token: str
    user_id: str
    name: str | None = None
    email: str | None = None
    expires_at: int | None = None
    config_id: str | None = None


class InstagramSession(BaseModel):
    """Cached Instagram identity and token."""

    provider: Literal["instagram"] = "instagram"
    access_token: str
    user_id: str
    username: str | None = None
    expires_at: int | None = None


class TwitterSession(BaseModel):
    """Cached Twitter identity and token pair."""

    provider: Literal["twitter"] = "twitter"
    access_token: str
    refresh_token: str | None = None
    user_id: str
    username: str | None = None
    expires_at: int | None = None


ProviderSession = Annotated[
    FacebookSession | InstagramSession | TwitterSession,
    Field(discriminator="provider"),
]


class AuthSession(BaseModel):
    """Signed, client-held session record.

    Attributes:
        user_id: Local user id, empty until the first successful link.
        state: OAuth state of the in-flight authorization round-trip.
        code_verifier: PKCE verifier, only for providers using PKCE.
        code_challenge: PKCE challenge derived from code_verifier.
        created_at: Creation time in epoch milliseconds.
        facebook: Cached Facebook record, if linked.
        instagram: Cached Instagram record, if linked.
        twitter: Cached Twitter record, if linked.
    """

    user_id: str = ""
    state: str | None = None
    code_verifier: str | None = None
    code_challenge: str | None = None
    created_at: int = Field(default_factory=_now_ms)
    facebook: FacebookSession | None = None
    instagram: InstagramSession | None = None
    twitter: TwitterSession | None = None

    def provider_session(self, provider: ProviderName) -> ProviderSession | None:
        """Return the cached record for a provider, if present."""
        return getattr(self, provider)

    def with_provider(self, record: ProviderSession) -> "AuthSession":
        """Return a copy with one provider record added or replaced.

        Records for other providers are preserved.
        """
        return self.model_copy(update={record.provider: record})

    def without_provider(self, provider: ProviderName) -> "AuthSession":
        """Return a copy with one provider record removed."""
        return self.model_copy(update={provider: None})

    def is_expired(self, now: datetime | None = None) -> bool:
        """Application-level age check, independent of the JWT exp claim."""
        max_age_ms = int(SESSION_DURATION.total_seconds() * 1000)
        return _now_ms(now) - self.created_at > max_age_ms


# =============================================================================
# Codec
# =============================================================================


def encode_session(
    session: AuthSession,
    *,
    secret: str,
    now: datetime | None = None,
) -> str:
    """Sign a session into an opaque token.

    Args:
        session: Session record to encode.
        secret: HMAC signing secret (at least 32 characters).
        now: Issue time. Defaults to the current time.

    Returns:
        Encoded HS256 JWT string carrying iat and exp = iat + SESSION_DURATION.
    """
    issued_at = now or datetime.now(UTC)
    payload = session.model_dump(mode="json")
    payload["iat"] = issued_at
    payload["exp"] = issued_at + SESSION_DURATION
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def decode_session(
    token: str,
    *,
    secret: str,
    now: datetime | None = None,
) -> AuthSession | None:
    """Verify and decode a session token.

    Never raises. Tampered, malformed, wrongly signed, expired, or too-old
    tokens all yield None so callers treat "no session" and "bad session"
    identically.

    Args:
        token: Token produced by encode_session().
        secret: HMAC signing secret.
        now: Reference time for the age check. Defaults to the current time.

    Returns:
        The decoded AuthSession, or None.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
        session = AuthSession.model_validate(payload)
    except (jwt.InvalidTokenError, PydanticValidationError) as exc:
        logger.warning(
            "Session token rejected",
            extra={"reason": type(exc).__name__},
        )
        return None

    if session.is_expired(now):
        logger.warning(
            "Session token rejected",
            extra={"reason": "SessionAgeExceeded", "user_id": session.user_id},
        )
        return None

    return session


# =============================================================================
# Cookie helpers
# =============================================================================


def get_session(request: Request) -> AuthSession | None:
    """Read and decode the session cookie from a request."""
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    return decode_session(token, secret=settings.session_secret.get_secret_value())


def set_session_cookie(response: Response, session: AuthSession) -> None:
    """Encode the session and set it as an httpOnly cookie.

    Security: httpOnly prevents XSS cookie theft. Secure flag is set in
    production. SameSite=lax keeps the cookie on top-level OAuth redirects.

    Args:
        response: FastAPI response object.
        session: Session record to store.
    """
    token = encode_session(session, secret=settings.session_secret.get_secret_value())
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
        max_age=int(SESSION_DURATION.total_seconds()),
    )


def clear_session_cookie(response: Response) -> None:
    """Delete the session cookie."""
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
