"""OAuth flow orchestration: login, callback reconciliation, logout, status.

Per provider the flow moves through:

    NOT_STARTED → STATE_ISSUED → CODE_RECEIVED → TOKEN_EXCHANGED
        → IDENTITY_RESOLVED → LINKED

with terminal failures DENIED (provider reported ``error``),
INVALID_CALLBACK (missing parameters), STATE_MISMATCH, EXCHANGE_FAILED and
IDENTITY_FAILED. DENIED and INVALID_CALLBACK are soft outcomes returned to
the caller; the other failures raise AuthError.

Provider differences live behind OAuthClient. This module never branches
on provider name except through the session-record lookup table.
"""

import asyncio
import logging
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from adinsights.core.account_linking import resolve_local_user
from adinsights.core.errors import AuthError, AuthErrorKind, ValidationError
from adinsights.core.oauth import (
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
)
from adinsights.core.session import (
    PROVIDERS,
    AuthSession,
    FacebookSession,
    InstagramSession,
    ProviderName,
    ProviderSession,
    TwitterSession,
)
from adinsights.models.auth_provider import AuthProvider
from adinsights.providers.factory import get_oauth_client
from adinsights.providers.oauth.base import (
    BusinessData,
    OAuthClient,
    ProviderIdentity,
    TokenSet,
)
from adinsights.repositories.auth_provider_repository import (
    AuthProviderInput,
    AuthProviderRepository,
)
from adinsights.repositories.user_repository import UserRepository
from adinsights.schemas.auth import (
    AuthStatusResponse,
    FacebookSessionInfo,
    InstagramSessionInfo,
    ProviderStatus,
    SessionInfo,
    StatusUser,
    TwitterSessionInfo,
)

logger = logging.getLogger(__name__)


class OAuthFlowState(str, Enum):
    """Where a single provider authorization round-trip ended up."""

    NOT_STARTED = "not_started"
    STATE_ISSUED = "state_issued"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_RESOLVED = "identity_resolved"
    LINKED = "linked"
    DENIED = "denied"
    INVALID_CALLBACK = "invalid_callback"
    STATE_MISMATCH = "state_mismatch"
    EXCHANGE_FAILED = "exchange_failed"
    IDENTITY_FAILED = "identity_failed"


@dataclass(frozen=True)
class LoginStart:
    """Result of begin_login().

    Attributes:
        auth_url: Provider authorization URL.
        session: Session carrying the fresh state (and PKCE pair).
    """

    auth_url: str
    session: AuthSession


@dataclass(frozen=True)
class CallbackResult:
    """Result of handle_callback().

    Attributes:
        state: Terminal flow state (LINKED, DENIED, or INVALID_CALLBACK).
        redirect_params: Query parameters for the redirect to the app root.
        session: Updated session to re-issue, or None to leave the cookie as is.
        user_created: Whether a new local user was created.
    """

    state: OAuthFlowState
    redirect_params: dict[str, str]
    session: AuthSession | None = None
    user_created: bool = False


@dataclass
class LogoutResult:
    """Outcome of a logout fan-out.

    Attributes:
        session: Session to re-issue, or None when the cookie is cleared.
        removed: Number of auth_providers rows deleted.
        revoke_failures: Providers whose revocation failed.
    """

    session: AuthSession | None
    removed: int = 0
    revoke_failures: list[str] = field(default_factory=list)


# =============================================================================
# Login
# =============================================================================


def _configured_client(provider: str) -> OAuthClient:
    try:
        client = get_oauth_client(provider)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if not client.is_configured:
        raise ValidationError(f"OAuth provider {provider} is not configured")
    return client


def begin_login(
    *,
    provider: str,
    session: AuthSession | None,
    redirect_uri: str,
) -> LoginStart:
    """Issue a fresh state (and PKCE pair) and build the authorization URL.

    Any previous in-flight state is overwritten: one round-trip per session.

    Args:
        provider: Provider name.
        session: Current session, or None to start a new one.
        redirect_uri: Callback URL for this provider.

    Returns:
        LoginStart with the authorization URL and updated session.

    Raises:
        ValidationError: If the provider is unknown or not configured.
    """
    client = _configured_client(provider)

    state = generate_state()
    code_verifier = None
    code_challenge = None
    if client.uses_pkce:
        code_verifier = generate_code_verifier()
        code_challenge = generate_code_challenge(code_verifier)

    updated = (session or AuthSession()).model_copy(
        update={
            "state": state,
            "code_verifier": code_verifier,
            "code_challenge": code_challenge,
        }
    )
    auth_url = client.build_authorization_url(
        state=state,
        redirect_uri=redirect_uri,
        code_challenge=code_challenge,
    )
    logger.info(
        "OAuth login initiated",
        extra={
            "provider": provider,
            "flow_state": OAuthFlowState.STATE_ISSUED.value,
            # A pending state means an earlier round-trip was abandoned
            "previous_state": (
                OAuthFlowState.STATE_ISSUED.value
                if session is not None and session.state
                else OAuthFlowState.NOT_STARTED.value
            ),
        },
    )
    return LoginStart(auth_url=auth_url, session=updated)


# =============================================================================
# Callback
# =============================================================================


def _log_transition(provider: str, flow_state: OAuthFlowState) -> None:
    logger.debug(
        "OAuth flow advanced",
        extra={"provider": provider, "flow_state": flow_state.value},
    )


def _log_failure(provider: str, flow_state: OAuthFlowState) -> None:
    logger.warning(
        "OAuth flow failed",
        extra={"provider": provider, "flow_state": flow_state.value},
    )


def _state_matches(expected: str | None, received: str) -> bool:
    # Exact equality, constant time
    if not expected:
        return False
    return secrets.compare_digest(expected.encode(), received.encode())


def _epoch_ms(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def _facebook_record(
    tokens: TokenSet,
    identity: ProviderIdentity,
    expires_at: datetime | None,
    client: OAuthClient,
) -> ProviderSession:
    return FacebookSession(
        access_token=tokens.access_token,
        user_id=identity.id,
        name=identity.name,
        email=identity.email,
        expires_at=_epoch_ms(expires_at),
        config_id=client.config_id,
    )


def _instagram_record(
    tokens: TokenSet,
    identity: ProviderIdentity,
    expires_at: datetime | None,
    client: OAuthClient,  # noqa: ARG001 - uniform builder signature
) -> ProviderSession:
    return InstagramSession(
        access_token=tokens.access_token,
        user_id=identity.id,
        username=identity.username,
        expires_at=_epoch_ms(expires_at),
    )


def _twitter_record(
    tokens: TokenSet,
    identity: ProviderIdentity,
    expires_at: datetime | None,
    client: OAuthClient,  # noqa: ARG001 - uniform builder signature
) -> ProviderSession:
    return TwitterSession(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        user_id=identity.id,
        username=identity.username,
        expires_at=_epoch_ms(expires_at),
    )


_SessionRecordBuilder = Callable[
    [TokenSet, ProviderIdentity, datetime | None, OAuthClient],
    ProviderSession,
]

_SESSION_RECORD_BUILDERS: dict[str, _SessionRecordBuilder] = {
    "facebook": _facebook_record,
    "instagram": _instagram_record,
    "twitter": _twitter_record,
}


async def _fetch_identity_and_business(
    client: OAuthClient,
    access_token: str,
) -> tuple[ProviderIdentity, BusinessData | None]:
    """Fetch identity and business enrichment concurrently.

    Identity failure is fatal. Business failure degrades to None.
    """
    identity, business = await asyncio.gather(
        client.fetch_identity(access_token),
        client.fetch_business_data(access_token),
        return_exceptions=True,
    )
    if isinstance(identity, BaseException):
        raise identity
    if isinstance(business, BaseException):
        logger.warning(
            "Business data enrichment failed",
            extra={
                "provider": client.provider_name,
                "error_type": type(business).__name__,
            },
        )
        business = None
    return identity, business


async def handle_callback(
    db: AsyncSession,
    *,
    provider: str,
    code: str | None,
    state: str | None,
    error: str | None,
    session: AuthSession | None,
    redirect_uri: str,
    now: datetime | None = None,
) -> CallbackResult:
    """Reconcile an OAuth callback into a linked local account.

    Steps:
    1. Provider reported ``error`` → DENIED, no writes
    2. Missing code or state → INVALID_CALLBACK, no writes
    3. session.state must equal state exactly, else AuthError(INVALID_STATE)
    4. Exchange code (PKCE verifier from the session, unmodified)
    5. Fetch identity (and business data concurrently where available)
    6. Resolve local user: session user, existing link, or new user
    7. Upsert the auth_providers row
    8. Merge user id and provider record into the session, clear the
       in-flight state and PKCE pair

    Args:
        db: Async database session. The caller commits or rolls back.
        provider: Provider name.
        code: ``code`` query parameter.
        state: ``state`` query parameter.
        error: ``error`` query parameter.
        session: Session decoded from the cookie, or None.
        redirect_uri: Same redirect URI used at login time.
        now: Reference time for expiry calculation.

    Returns:
        CallbackResult describing the redirect and the session to issue.

    Raises:
        ValidationError: If the provider is unknown or not configured.
        AuthError: INVALID_STATE on state mismatch; UPSTREAM_OAUTH_FAILURE
            if token exchange or identity fetch fails.
        DatabaseError: If persistence fails.
    """
    if error:
        logger.info(
            "OAuth authorization denied",
            extra={"provider": provider, "error": error[:100]},
        )
        return CallbackResult(
            state=OAuthFlowState.DENIED,
            redirect_params={"error": f"{provider}_auth_denied"},
        )

    if not code or not state:
        return CallbackResult(
            state=OAuthFlowState.INVALID_CALLBACK,
            redirect_params={"error": "invalid_callback"},
        )

    client = _configured_client(provider)

    # CSRF defense: exact match against the state issued at login
    if session is None or not _state_matches(session.state, state):
        _log_failure(provider, OAuthFlowState.STATE_MISMATCH)
        raise AuthError(AuthErrorKind.INVALID_STATE)
    _log_transition(provider, OAuthFlowState.CODE_RECEIVED)

    try:
        tokens = await client.exchange_code(
            code=code,
            redirect_uri=redirect_uri,
            code_verifier=session.code_verifier if client.uses_pkce else None,
        )
    except AuthError:
        _log_failure(provider, OAuthFlowState.EXCHANGE_FAILED)
        raise
    _log_transition(provider, OAuthFlowState.TOKEN_EXCHANGED)

    try:
        identity, business = await _fetch_identity_and_business(
            client, tokens.access_token
        )
    except AuthError:
        _log_failure(provider, OAuthFlowState.IDENTITY_FAILED)
        raise
    _log_transition(provider, OAuthFlowState.IDENTITY_RESOLVED)

    user, created = await resolve_local_user(
        db=db,
        session_user_id=session.user_id,
        provider=provider,
        identity=identity,
    )

    now = now or datetime.now(UTC)
    expires_at = (
        now + timedelta(seconds=tokens.expires_in)
        if tokens.expires_in is not None
        else None
    )
    await AuthProviderRepository.upsert(
        db,
        user.id,
        AuthProviderInput(
            provider=provider,
            provider_id=identity.id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=expires_at,
            username=identity.display_name,
            email=identity.email,
            advertising_account_id=business.primary_ad_account_id if business else None,
            business_accounts=business.businesses if business else [],
            ad_accounts=business.ad_accounts if business else [],
            config_id=client.config_id,
        ),
    )

    record = _SESSION_RECORD_BUILDERS[provider](tokens, identity, expires_at, client)
    updated = session.with_provider(record).model_copy(
        update={
            "user_id": str(user.id),
            "state": None,
            "code_verifier": None,
            "code_challenge": None,
        }
    )
    logger.info(
        "OAuth provider linked",
        extra={"user_id": str(user.id), "provider": provider, "created": created},
    )
    return CallbackResult(
        state=OAuthFlowState.LINKED,
        redirect_params={"success": provider},
        session=updated,
        user_created=created,
    )


# =============================================================================
# Logout
# =============================================================================


def _session_user_id(session: AuthSession | None) -> uuid.UUID | None:
    if session is None or not session.user_id:
        return None
    try:
        return uuid.UUID(session.user_id)
    except ValueError:
        return None


async def _revoke(record: AuthProvider) -> None:
    client = get_oauth_client(record.provider)
    await client.revoke_token(
        access_token=record.access_token,
        provider_id=record.provider_id,
    )


async def _revoke_and_remove(
    db: AsyncSession,
    records: list[AuthProvider],
) -> tuple[int, list[str]]:
    """Revoke every token concurrently, then delete every row.

    Revocations are independent: each outcome is collected and a failure
    is only logged. Row deletion runs afterwards, sequentially, on the one
    database session, regardless of revocation outcomes.

    Returns:
        Tuple of (rows removed, providers whose revocation failed).
    """
    outcomes = await asyncio.gather(
        *(_revoke(record) for record in records),
        return_exceptions=True,
    )

    failures: list[str] = []
    for record, outcome in zip(records, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            failures.append(record.provider)
            logger.warning(
                "Token revocation failed",
                extra={
                    "provider": record.provider,
                    "error_type": type(outcome).__name__,
                },
            )

    removed = 0
    for record in records:
        if await AuthProviderRepository.remove(db, record.provider, record.provider_id):
            removed += 1
    return removed, failures


async def logout_provider(
    db: AsyncSession,
    *,
    provider: str,
    session: AuthSession | None,
) -> LogoutResult:
    """Disconnect one provider from the session user.

    Args:
        db: Async database session.
        provider: Provider name.
        session: Current session.

    Returns:
        LogoutResult with the session minus this provider's record.

    Raises:
        ValidationError: If the provider is unknown.
        AuthError: MISSING_SESSION if there is no signed-in user.
    """
    if provider not in PROVIDERS:
        raise ValidationError(f"Unsupported OAuth provider: {provider}")
    user_id = _session_user_id(session)
    if session is None or user_id is None:
        raise AuthError(AuthErrorKind.MISSING_SESSION)

    record = await AuthProviderRepository.get_for_user(db, user_id, provider)
    removed, failures = await _revoke_and_remove(db, [record] if record else [])

    logger.info(
        "Provider logout",
        extra={"user_id": str(user_id), "provider": provider, "removed": removed},
    )
    return LogoutResult(
        session=session.without_provider(provider),
        removed=removed,
        revoke_failures=failures,
    )


async def logout_all(
    db: AsyncSession,
    *,
    session: AuthSession | None,
) -> LogoutResult:
    """Disconnect every active provider and end the session.

    A revocation failure for one provider never prevents cleanup of the
    others. The session cookie is always cleared by the caller.

    Args:
        db: Async database session.
        session: Current session, or None.

    Returns:
        LogoutResult with session=None.
    """
    user_id = _session_user_id(session)
    if user_id is None:
        return LogoutResult(session=None)

    records = await AuthProviderRepository.list_active(db, user_id)
    removed, failures = await _revoke_and_remove(db, records)
    logger.info(
        "Full logout",
        extra={"user_id": str(user_id), "removed": removed, "failed": failures},
    )
    return LogoutResult(session=None, removed=removed, revoke_failures=failures)


# =============================================================================
# Status
# =============================================================================

_SESSION_INFO_TYPES = {
    "facebook": FacebookSessionInfo,
    "instagram": InstagramSessionInfo,
    "twitter": TwitterSessionInfo,
}

# Never echoed back to the browser
_TOKEN_FIELDS = {"provider", "access_token", "refresh_token"}


def _session_info(session: AuthSession | None) -> SessionInfo:
    if session is None:
        return SessionInfo()
    infos = {}
    for provider in PROVIDERS:
        record = session.provider_session(provider)
        if record is not None:
            info_type = _SESSION_INFO_TYPES[provider]
            infos[provider] = info_type.model_validate(
                record.model_dump(exclude=_TOKEN_FIELDS)
            )
    return SessionInfo(**infos)


async def get_status(
    db: AsyncSession,
    *,
    session: AuthSession | None,
    now: datetime | None = None,
) -> AuthStatusResponse:
    """Build the connection status for the current session.

    Connection flags come from active auth_providers rows, not from the
    session cache.
    """
    user_id = _session_user_id(session)
    user = await UserRepository.get_by_id(db, user_id) if user_id else None
    if user is None:
        return AuthStatusResponse(
            status=ProviderStatus(),
            session=_session_info(session),
            user=None,
        )

    active = await AuthProviderRepository.list_active(db, user.id, now=now)
    connected: set[ProviderName] = {
        record.provider for record in active if record.provider in PROVIDERS
    }
    return AuthStatusResponse(
        status=ProviderStatus(**{p: p in connected for p in PROVIDERS}),
        session=_session_info(session),
        user=StatusUser(
            id=user.id,
            email=user.email,
            username=user.username,
            created_at=user.created_at,
            auth_providers=len(active),
        ),
    )
