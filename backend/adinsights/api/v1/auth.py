"""OAuth endpoints: login, callback, logout, status.

Login returns the provider authorization URL as JSON and stores the fresh
state (plus PKCE pair for Twitter) in the session cookie. The callback
always answers with a redirect to the app root carrying ``?success=`` or
``?error=``, so the browser flow never dead-ends on a JSON error page.
"""

import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import RedirectResponse

from adinsights.api.deps import CurrentSession, DbSession
from adinsights.core.config import settings
from adinsights.core.database import translate_db_errors
from adinsights.core.errors import (
    AuthError,
    AuthErrorKind,
    DatabaseError,
    ValidationError,
)
from adinsights.core.rate_limiting import limiter
from adinsights.core.session import (
    ProviderName,
    clear_session_cookie,
    set_session_cookie,
)
from adinsights.core.urls import callback_url, create_url
from adinsights.schemas.auth import AuthStatusResponse, LoginResponse, LogoutResponse
from adinsights.services.oauth_flow import (
    begin_login,
    get_status,
    handle_callback,
    logout_all,
    logout_provider,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _app_redirect(request: Request, params: dict[str, str]) -> RedirectResponse:
    """Redirect to the app root with a machine-readable outcome."""
    url = create_url("/", params, request=request)
    return RedirectResponse(url=url, status_code=307)


# ===================================================================
# GET /auth/status - Connection status
# ===================================================================


@router.get("/status")
async def auth_status(db: DbSession, session: CurrentSession) -> AuthStatusResponse:
    """Report which providers are connected for the current session.

    Flags come from the auth_providers table; the session cache is echoed
    back with tokens removed.
    """
    return await get_status(db, session=session)


# ===================================================================
# POST /auth/logout - Disconnect everything
# ===================================================================


@router.post("/logout")
@limiter.limit(lambda: settings.rate_limit_auth)
async def logout(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    response: Response,
    db: DbSession,
    session: CurrentSession,
) -> LogoutResponse:
    """Revoke and remove every active connection, then clear the cookie.

    Revocation is best-effort per provider; rows are removed and the
    cookie is cleared regardless.
    """
    result = await logout_all(db, session=session)
    await db.commit()
    clear_session_cookie(response)
    return LogoutResponse(removed=result.removed)


# ===================================================================
# POST /auth/{provider}/login - OAuth Initiation
# ===================================================================


@router.post("/{provider}/login")
@limiter.limit(lambda: settings.rate_limit_auth)
async def oauth_login(
    provider: ProviderName,
    request: Request,
    response: Response,
    session: CurrentSession,
) -> LoginResponse:
    """Start an OAuth round-trip for a provider.

    Generates a fresh state (overwriting any previous one) and, for PKCE
    providers, a verifier/challenge pair. Both are stored in the signed
    session cookie.
    """
    start = begin_login(
        provider=provider,
        session=session,
        redirect_uri=callback_url(provider, request),
    )
    set_session_cookie(response, start.session)
    return LoginResponse(auth_url=start.auth_url)


# ===================================================================
# GET /auth/{provider}/callback - OAuth Callback
# ===================================================================


@router.get("/{provider}/callback")
@limiter.limit(lambda: settings.rate_limit_auth)
async def oauth_callback(
    provider: ProviderName,
    request: Request,
    db: DbSession,
    session: CurrentSession,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> Response:
    """Handle the provider redirect after user consent.

    Validates state, exchanges the code, resolves the local user, stores
    the token record, re-issues the session cookie, and redirects to the
    app root.
    """
    try:
        result = await handle_callback(
            db,
            provider=provider,
            code=code,
            state=state,
            error=error,
            session=session,
            redirect_uri=callback_url(provider, request),
        )
        with translate_db_errors("oauth_callback.commit"):
            await db.commit()
    except AuthError as exc:
        await db.rollback()
        reason = (
            "invalid_state"
            if exc.kind is AuthErrorKind.INVALID_STATE
            else f"{provider}_callback_failed"
        )
        return _app_redirect(request, {"error": reason})
    except ValidationError:
        await db.rollback()
        return _app_redirect(request, {"error": f"{provider}_not_configured"})
    except DatabaseError:
        await db.rollback()
        logger.error("OAuth callback persistence failed", extra={"provider": provider})
        return _app_redirect(request, {"error": f"{provider}_callback_failed"})
    except Exception:
        # The browser is mid-redirect; never strand it on a JSON 500
        await db.rollback()
        logger.exception("OAuth callback failed", extra={"provider": provider})
        return _app_redirect(request, {"error": f"{provider}_callback_failed"})

    redirect = _app_redirect(request, result.redirect_params)
    if result.session is not None:
        set_session_cookie(redirect, result.session)
    return redirect


# ===================================================================
# POST /auth/{provider}/logout - Disconnect one provider
# ===================================================================


@router.post("/{provider}/logout")
@limiter.limit(lambda: settings.rate_limit_auth)
async def oauth_logout(
    provider: ProviderName,
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    response: Response,
    db: DbSession,
    session: CurrentSession,
) -> LogoutResponse:
    """Revoke (best-effort) and remove one provider connection.

    The provider's record is dropped from the session; other providers
    and the signed-in user are kept.
    """
    result = await logout_provider(db, provider=provider, session=session)
    await db.commit()
    if result.session is not None:
        set_session_cookie(response, result.session)
    return LogoutResponse(removed=result.removed)
