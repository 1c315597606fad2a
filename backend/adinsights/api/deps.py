"""Shared dependencies for API endpoints.

Database session and session-cookie dependencies, exposed as Annotated
aliases so endpoint signatures stay short.
"""

import uuid
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from adinsights.core.database import get_db
from adinsights.core.errors import AuthError, AuthErrorKind
from adinsights.core.session import AuthSession, get_session


def get_current_session(request: Request) -> AuthSession | None:
    """Decode the session cookie, or None if absent or invalid."""
    return get_session(request)


def require_session(
    session: Annotated[AuthSession | None, Depends(get_current_session)],
) -> AuthSession:
    """Require a session bound to a local user.

    Raises:
        AuthError: MISSING_SESSION (401) if there is no signed-in user.
    """
    if session is None or not session.user_id:
        raise AuthError(AuthErrorKind.MISSING_SESSION)
    return session


def get_current_user_id(
    session: Annotated[AuthSession, Depends(require_session)],
) -> uuid.UUID:
    """User id of the signed-in session.

    Raises:
        AuthError: MISSING_SESSION (401) if the stored id is malformed.
    """
    try:
        return uuid.UUID(session.user_id)
    except ValueError:
        raise AuthError(AuthErrorKind.MISSING_SESSION) from None


DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentSession = Annotated[AuthSession | None, Depends(get_current_session)]
RequiredSession = Annotated[AuthSession, Depends(require_session)]
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
