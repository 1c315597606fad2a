"""Resolve the local user an OAuth callback attaches to.

Priority order:
1. Session already carries a user id → reuse it (multi-provider linking:
   connecting Twitter while signed in via Facebook attaches Twitter to the
   Facebook-derived user)
2. An auth_providers row exists for (provider, provider_id) → its owner
3. Otherwise find or create a user by email. Providers that withhold the
   email get a placeholder scoped to (provider, provider_id), so repeated
   first-time logins for one external account converge on one user.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from adinsights.models.user import User
from adinsights.providers.oauth.base import ProviderIdentity
from adinsights.repositories.auth_provider_repository import AuthProviderRepository
from adinsights.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

_PLACEHOLDER_EMAIL_DOMAIN = "temp.local"


def placeholder_email(provider: str, provider_id: str) -> str:
    """Synthesized email for identities without one."""
    return f"{provider}_{provider_id}@{_PLACEHOLDER_EMAIL_DOMAIN}"


def _parse_user_id(raw: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


async def resolve_local_user(
    *,
    db: AsyncSession,
    session_user_id: str,
    provider: str,
    identity: ProviderIdentity,
) -> tuple[User, bool]:
    """Find or create the local user for a provider identity.

    Args:
        db: Async database session.
        session_user_id: user_id from the current session ("" if none).
        provider: Provider name.
        identity: Identity returned by the provider.

    Returns:
        Tuple of (User, created) where created is True if a new user was made.
    """
    # Step 1: Already signed in - attach to the session user
    if session_user_id:
        user_id = _parse_user_id(session_user_id)
        user = await UserRepository.get_by_id(db, user_id) if user_id else None
        if user is not None:
            logger.info(
                "Linking provider to session user",
                extra={"user_id": str(user.id), "provider": provider},
            )
            return user, False
        logger.warning(
            "Session user not found, resolving by provider identity",
            extra={"provider": provider},
        )

    # Step 2: Returning external account
    existing = await AuthProviderRepository.find_by_provider(db, provider, identity.id)
    if existing is not None:
        user = await UserRepository.get_by_id(db, existing.user_id)
        if user is not None:
            logger.info(
                "Returning OAuth user",
                extra={"user_id": str(user.id), "provider": provider},
            )
            return user, False

    # Step 3: Find or create by email (real or placeholder)
    email = identity.email or placeholder_email(provider, identity.id)
    user, created = await UserRepository.find_or_create_by_email(
        db,
        email=email,
        username=identity.display_name,
    )
    logger.info(
        "Created new OAuth user" if created else "Matched OAuth user by email",
        extra={"user_id": str(user.id), "provider": provider},
    )
    return user, created
