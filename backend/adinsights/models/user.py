"""User model - local account that provider identities attach to.

Exactly one row per distinct email. Providers that withhold email get a
synthesized placeholder scoped to (provider, provider_id).
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from adinsights.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from adinsights.models.auth_provider import AuthProvider


class User(Base, TimestampMixin):
    """Local user account.

    Attributes:
        id: UUID primary key.
        email: Unique email address (real or placeholder).
        username: Display name.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    username: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    auth_providers: Mapped[list["AuthProvider"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
