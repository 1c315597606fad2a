"""SQLAlchemy ORM models for adinsights.

All models are exported from this module for convenient imports:
    from adinsights.models import User, AuthProvider

- user.py: User
- auth_provider.py: AuthProvider (FK to users)
"""

from adinsights.models.auth_provider import AuthProvider
from adinsights.models.base import Base, TimestampMixin
from adinsights.models.user import User

__all__ = [
    "AuthProvider",
    "Base",
    "TimestampMixin",
    "User",
]
