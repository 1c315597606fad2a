"""Pydantic response schemas for API endpoints."""

from adinsights.schemas.auth import (
    AuthStatusResponse,
    LinkedProvider,
    LoginResponse,
    LogoutResponse,
    SessionInfo,
    UserProfile,
    UserStats,
)

__all__ = [
    "AuthStatusResponse",
    "LinkedProvider",
    "LoginResponse",
    "LogoutResponse",
    "SessionInfo",
    "UserProfile",
    "UserStats",
]
