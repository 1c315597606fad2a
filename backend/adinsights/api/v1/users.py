"""User profile endpoints.

GET  /users/profile - Current user with linked providers (tokens omitted)
PUT  /users/profile - Update username and/or email
"""

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from adinsights.api.deps import CurrentUserId, DbSession
from adinsights.core.responses import DataResponse
from adinsights.schemas.auth import UserProfile
from adinsights.services.user_service import get_profile, update_profile

router = APIRouter()


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /users/profile."""

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(default=None, min_length=1, max_length=50)
    email: EmailStr | None = None


@router.get("/profile")
async def read_profile(
    user_id: CurrentUserId, db: DbSession
) -> DataResponse[UserProfile]:
    """Return the signed-in user and their provider connections."""
    profile = await get_profile(db, user_id)
    return DataResponse(data=profile)


@router.put("/profile")
async def write_profile(
    body: ProfileUpdateRequest, user_id: CurrentUserId, db: DbSession
) -> DataResponse[UserProfile]:
    """Update the signed-in user's profile.

    Raises:
        ValidationError: Username is blank after sanitization (400).
        ConflictError: Email already belongs to another user (409).
    """
    profile = await update_profile(
        db, user_id, username=body.username, email=body.email
    )
    return DataResponse(data=profile)
