"""Admin endpoints.

Aggregate counts only; no per-user data leaves this router.
"""

from fastapi import APIRouter

from adinsights.api.deps import DbSession, RequiredSession
from adinsights.core.responses import DataResponse
from adinsights.schemas.auth import UserStats
from adinsights.services.user_service import get_user_stats

router = APIRouter()


@router.get("/stats")
async def read_stats(
    _session: RequiredSession, db: DbSession
) -> DataResponse[UserStats]:
    """Total users and connection counts per provider."""
    return DataResponse(data=await get_user_stats(db))
