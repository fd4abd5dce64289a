"""Leaderboard endpoint.

GET /api/v1/cp-tracker/leaderboard -- ranked trackers, optionally for one cohort
"""

from typing import Optional

from fastapi import APIRouter, Query

from cptracker.config import settings
from cptracker.dependencies import CurrentUser, DbSession, RedisClient
from cptracker.schemas.leaderboard import LeaderboardResponse
from cptracker.services.leaderboard import get_leaderboard

router = APIRouter(prefix="/api/v1/cp-tracker", tags=["leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    user: CurrentUser,
    db: DbSession,
    cache: RedisClient,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.leaderboard_default_limit, ge=1, le=settings.leaderboard_max_limit),
    cohort_id: Optional[str] = Query(None, max_length=64),
    fresh: bool = Query(False, description="Recompute instead of serving the cached snapshot"),
) -> LeaderboardResponse:
    return await get_leaderboard(db, cache, page=page, limit=limit, cohort_id=cohort_id, fresh=fresh)
