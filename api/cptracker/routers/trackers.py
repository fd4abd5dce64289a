"""Student-facing tracker endpoints.

POST /api/v1/cp-tracker/connect              -- create or update own tracker
GET  /api/v1/cp-tracker/my-profile           -- own tracker, cohorts, refresh availability
POST /api/v1/cp-tracker/my-profile/refresh   -- manual refresh, once per 24 hours
POST /api/v1/cp-tracker/edit-request         -- ask staff to change usernames
GET  /api/v1/cp-tracker/edit-requests/mine   -- own edit requests
"""

from fastapi import APIRouter, HTTPException, Query

from cptracker.dependencies import CurrentUser, DbSession, RedisClient, UpdaterDep
from cptracker.schemas.common import PaginatedResponse
from cptracker.schemas.edit_request import EditRequestCreate, EditRequestResponse
from cptracker.schemas.tracker import MyTrackerResponse, TrackerConnect, TrackerResponse
from cptracker.services import edit_requests, tracker_service
from cptracker.services.errors import (
    EditRequestError,
    RefreshRateLimitedError,
    TrackerNotFoundError,
)
from cptracker.services.leaderboard import invalidate_leaderboard_cache

router = APIRouter(prefix="/api/v1/cp-tracker", tags=["cp-tracker"])

TRACKER_NOT_FOUND = "CPTracker profile not found"


@router.post("/connect", response_model=TrackerResponse)
async def connect_profiles(body: TrackerConnect, user: CurrentUser, db: DbSession) -> TrackerResponse:
    """Create the caller's tracker or update its usernames.

    Blank usernames keep the stored value; active platforms are re-derived
    from the usernames sent in this request.
    """
    tracker = await tracker_service.connect_or_update_profile(db, user.id, body.as_dict())
    return TrackerResponse.model_validate(tracker)


@router.get("/my-profile", response_model=MyTrackerResponse)
async def get_my_profile(user: CurrentUser, db: DbSession) -> MyTrackerResponse:
    try:
        return await tracker_service.get_my_profile(db, user)
    except TrackerNotFoundError:
        raise HTTPException(status_code=404, detail=TRACKER_NOT_FOUND)


@router.post("/my-profile/refresh", response_model=TrackerResponse)
async def refresh_my_profile(
    user: CurrentUser,
    db: DbSession,
    updater: UpdaterDep,
    cache: RedisClient,
) -> TrackerResponse:
    try:
        tracker = await tracker_service.refresh_profile(db, updater, user.id)
    except TrackerNotFoundError:
        raise HTTPException(status_code=404, detail=TRACKER_NOT_FOUND)
    except RefreshRateLimitedError as exc:
        raise HTTPException(
            status_code=429,
            detail=str(exc),
            headers={"Retry-After": str(exc.hours_remaining * 3600)},
        )
    await invalidate_leaderboard_cache(cache)
    return TrackerResponse.model_validate(tracker)


@router.post("/edit-request", response_model=EditRequestResponse, status_code=201)
async def submit_edit_request(
    body: EditRequestCreate, user: CurrentUser, db: DbSession
) -> EditRequestResponse:
    try:
        request = await edit_requests.create_edit_request(db, user.id, body)
    except TrackerNotFoundError:
        raise HTTPException(status_code=404, detail=TRACKER_NOT_FOUND)
    except EditRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return EditRequestResponse.model_validate(request)


@router.get("/edit-requests/mine", response_model=PaginatedResponse[EditRequestResponse])
async def list_my_edit_requests(
    user: CurrentUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> PaginatedResponse[EditRequestResponse]:
    return await edit_requests.list_edit_requests(db, page=page, limit=limit, user_id=user.id)
