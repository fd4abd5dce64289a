"""Staff endpoints: tracker management, batch refreshes, jobs and edit-request review.

All routes require an instructor or admin; deleting a tracker requires an admin.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from cptracker.dependencies import (
    AdminUser,
    DbSession,
    RedisClient,
    SchedulerDep,
    StaffUser,
    UpdaterDep,
)
from cptracker.models.edit_request import EditRequestStatus
from cptracker.models.tracker import Platform
from cptracker.schemas.admin import (
    CohortJobCreate,
    JobAction,
    JobStatus,
    TrackerStatistics,
    UserBatchUpdate,
)
from cptracker.schemas.common import MessageResponse, PaginatedResponse
from cptracker.schemas.edit_request import (
    EditRequestApprove,
    EditRequestReject,
    EditRequestResponse,
)
from cptracker.schemas.tracker import TrackerAdminUpdate, TrackerListItem, TrackerResponse
from cptracker.services import edit_requests, tracker_service
from cptracker.services.errors import (
    EditRequestError,
    EditRequestNotFoundError,
    TrackerNotFoundError,
)
from cptracker.services.leaderboard import invalidate_leaderboard_cache
from cptracker.services.updater import BatchResult, UpdateStatistics

router = APIRouter(prefix="/api/v1/cp-tracker/admin", tags=["cp-tracker-admin"])

TRACKER_NOT_FOUND = "CPTracker profile not found for this user"


# -- trackers -----------------------------------------------------------------


@router.get("/trackers", response_model=PaginatedResponse[TrackerListItem])
async def list_trackers(
    staff: StaffUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    is_active: Optional[bool] = Query(True),
    platform: Optional[Platform] = Query(None),
    cohort_id: Optional[str] = Query(None, max_length=64),
    search: Optional[str] = Query(None, max_length=100),
) -> PaginatedResponse[TrackerListItem]:
    return await tracker_service.list_trackers(
        db,
        page=page,
        limit=limit,
        is_active=is_active,
        platform=platform.value if platform else None,
        cohort_id=cohort_id,
        search=search,
    )


@router.get("/trackers/stats", response_model=TrackerStatistics)
async def tracker_statistics(
    staff: StaffUser,
    db: DbSession,
    cohort_id: Optional[str] = Query(None, max_length=64),
) -> TrackerStatistics:
    return await tracker_service.get_tracker_statistics(db, cohort_id)


@router.get("/trackers/{user_id}", response_model=TrackerResponse)
async def get_tracker(user_id: uuid.UUID, staff: StaffUser, db: DbSession) -> TrackerResponse:
    try:
        tracker = await tracker_service.get_tracker(db, user_id)
    except TrackerNotFoundError:
        raise HTTPException(status_code=404, detail=TRACKER_NOT_FOUND)
    return TrackerResponse.model_validate(tracker)


@router.put("/trackers/{user_id}", response_model=TrackerResponse)
async def update_tracker(
    user_id: uuid.UUID, body: TrackerAdminUpdate, staff: StaffUser, db: DbSession
) -> TrackerResponse:
    try:
        tracker = await tracker_service.admin_update_tracker(db, user_id, body)
    except TrackerNotFoundError:
        raise HTTPException(status_code=404, detail=TRACKER_NOT_FOUND)
    return TrackerResponse.model_validate(tracker)


@router.delete("/trackers/{user_id}", response_model=MessageResponse)
async def delete_tracker(
    user_id: uuid.UUID, admin: AdminUser, db: DbSession, cache: RedisClient
) -> MessageResponse:
    """Soft delete: the tracker is deactivated and drops off the leaderboard."""
    try:
        await tracker_service.soft_delete_tracker(db, user_id)
    except TrackerNotFoundError:
        raise HTTPException(status_code=404, detail=TRACKER_NOT_FOUND)
    await invalidate_leaderboard_cache(cache)
    return MessageResponse(message="CPTracker profile deleted successfully")


@router.post("/trackers/{user_id}/refresh", response_model=TrackerResponse)
async def refresh_tracker(
    user_id: uuid.UUID,
    staff: StaffUser,
    db: DbSession,
    updater: UpdaterDep,
    cache: RedisClient,
) -> TrackerResponse:
    try:
        tracker = await tracker_service.admin_refresh_profile(db, updater, user_id)
    except TrackerNotFoundError:
        raise HTTPException(status_code=404, detail=TRACKER_NOT_FOUND)
    await invalidate_leaderboard_cache(cache)
    return TrackerResponse.model_validate(tracker)


# -- batch updates --------------------------------------------------------------


@router.post("/update/all", response_model=BatchResult)
async def update_all(staff: StaffUser, scheduler: SchedulerDep) -> BatchResult:
    return await scheduler.trigger_manual_update("all")


@router.post("/update/cohort/{cohort_id}", response_model=BatchResult)
async def update_cohort(cohort_id: str, staff: StaffUser, scheduler: SchedulerDep) -> BatchResult:
    return await scheduler.trigger_manual_update("cohort", cohort_id)


@router.post("/update/users", response_model=BatchResult)
async def update_users(
    body: UserBatchUpdate, staff: StaffUser, scheduler: SchedulerDep
) -> BatchResult:
    return await scheduler.trigger_manual_update("users", user_ids=body.user_ids)


@router.get("/update/statistics", response_model=UpdateStatistics)
async def update_statistics(staff: StaffUser, updater: UpdaterDep) -> UpdateStatistics:
    return await updater.get_update_statistics()


# -- jobs ---------------------------------------------------------------------------


@router.get("/jobs", response_model=list[JobStatus])
async def job_status(staff: StaffUser, scheduler: SchedulerDep) -> list[JobStatus]:
    return scheduler.get_status()


@router.post("/jobs/cohort/{cohort_id}", response_model=MessageResponse, status_code=201)
async def add_cohort_job(
    cohort_id: str, body: CohortJobCreate, staff: StaffUser, scheduler: SchedulerDep
) -> MessageResponse:
    if not scheduler.add_cohort_job(cohort_id, body.interval_hours):
        raise HTTPException(
            status_code=400,
            detail=f"A recurring job already exists for cohort {cohort_id}",
        )
    return MessageResponse(message=f"Recurring job created for cohort {cohort_id}")


@router.delete("/jobs/cohort/{cohort_id}", response_model=MessageResponse)
async def remove_cohort_job(
    cohort_id: str, staff: StaffUser, scheduler: SchedulerDep
) -> MessageResponse:
    if not scheduler.remove_cohort_job(cohort_id):
        raise HTTPException(
            status_code=404, detail=f"No recurring job found for cohort {cohort_id}"
        )
    return MessageResponse(message=f"Recurring job removed for cohort {cohort_id}")


@router.post("/jobs/{name}", response_model=MessageResponse)
async def manage_job(
    name: str, body: JobAction, staff: StaffUser, scheduler: SchedulerDep
) -> MessageResponse:
    handler = scheduler.start_job if body.action == "start" else scheduler.stop_job
    if not handler(name):
        raise HTTPException(status_code=404, detail=f"Job {name} not found")
    return MessageResponse(message=f"Job {name} {body.action}ed")


# -- edit requests ----------------------------------------------------------------


@router.get("/edit-requests", response_model=PaginatedResponse[EditRequestResponse])
async def list_edit_requests(
    staff: StaffUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[EditRequestStatus] = Query(None),
) -> PaginatedResponse[EditRequestResponse]:
    return await edit_requests.list_edit_requests(db, page=page, limit=limit, status=status)


@router.get("/edit-requests/{request_id}", response_model=EditRequestResponse)
async def get_edit_request(
    request_id: uuid.UUID, staff: StaffUser, db: DbSession
) -> EditRequestResponse:
    try:
        request = await edit_requests.get_edit_request(db, request_id)
    except EditRequestNotFoundError:
        raise HTTPException(status_code=404, detail="Edit request not found")
    return EditRequestResponse.model_validate(request)


@router.post("/edit-requests/{request_id}/approve", response_model=EditRequestResponse)
async def approve_edit_request(
    request_id: uuid.UUID,
    body: EditRequestApprove,
    staff: StaffUser,
    db: DbSession,
) -> EditRequestResponse:
    try:
        request = await edit_requests.approve_edit_request(
            db, request_id, staff.id, body.admin_notes
        )
    except EditRequestNotFoundError:
        raise HTTPException(status_code=404, detail="Edit request not found")
    except TrackerNotFoundError:
        raise HTTPException(status_code=404, detail=TRACKER_NOT_FOUND)
    except EditRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return EditRequestResponse.model_validate(request)


@router.post("/edit-requests/{request_id}/reject", response_model=EditRequestResponse)
async def reject_edit_request(
    request_id: uuid.UUID,
    body: EditRequestReject,
    staff: StaffUser,
    db: DbSession,
) -> EditRequestResponse:
    try:
        request = await edit_requests.reject_edit_request(db, request_id, staff.id, body.reason)
    except EditRequestNotFoundError:
        raise HTTPException(status_code=404, detail="Edit request not found")
    except EditRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return EditRequestResponse.model_validate(request)
