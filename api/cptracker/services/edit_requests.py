"""Username change requests: students propose, staff approve or reject."""

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cptracker.models.edit_request import EditRequest, EditRequestStatus
from cptracker.models.tracker import PLATFORMS, Tracker
from cptracker.schemas.common import PaginatedResponse
from cptracker.schemas.edit_request import EditRequestCreate, EditRequestResponse
from cptracker.services.errors import (
    EditRequestError,
    EditRequestNotFoundError,
    TrackerNotFoundError,
)

log = structlog.get_logger(__name__)


async def create_edit_request(
    db: AsyncSession, user_id: uuid.UUID, data: EditRequestCreate
) -> EditRequest:
    pending = await db.scalar(
        select(EditRequest.id).where(
            EditRequest.user_id == user_id,
            EditRequest.status == EditRequestStatus.pending,
        )
    )
    if pending is not None:
        raise EditRequestError(
            "You already have a pending edit request. Please wait for admin approval."
        )

    tracker = await db.scalar(select(Tracker).where(Tracker.user_id == user_id))
    if tracker is None:
        raise TrackerNotFoundError(user_id)

    request = EditRequest(
        user_id=user_id,
        requested_active_platforms=data.active_platforms,
        reason=data.reason,
        status=EditRequestStatus.pending,
    )
    for platform, requested in data.as_dict().items():
        setattr(request, f"current_{platform}_username", tracker.username_for(platform))
        setattr(request, f"requested_{platform}_username", requested)

    db.add(request)
    await db.commit()
    await db.refresh(request)
    log.info("edit_request_created", user_id=str(user_id), request_id=str(request.id))
    return request


async def list_edit_requests(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    status: Optional[EditRequestStatus] = None,
    user_id: Optional[uuid.UUID] = None,
) -> PaginatedResponse[EditRequestResponse]:
    filters = []
    if status is not None:
        filters.append(EditRequest.status == status)
    if user_id is not None:
        filters.append(EditRequest.user_id == user_id)

    total = await db.scalar(select(func.count()).select_from(EditRequest).where(*filters))
    result = await db.execute(
        select(EditRequest)
        .where(*filters)
        .order_by(EditRequest.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [EditRequestResponse.model_validate(r) for r in result.scalars().all()]
    return PaginatedResponse[EditRequestResponse](
        items=items, total=total or 0, page=page, page_size=limit
    )


async def get_edit_request(db: AsyncSession, request_id: uuid.UUID) -> EditRequest:
    request = await db.get(EditRequest, request_id)
    if request is None:
        raise EditRequestNotFoundError(f"Edit request {request_id} not found")
    return request


async def _pending_request(db: AsyncSession, request_id: uuid.UUID) -> EditRequest:
    request = await get_edit_request(db, request_id)
    if request.status != EditRequestStatus.pending:
        raise EditRequestError("Request has already been processed")
    return request


def _mark_reviewed(
    request: EditRequest, status: EditRequestStatus, reviewer_id: uuid.UUID, notes: Optional[str]
) -> None:
    request.status = status
    request.reviewed_by = reviewer_id
    request.admin_notes = notes
    request.reviewed_at = datetime.now(timezone.utc)
    request.updated_at = request.reviewed_at


async def approve_edit_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    reviewer_id: uuid.UUID,
    admin_notes: Optional[str] = None,
) -> EditRequest:
    """Copy the requested usernames and platforms onto the tracker."""
    request = await _pending_request(db, request_id)
    tracker = await db.scalar(select(Tracker).where(Tracker.user_id == request.user_id))
    if tracker is None:
        raise TrackerNotFoundError(request.user_id)

    for platform in PLATFORMS:
        setattr(
            tracker,
            f"{platform}_username",
            getattr(request, f"requested_{platform}_username"),
        )
    tracker.active_platforms = [
        p for p in (request.requested_active_platforms or []) if tracker.username_for(p)
    ]
    tracker.updated_at = datetime.now(timezone.utc)

    _mark_reviewed(request, EditRequestStatus.approved, reviewer_id, admin_notes)
    await db.commit()
    log.info("edit_request_approved", request_id=str(request_id), reviewer_id=str(reviewer_id))
    return request


async def reject_edit_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    reviewer_id: uuid.UUID,
    reason: str,
) -> EditRequest:
    """Close the request without touching the tracker."""
    request = await _pending_request(db, request_id)
    _mark_reviewed(request, EditRequestStatus.rejected, reviewer_id, reason)
    await db.commit()
    log.info("edit_request_rejected", request_id=str(request_id), reviewer_id=str(reviewer_id))
    return request
