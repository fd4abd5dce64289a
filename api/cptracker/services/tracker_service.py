"""Tracker operations behind the student and staff routes."""

import math
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Mapping, Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cptracker.config import settings
from cptracker.models.tracker import PLATFORMS, Tracker
from cptracker.models.user import User
from cptracker.schemas.admin import TopPerformer, TrackerStatistics
from cptracker.schemas.common import PaginatedResponse
from cptracker.schemas.tracker import (
    MyTrackerResponse,
    TrackerAdminUpdate,
    TrackerListItem,
    TrackerResponse,
    TrackerUser,
)
from cptracker.services.errors import (
    ProfileRefreshError,
    RefreshRateLimitedError,
    TrackerNotFoundError,
)
from cptracker.services.leaderboard import ranking_key
from cptracker.services.scoring import round2
from cptracker.services.updater import ProfileUpdater

log = structlog.get_logger(__name__)


def derive_active_platforms(usernames: Mapping[str, Optional[str]]) -> list[str]:
    """Platforms with a non-blank username, in canonical order."""
    return [p for p in PLATFORMS if (usernames.get(p) or "").strip()]


def hours_until_refresh(
    last_updated_by_user: Optional[datetime],
    now: datetime,
    cooldown_hours: Optional[int] = None,
) -> Optional[int]:
    """Whole hours (rounded up) until a manual refresh is allowed, or None if allowed now."""
    if last_updated_by_user is None:
        return None
    cooldown = timedelta(hours=cooldown_hours or settings.manual_refresh_cooldown_hours)
    elapsed = now - last_updated_by_user
    if elapsed >= cooldown:
        return None
    return math.ceil((cooldown - elapsed) / timedelta(hours=1))


async def _get_tracker(db: AsyncSession, user_id: uuid.UUID) -> Tracker:
    tracker = await db.scalar(select(Tracker).where(Tracker.user_id == user_id))
    if tracker is None:
        raise TrackerNotFoundError(user_id)
    return tracker


async def connect_or_update_profile(
    db: AsyncSession,
    user_id: uuid.UUID,
    usernames: Mapping[str, Optional[str]],
) -> Tracker:
    """Create the caller's tracker, or update its usernames.

    On update a blank username keeps the stored one. ``active_platforms`` is
    always re-derived from the usernames supplied in this call and the
    tracker is reactivated.
    """
    active = derive_active_platforms(usernames)
    tracker = await db.scalar(select(Tracker).where(Tracker.user_id == user_id))

    if tracker is None:
        tracker = Tracker(
            user_id=user_id,
            active_platforms=active,
            is_active=True,
            **{f"{p}_username": usernames.get(p) or None for p in PLATFORMS},
        )
        db.add(tracker)
        await db.commit()
        await db.refresh(tracker)
        log.info("tracker_created", user_id=str(user_id), active_platforms=active)
        return tracker

    for platform in PLATFORMS:
        value = usernames.get(platform)
        if value:
            setattr(tracker, f"{platform}_username", value)
    tracker.active_platforms = active
    tracker.is_active = True
    tracker.updated_at = datetime.now(timezone.utc)
    await db.commit()
    log.info("tracker_usernames_updated", user_id=str(user_id), active_platforms=active)
    return tracker


async def get_my_profile(db: AsyncSession, user: User) -> MyTrackerResponse:
    tracker = await _get_tracker(db, user.id)
    hours = hours_until_refresh(tracker.last_updated_by_user, datetime.now(timezone.utc))
    return MyTrackerResponse(
        tracker=TrackerResponse.model_validate(tracker),
        cohort_ids=list(user.cohort_ids or []),
        can_refresh=hours is None,
        hours_until_refresh=hours,
    )


async def refresh_profile(
    db: AsyncSession,
    updater: ProfileUpdater,
    user_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Tracker:
    """User-initiated refresh, limited to one per cooldown window.

    Raises:
        TrackerNotFoundError: the user has no tracker.
        RefreshRateLimitedError: the previous manual refresh is too recent.
    """
    now = now or datetime.now(timezone.utc)
    tracker = await _get_tracker(db, user_id)

    hours = hours_until_refresh(tracker.last_updated_by_user, now)
    if hours is not None:
        log.info("manual_refresh_rate_limited", user_id=str(user_id), hours_remaining=hours)
        raise RefreshRateLimitedError(hours)

    tracker.last_updated_by_user = now
    # Stamp the cooldown only; updated_at keeps its stored value
    tracker.updated_at = Tracker.__table__.c.updated_at
    await db.commit()
    await db.refresh(tracker)
    log.info("manual_refresh_started", user_id=str(user_id))

    try:
        refreshed = await updater.update_single_profile(user_id)
    except ProfileRefreshError as exc:
        log.warning(
            "manual_refresh_failed", user_id=str(user_id), platforms=sorted(exc.failures)
        )
        return tracker
    return refreshed or tracker


async def admin_refresh_profile(
    db: AsyncSession, updater: ProfileUpdater, user_id: uuid.UUID
) -> Tracker:
    """Staff refresh: no cooldown, does not touch last_updated_by_user."""
    tracker = await _get_tracker(db, user_id)
    try:
        refreshed = await updater.update_single_profile(user_id)
    except ProfileRefreshError as exc:
        log.warning(
            "admin_refresh_failed", user_id=str(user_id), platforms=sorted(exc.failures)
        )
        return tracker
    if refreshed is None:
        # Tracker exists but is inactive
        raise TrackerNotFoundError(user_id)
    log.info("admin_refresh_completed", user_id=str(user_id))
    return refreshed


async def get_tracker(db: AsyncSession, user_id: uuid.UUID) -> Tracker:
    return await _get_tracker(db, user_id)


async def admin_update_tracker(
    db: AsyncSession, user_id: uuid.UUID, data: TrackerAdminUpdate
) -> Tracker:
    tracker = await _get_tracker(db, user_id)
    for platform, value in data.as_dict().items():
        if value:
            setattr(tracker, f"{platform}_username", value)

    usernames = {p: tracker.username_for(p) for p in PLATFORMS}
    if data.active_platforms is None:
        tracker.active_platforms = derive_active_platforms(usernames)
    else:
        tracker.active_platforms = [p for p in data.active_platforms if usernames[p]]
    if data.is_active is not None:
        tracker.is_active = data.is_active

    tracker.updated_at = datetime.now(timezone.utc)
    await db.commit()
    log.info("tracker_updated_by_staff", user_id=str(user_id), active_platforms=tracker.active_platforms)
    return tracker


async def soft_delete_tracker(db: AsyncSession, user_id: uuid.UUID) -> None:
    tracker = await _get_tracker(db, user_id)
    tracker.is_active = False
    tracker.updated_at = datetime.now(timezone.utc)
    await db.commit()
    log.info("tracker_deactivated", user_id=str(user_id))


def _tracker_filters(
    is_active: Optional[bool],
    platform: Optional[str],
    cohort_id: Optional[str],
    search: Optional[str],
) -> list:
    filters = []
    if is_active is not None:
        filters.append(Tracker.is_active.is_(is_active))
    if platform:
        filters.append(Tracker.active_platforms.contains([platform]))
    if cohort_id:
        filters.append(User.cohort_ids.contains([cohort_id]))
    if search:
        pattern = f"%{search}%"
        filters.append(
            or_(
                User.display_name.ilike(pattern),
                User.email.ilike(pattern),
                *(getattr(Tracker, f"{p}_username").ilike(pattern) for p in PLATFORMS),
            )
        )
    return filters


async def list_trackers(
    db: AsyncSession,
    page: int = 1,
    limit: int = 100,
    is_active: Optional[bool] = True,
    platform: Optional[str] = None,
    cohort_id: Optional[str] = None,
    search: Optional[str] = None,
) -> PaginatedResponse[TrackerListItem]:
    filters = _tracker_filters(is_active, platform, cohort_id, search)
    offset = (page - 1) * limit

    total = await db.scalar(
        select(func.count())
        .select_from(Tracker)
        .join(User, User.id == Tracker.user_id)
        .where(*filters)
    )
    result = await db.execute(
        select(Tracker, User)
        .join(User, User.id == Tracker.user_id)
        .where(*filters)
        .order_by(Tracker.performance_score.desc(), Tracker.created_at, Tracker.id)
        .offset(offset)
        .limit(limit)
    )

    items = [
        TrackerListItem(
            id=tracker.id,
            rank=offset + index + 1,
            user=TrackerUser.model_validate(user),
            platforms={p: tracker.username_for(p) for p in PLATFORMS},
            performance_score=tracker.performance_score,
            leetcode_total_problems=tracker.leetcode_total_problems,
            codeforces_rating=tracker.codeforces_rating,
            codechef_rating=tracker.codechef_rating,
            atcoder_rating=tracker.atcoder_rating,
            active_platforms=list(tracker.active_platforms or []),
            is_active=tracker.is_active,
            last_updated=tracker.updated_at,
            created_at=tracker.created_at,
        )
        for index, (tracker, user) in enumerate(result.all())
    ]
    return PaginatedResponse[TrackerListItem](
        items=items, total=total or 0, page=page, page_size=limit
    )


def summarize_trackers(rows: list[tuple[Tracker, Optional[str]]], top: int = 10) -> TrackerStatistics:
    """Aggregate statistics over (tracker, display_name) rows. Pure."""
    trackers = [tracker for tracker, _ in rows]
    total = len(trackers)
    scores = [tracker.performance_score or Decimal(0) for tracker in trackers]
    average = round2(sum(scores, Decimal(0)) / total) if total else Decimal("0.00")

    ranked = sorted(rows, key=lambda row: ranking_key(row[0]))
    top_performers = [
        TopPerformer(
            rank=index + 1,
            user_id=tracker.user_id,
            display_name=name,
            performance_score=tracker.performance_score or Decimal(0),
            platforms_connected=len(tracker.active_platforms or []),
        )
        for index, (tracker, name) in enumerate(ranked[:top])
    ]
    return TrackerStatistics(
        total_users=total,
        users_with_score=sum(1 for s in scores if s > 0),
        platforms={p: sum(1 for t in trackers if t.username_for(p)) for p in PLATFORMS},
        average_performance_score=average,
        top_performers=top_performers,
    )


async def get_tracker_statistics(
    db: AsyncSession, cohort_id: Optional[str] = None
) -> TrackerStatistics:
    stmt = (
        select(Tracker, User.display_name)
        .join(User, User.id == Tracker.user_id)
        .where(Tracker.is_active.is_(True))
    )
    if cohort_id:
        stmt = stmt.where(User.cohort_ids.contains([cohort_id]))
    result = await db.execute(stmt)
    return summarize_trackers([(row[0], row[1]) for row in result.all()])
