"""Ranked leaderboard over persisted trackers.

Two paths serve the same response shape:

- live: load the active trackers (optionally one cohort), recompute their
  scores from the raw statistics, sort and slice the requested page;
- snapshot: return the page computed by an earlier live request, cached in
  Redis for ``leaderboard_cache_ttl_seconds``.

Ordering is performance_score descending, then created_at ascending, then
id ascending, so equal scores always rank in the same order. Redis is
optional: every cache error is logged and the request falls back to the
live path.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cptracker.config import settings
from cptracker.metrics import leaderboard_cache
from cptracker.models.tracker import Tracker
from cptracker.models.user import User
from cptracker.schemas.common import Pagination
from cptracker.schemas.leaderboard import LeaderboardEntry, LeaderboardResponse, LeaderboardUser
from cptracker.services.scoring import apply_scores

log = structlog.get_logger(__name__)

CACHE_KEY_PREFIX = "cptracker:leaderboard"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def cache_key(cohort_id: Optional[str], page: int, limit: int) -> str:
    return f"{CACHE_KEY_PREFIX}:{cohort_id or 'all'}:{page}:{limit}"


def ranking_key(tracker: Tracker):
    return (-tracker.performance_score, tracker.created_at or _EPOCH, tracker.id)


def rank_trackers(trackers: Sequence[Tracker]) -> list[Tracker]:
    """Recompute every tracker's scores and return them in leaderboard order."""
    for tracker in trackers:
        apply_scores(tracker)
    return sorted(trackers, key=ranking_key)


def build_entry(rank: int, tracker: Tracker, display_name: Optional[str]) -> LeaderboardEntry:
    lc = tracker.leetcode_total_problems or 0
    cf = tracker.codeforces_problems_solved or 0
    cc = tracker.codechef_problems_solved or 0
    ac = tracker.atcoder_problems_solved or 0
    return LeaderboardEntry(
        rank=rank,
        user=LeaderboardUser(id=tracker.user_id, display_name=display_name),
        performance_score=tracker.performance_score,
        leetcode_score=tracker.leetcode_score,
        codeforces_score=tracker.codeforces_score,
        codechef_score=tracker.codechef_score,
        atcoder_score=tracker.atcoder_score,
        leetcode_total_problems=lc,
        leetcode_contest_solved_count=tracker.leetcode_contest_solved_count or 0,
        leetcode_practice_solved_count=tracker.leetcode_practice_solved_count or 0,
        leetcode_current_rating=tracker.leetcode_current_rating or 0,
        leetcode_contests_participated=tracker.leetcode_contests_participated or 0,
        leetcode_last_contest_name=tracker.leetcode_last_contest_name,
        leetcode_last_contest_date=tracker.leetcode_last_contest_date,
        codeforces_rating=tracker.codeforces_rating or 0,
        codeforces_contests_participated=tracker.codeforces_contests_participated or 0,
        codeforces_problems_solved=cf,
        codechef_rating=tracker.codechef_rating or 0,
        codechef_contests_participated=tracker.codechef_contests_participated or 0,
        codechef_problems_solved=cc,
        atcoder_rating=tracker.atcoder_rating or 0,
        atcoder_contests_participated=tracker.atcoder_contests_participated or 0,
        atcoder_problems_solved=ac,
        total_solved_count=lc + cf + cc + ac,
        platforms_connected=len(tracker.active_platforms or []),
        last_updated=tracker.updated_at,
    )


def paginate(
    rows: Sequence[tuple[Tracker, Optional[str]]],
    page: int,
    limit: int,
    cohort_id: Optional[str] = None,
) -> LeaderboardResponse:
    """Rank (tracker, display_name) rows and cut out one page. Pure."""
    names = {tracker.id: name for tracker, name in rows}
    ranked = rank_trackers([tracker for tracker, _ in rows])
    pagination = Pagination.build(page, limit, len(ranked))
    offset = pagination.offset
    entries = [
        build_entry(offset + index + 1, tracker, names[tracker.id])
        for index, tracker in enumerate(ranked[offset : offset + limit])
    ]
    return LeaderboardResponse(entries=entries, pagination=pagination, cohort_id=cohort_id)


async def load_active_trackers(
    db: AsyncSession, cohort_id: Optional[str] = None
) -> list[tuple[Tracker, Optional[str]]]:
    stmt = (
        select(Tracker, User.display_name)
        .join(User, User.id == Tracker.user_id)
        .where(Tracker.is_active.is_(True))
    )
    if cohort_id is not None:
        stmt = stmt.where(User.cohort_ids.contains([cohort_id]))
    result = await db.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]


async def compute_leaderboard(
    db: AsyncSession, page: int, limit: int, cohort_id: Optional[str] = None
) -> LeaderboardResponse:
    rows = await load_active_trackers(db, cohort_id)
    return paginate(rows, page, limit, cohort_id)


async def get_leaderboard(
    db: AsyncSession,
    cache: Optional[aioredis.Redis],
    page: int = 1,
    limit: Optional[int] = None,
    cohort_id: Optional[str] = None,
    fresh: bool = False,
) -> LeaderboardResponse:
    """Return one leaderboard page, from the snapshot cache when possible.

    Args:
        cache: Redis client, or None to always compute live.
        fresh: skip the cache read (the result is still stored).
    """
    limit = limit or settings.leaderboard_default_limit
    key = cache_key(cohort_id, page, limit)

    if cache is not None and not fresh:
        cached = None
        try:
            cached = await cache.get(key)
        except RedisError as exc:
            leaderboard_cache.labels(result="error").inc()
            log.warning("leaderboard_cache_read_failed", key=key, error=str(exc))
        if cached:
            leaderboard_cache.labels(result="hit").inc()
            response = LeaderboardResponse.model_validate_json(cached)
            response.source = "snapshot"
            return response
        leaderboard_cache.labels(result="miss").inc()
    elif fresh:
        leaderboard_cache.labels(result="bypass").inc()

    response = await compute_leaderboard(db, page, limit, cohort_id)

    if cache is not None:
        try:
            await cache.set(key, response.model_dump_json(), ex=settings.leaderboard_cache_ttl_seconds)
        except RedisError as exc:
            log.warning("leaderboard_cache_write_failed", key=key, error=str(exc))
    return response


async def invalidate_leaderboard_cache(cache: Optional[aioredis.Redis]) -> int:
    """Drop every cached leaderboard page. Best-effort; returns keys deleted."""
    if cache is None:
        return 0
    deleted = 0
    try:
        keys = [key async for key in cache.scan_iter(match=f"{CACHE_KEY_PREFIX}:*")]
        if keys:
            deleted = await cache.delete(*keys)
    except RedisError as exc:
        log.warning("leaderboard_cache_invalidate_failed", error=str(exc))
        return 0
    log.info("leaderboard_cache_invalidated", keys=deleted)
    return deleted


async def log_leaderboard_snapshot(db: AsyncSession, top: int = 10) -> list[LeaderboardEntry]:
    """Emit the current top of the leaderboard as log events."""
    response = await compute_leaderboard(db, page=1, limit=top)
    log.info("leaderboard_snapshot", total=response.pagination.total_items, top=top)
    for entry in response.entries:
        log.info(
            "leaderboard_snapshot_entry",
            rank=entry.rank,
            user_id=str(entry.user.id),
            display_name=entry.user.display_name,
            performance_score=str(entry.performance_score),
        )
    return response.entries
