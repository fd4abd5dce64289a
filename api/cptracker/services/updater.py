"""Profile updater: fetches platform statistics and persists them.

One tracker is refreshed by asking each of its enabled platforms for fresh
statistics, merging every non-null result onto the row, recomputing the
scores and committing. A platform that fails (exception or no data) leaves
its previously stored values untouched and never affects the others. When
no platform produced data and at least one raised, the refresh as a whole
fails with ProfileRefreshError and the row is left as it was.

Batch runs are sequential with a fixed pause between users so upstream
platforms are not hammered; one user's failure is counted and the batch
moves on.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cptracker.config import settings
from cptracker.database import async_session_factory
from cptracker.metrics import profile_updates
from cptracker.models.tracker import Tracker
from cptracker.models.user import User
from cptracker.services.errors import ProfileRefreshError
from cptracker.services.platform_client import (
    AtCoderStats,
    CodeChefStats,
    CodeForcesStats,
    LeetCodeStats,
    PlatformCrawler,
)
from cptracker.services.scoring import apply_scores

log = structlog.get_logger(__name__)


class BatchResult(BaseModel):
    success: int = 0
    failed: int = 0
    total: int = 0


class UpdateStatistics(BaseModel):
    total_profiles: int
    active_profiles: int
    recently_updated: int
    needs_update: int


def _assign(tracker: Tracker, values: dict) -> None:
    # None means the field could not be fetched this run; keep the stored value
    for column, value in values.items():
        if value is not None:
            setattr(tracker, column, value)


def _merge_leetcode(tracker: Tracker, stats: LeetCodeStats) -> None:
    _assign(
        tracker,
        {
            "leetcode_total_problems": stats.total_solved,
            "leetcode_easy_solved": stats.easy_solved,
            "leetcode_medium_solved": stats.medium_solved,
            "leetcode_hard_solved": stats.hard_solved,
            "leetcode_contest_solved_count": stats.contest_solved_count,
            "leetcode_practice_solved_count": stats.practice_solved_count,
            "leetcode_contests_participated": stats.contests_participated,
            "leetcode_current_rating": stats.current_rating,
            "leetcode_highest_rating": stats.highest_rating,
            "leetcode_last_contest_name": stats.last_contest_name,
            "leetcode_last_contest_date": stats.last_contest_date,
        },
    )


def _merge_codeforces(tracker: Tracker, stats: CodeForcesStats) -> None:
    _assign(
        tracker,
        {
            "codeforces_handle": stats.handle,
            "codeforces_rating": stats.rating,
            "codeforces_max_rating": stats.max_rating,
            "codeforces_rank": stats.rank,
            "codeforces_contests_participated": stats.contests_participated,
            "codeforces_problems_solved": stats.problems_solved,
        },
    )


def _merge_codechef(tracker: Tracker, stats: CodeChefStats) -> None:
    tracker.codechef_rating = stats.rating
    tracker.codechef_highest_rating = stats.max_rating
    tracker.codechef_stars = stats.stars
    tracker.codechef_contests_participated = stats.contests_participated
    tracker.codechef_problems_solved = stats.problems_solved


def _merge_atcoder(tracker: Tracker, stats: AtCoderStats) -> None:
    _assign(
        tracker,
        {
            "atcoder_rating": stats.rating,
            "atcoder_highest_rating": stats.max_rating,
            "atcoder_color": stats.color,
            "atcoder_contests_participated": stats.contests_participated,
            "atcoder_problems_solved": stats.problems_solved,
        },
    )


MERGERS: dict[str, Callable] = {
    "leetcode": _merge_leetcode,
    "codeforces": _merge_codeforces,
    "codechef": _merge_codechef,
    "atcoder": _merge_atcoder,
}


class ProfileUpdater:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        crawler_factory: Callable[[], PlatformCrawler] = PlatformCrawler,
        full_refresh_delay: Optional[float] = None,
        batch_delay: Optional[float] = None,
    ) -> None:
        self._session_factory = session_factory
        self._crawler_factory = crawler_factory
        self.full_refresh_delay = (
            settings.full_refresh_user_delay_seconds
            if full_refresh_delay is None
            else full_refresh_delay
        )
        self.batch_delay = (
            settings.batch_user_delay_seconds if batch_delay is None else batch_delay
        )

    async def refresh_tracker(
        self,
        tracker: Tracker,
        crawler: PlatformCrawler,
        now: Optional[datetime] = None,
    ) -> bool:
        """Fetch every enabled platform and merge results onto ``tracker``.

        Does not touch the database. Returns True when at least one platform
        produced data, in which case scores and ``updated_at`` are refreshed.
        Raises ProfileRefreshError when no platform produced data and at
        least one of them raised.
        """
        now = now or datetime.now(timezone.utc)
        updated = []
        failures: dict[str, str] = {}
        for platform in tracker.enabled_platforms():
            username = tracker.username_for(platform)
            try:
                stats = await crawler.fetch(platform, username)
            except Exception as exc:
                log.warning(
                    "platform_fetch_failed",
                    user_id=str(tracker.user_id),
                    platform=platform,
                    username=username,
                    error=str(exc),
                )
                failures[platform] = str(exc)
                continue
            if stats is None:
                log.info(
                    "platform_returned_no_data",
                    user_id=str(tracker.user_id),
                    platform=platform,
                    username=username,
                )
                continue
            MERGERS[platform](tracker, stats)
            setattr(tracker, f"{platform}_last_updated", now)
            updated.append(platform)

        if not updated:
            if failures:
                raise ProfileRefreshError(tracker.user_id, failures)
            return False

        scores = apply_scores(tracker)
        tracker.updated_at = now
        log.info(
            "tracker_refreshed",
            user_id=str(tracker.user_id),
            platforms=updated,
            performance_score=str(scores.performance),
        )
        return True

    async def update_single_profile(
        self,
        user_id: uuid.UUID,
        crawler: Optional[PlatformCrawler] = None,
    ) -> Optional[Tracker]:
        """Refresh one user's active tracker.

        Returns None when the user has no active tracker, the unchanged
        tracker when no platform produced data, and the committed tracker
        otherwise. ProfileRefreshError propagates when every fetch that ran
        raised.
        """
        async with self._session_factory() as session:
            tracker = await session.scalar(
                select(Tracker).where(Tracker.user_id == user_id, Tracker.is_active.is_(True))
            )
            if tracker is None:
                log.info("tracker_not_found_for_update", user_id=str(user_id))
                profile_updates.labels(outcome="missing").inc()
                return None

            try:
                if crawler is None:
                    async with self._crawler_factory() as own_crawler:
                        changed = await self.refresh_tracker(tracker, own_crawler)
                else:
                    changed = await self.refresh_tracker(tracker, crawler)
            except ProfileRefreshError:
                profile_updates.labels(outcome="failed").inc()
                raise

            if not changed:
                profile_updates.labels(outcome="unchanged").inc()
                return tracker

            await session.commit()
            profile_updates.labels(outcome="updated").inc()
            return tracker

    async def _run_batch(
        self, user_ids: Iterable[uuid.UUID], delay: float, label: str
    ) -> BatchResult:
        user_ids = list(user_ids)
        result = BatchResult(total=len(user_ids))
        log.info("batch_update_started", batch=label, total=result.total)

        async with self._crawler_factory() as crawler:
            for index, user_id in enumerate(user_ids):
                try:
                    await self.update_single_profile(user_id, crawler=crawler)
                    result.success += 1
                except ProfileRefreshError as exc:
                    result.failed += 1
                    log.warning(
                        "batch_user_update_failed",
                        batch=label,
                        user_id=str(user_id),
                        platforms=sorted(exc.failures),
                    )
                except Exception:
                    result.failed += 1
                    profile_updates.labels(outcome="error").inc()
                    log.error("batch_user_update_failed", batch=label, user_id=str(user_id), exc_info=True)
                if delay and index < len(user_ids) - 1:
                    await asyncio.sleep(delay)

        log.info(
            "batch_update_completed",
            batch=label,
            success=result.success,
            failed=result.failed,
            total=result.total,
        )
        return result

    async def _active_user_ids(self, cohort_id: Optional[str] = None) -> list[uuid.UUID]:
        stmt = select(Tracker.user_id).where(Tracker.is_active.is_(True))
        if cohort_id is not None:
            stmt = stmt.join(User, User.id == Tracker.user_id).where(
                User.cohort_ids.contains([cohort_id])
            )
        async with self._session_factory() as session:
            result = await session.execute(stmt.order_by(Tracker.created_at))
            return list(result.scalars().all())

    async def update_all_profiles(self) -> BatchResult:
        user_ids = await self._active_user_ids()
        return await self._run_batch(user_ids, self.full_refresh_delay, "all")

    async def update_cohort_profiles(self, cohort_id: str) -> BatchResult:
        user_ids = await self._active_user_ids(cohort_id)
        return await self._run_batch(user_ids, self.batch_delay, f"cohort:{cohort_id}")

    async def update_specific_users(self, user_ids: Iterable[uuid.UUID]) -> BatchResult:
        return await self._run_batch(user_ids, self.batch_delay, "specific")

    async def cleanup_profiles(self, now: Optional[datetime] = None) -> int:
        """Soft-deactivate active trackers not updated within the stale window."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=settings.stale_profile_days)
        async with self._session_factory() as session:
            result = await session.execute(
                update(Tracker)
                .where(Tracker.is_active.is_(True), Tracker.updated_at < cutoff)
                .values(is_active=False)
            )
            await session.commit()
        log.info("stale_trackers_deactivated", count=result.rowcount, cutoff=cutoff.isoformat())
        return result.rowcount

    async def get_update_statistics(self, now: Optional[datetime] = None) -> UpdateStatistics:
        now = now or datetime.now(timezone.utc)
        window_start = now - timedelta(hours=settings.recently_updated_hours)
        async with self._session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(Tracker))
            active = await session.scalar(
                select(func.count()).select_from(Tracker).where(Tracker.is_active.is_(True))
            )
            recent = await session.scalar(
                select(func.count())
                .select_from(Tracker)
                .where(Tracker.is_active.is_(True), Tracker.updated_at >= window_start)
            )
        active = active or 0
        recent = recent or 0
        return UpdateStatistics(
            total_profiles=total or 0,
            active_profiles=active,
            recently_updated=recent,
            needs_update=max(0, active - recent),
        )
