"""Recurring tracker refresh jobs.

The Scheduler owns a set of named interval jobs, each an asyncio task that
sleeps, runs its coroutine and sleeps again. Default jobs:

- full_refresh: refresh every active tracker, then log a leaderboard
  snapshot and the update statistics;
- batch_refresh: same refresh, but only when some trackers are stale;
- cleanup: soft-deactivate trackers not updated for a month.

Staff can add one extra recurring job per cohort at runtime. Stopping a job
never interrupts a run in progress: the run finishes and the loop exits.

Built once by the API lifespan (app.state.scheduler) or run standalone:

    python -m cptracker.worker.scheduler
"""

import asyncio
import time
import uuid
from typing import Awaitable, Callable, Optional, Sequence

import redis.asyncio as aioredis
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cptracker.config import settings
from cptracker.database import async_session_factory
from cptracker.logging_config import configure_logging
from cptracker.metrics import scheduler_runs
from cptracker.schemas.admin import JobStatus
from cptracker.services.leaderboard import invalidate_leaderboard_cache, log_leaderboard_snapshot
from cptracker.services.updater import BatchResult, ProfileUpdater

log = structlog.get_logger(__name__)

HOUR = 3600
DAY = 24 * HOUR


def describe_interval(seconds: float) -> str:
    """Human readable schedule, e.g. "every 6 hours" or "every 7 days"."""
    if seconds >= 2 * DAY and seconds % DAY == 0:
        return f"every {int(seconds // DAY)} days"
    if seconds >= HOUR and seconds % HOUR == 0:
        hours = int(seconds // HOUR)
        return "every hour" if hours == 1 else f"every {hours} hours"
    minutes = max(1, round(seconds / 60))
    return "every minute" if minutes == 1 else f"every {minutes} minutes"


class ScheduledJob:
    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[object]],
        interval_seconds: float,
        initial_delay: float = 0.0,
    ) -> None:
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self.initial_delay = initial_delay
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._executing = False

    @property
    def running(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and not self._stop_event.is_set()
        )

    @property
    def executing(self) -> bool:
        return self._executing

    @property
    def schedule(self) -> str:
        return describe_interval(self.interval_seconds)

    def start(self) -> bool:
        if self.running:
            return False
        # Each loop gets its own event so a stopped run that is still
        # finishing never picks up a later start()
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._loop(self._stop_event), name=f"scheduler:{self.name}"
        )
        log.info("scheduled_job_started", job=self.name, schedule=self.schedule)
        return True

    def stop(self) -> bool:
        if not self.running:
            return False
        self._stop_event.set()
        log.info("scheduled_job_stopped", job=self.name, run_in_progress=self._executing)
        return True

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def run_once(self) -> None:
        self._executing = True
        start = time.monotonic()
        log.info("scheduled_job_run_started", job=self.name)
        try:
            await self.func()
        except Exception:
            scheduler_runs.labels(job=self.name, status="error").inc()
            log.error("scheduled_job_run_failed", job=self.name, exc_info=True)
        else:
            scheduler_runs.labels(job=self.name, status="success").inc()
            log.info(
                "scheduled_job_run_completed",
                job=self.name,
                duration_s=round(time.monotonic() - start, 2),
            )
        finally:
            self._executing = False

    async def _loop(self, stop_event: asyncio.Event) -> None:
        delay = self.initial_delay
        while True:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
                return
            except asyncio.TimeoutError:
                pass
            await self.run_once()
            if stop_event.is_set():
                return
            delay = self.interval_seconds


class Scheduler:
    def __init__(
        self,
        updater: Optional[ProfileUpdater] = None,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        cache: Optional[aioredis.Redis] = None,
        initial_delay: Optional[float] = None,
    ) -> None:
        self.updater = updater or ProfileUpdater(session_factory=session_factory)
        self._session_factory = session_factory
        self.cache = cache
        self.initial_delay = (
            settings.scheduler_initial_delay_seconds if initial_delay is None else initial_delay
        )
        self.jobs: dict[str, ScheduledJob] = {}
        self._register_default_jobs()

    def _register_default_jobs(self) -> None:
        self._add(ScheduledJob(
            "full_refresh",
            self.run_full_refresh,
            settings.full_refresh_interval_hours * HOUR,
            self.initial_delay,
        ))
        self._add(ScheduledJob(
            "batch_refresh",
            self.run_batch_refresh,
            settings.batch_refresh_interval_hours * HOUR,
            self.initial_delay,
        ))
        self._add(ScheduledJob(
            "cleanup",
            self.run_cleanup,
            settings.cleanup_interval_hours * HOUR,
            self.initial_delay,
        ))

    def _add(self, job: ScheduledJob) -> None:
        self.jobs[job.name] = job

    # -- job bodies ---------------------------------------------------------

    async def _after_refresh(self) -> None:
        await invalidate_leaderboard_cache(self.cache)
        async with self._session_factory() as db:
            await log_leaderboard_snapshot(db, top=10)

    async def run_full_refresh(self) -> BatchResult:
        result = await self.updater.update_all_profiles()
        await self._after_refresh()
        stats = await self.updater.get_update_statistics()
        log.info("update_statistics", **stats.model_dump())
        return result

    async def run_batch_refresh(self) -> Optional[BatchResult]:
        stats = await self.updater.get_update_statistics()
        if stats.needs_update <= 0:
            log.info("batch_refresh_skipped", active_profiles=stats.active_profiles)
            return None
        log.info("batch_refresh_needed", needs_update=stats.needs_update)
        result = await self.updater.update_all_profiles()
        await self._after_refresh()
        return result

    async def run_cleanup(self) -> int:
        return await self.updater.cleanup_profiles()

    def _cohort_refresh(self, cohort_id: str) -> Callable[[], Awaitable[BatchResult]]:
        async def run() -> BatchResult:
            result = await self.updater.update_cohort_profiles(cohort_id)
            await self._after_refresh()
            return result

        return run

    # -- control ------------------------------------------------------------

    def start_all(self) -> None:
        for job in self.jobs.values():
            job.start()
        log.info("scheduler_started", jobs=list(self.jobs))

    def stop_all(self) -> None:
        for job in self.jobs.values():
            job.stop()
        log.info("scheduler_stopped")

    def start_job(self, name: str) -> bool:
        job = self.jobs.get(name)
        if job is None:
            return False
        job.start()
        return True

    def stop_job(self, name: str) -> bool:
        job = self.jobs.get(name)
        if job is None:
            return False
        job.stop()
        return True

    def get_status(self) -> list[JobStatus]:
        return [
            JobStatus(name=job.name, running=job.running, schedule=job.schedule)
            for job in self.jobs.values()
        ]

    @staticmethod
    def cohort_job_name(cohort_id: str) -> str:
        return f"cohort_{cohort_id}"

    def add_cohort_job(self, cohort_id: str, interval_hours: float) -> bool:
        name = self.cohort_job_name(cohort_id)
        if name in self.jobs:
            return False
        job = ScheduledJob(name, self._cohort_refresh(cohort_id), interval_hours * HOUR, interval_hours * HOUR)
        self._add(job)
        job.start()
        log.info("cohort_job_added", cohort_id=cohort_id, interval_hours=interval_hours)
        return True

    def remove_cohort_job(self, cohort_id: str) -> bool:
        job = self.jobs.pop(self.cohort_job_name(cohort_id), None)
        if job is None:
            return False
        job.stop()
        log.info("cohort_job_removed", cohort_id=cohort_id)
        return True

    async def trigger_manual_update(
        self,
        scope: str = "all",
        cohort_id: Optional[str] = None,
        user_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> BatchResult:
        """Run a refresh immediately, outside the job schedule.

        Raises:
            ValueError: unknown scope, a cohort scope without cohort_id, or a
                users scope without user_ids.
        """
        if scope == "all":
            result = await self.updater.update_all_profiles()
        elif scope == "cohort":
            if not cohort_id:
                raise ValueError("cohort_id is required for a cohort update")
            result = await self.updater.update_cohort_profiles(cohort_id)
        elif scope == "users":
            if not user_ids:
                raise ValueError("user_ids are required for a users update")
            result = await self.updater.update_specific_users(user_ids)
        else:
            raise ValueError(f"Unknown update scope: {scope}")
        await invalidate_leaderboard_cache(self.cache)
        log.info("manual_update_completed", scope=scope, cohort_id=cohort_id, **result.model_dump())
        return result

    async def shutdown(self) -> None:
        jobs = list(self.jobs.values())
        for job in jobs:
            job.stop()
        await asyncio.gather(*(job.wait() for job in jobs))
        self.jobs.clear()
        log.info("scheduler_shutdown")


async def run_scheduler() -> None:
    """Standalone entry point: run the default jobs until interrupted."""
    configure_logging()
    cache = aioredis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    scheduler = Scheduler(cache=cache)
    scheduler.start_all()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.shutdown()
        await cache.aclose()


if __name__ == "__main__":
    asyncio.run(run_scheduler())
