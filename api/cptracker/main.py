from contextlib import asynccontextmanager

import redis.asyncio as aioredis
import structlog
from fastapi import FastAPI

from cptracker.config import settings
from cptracker.logging_config import configure_logging
from cptracker.metrics import metrics_endpoint
from cptracker.middleware.logging_middleware import RequestLoggingMiddleware
from cptracker.routers import admin, leaderboard, trackers
from cptracker.services.updater import ProfileUpdater
from cptracker.worker.scheduler import Scheduler

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    app.state.redis = aioredis.from_url(
        settings.redis_url, encoding="utf-8", decode_responses=True
    )
    app.state.scheduler = Scheduler(updater=ProfileUpdater(), cache=app.state.redis)
    if settings.scheduler_enabled:
        app.state.scheduler.start_all()
    else:
        log.info("scheduler_disabled")
    try:
        yield
    finally:
        await app.state.scheduler.shutdown()
        await app.state.redis.aclose()


app = FastAPI(title="CPTracker API", version="0.1.0", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(trackers.router)
app.include_router(leaderboard.router)
app.include_router(admin.router)

# Prometheus metrics endpoint
app.get("/metrics")(metrics_endpoint)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
