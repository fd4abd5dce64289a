import hashlib
from typing import Annotated, Optional

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cptracker.config import settings
from cptracker.database import async_session_factory, get_db
from cptracker.models.user import User, UserRole
from cptracker.services.updater import ProfileUpdater
from cptracker.worker.scheduler import Scheduler

DbSession = Annotated[AsyncSession, Depends(get_db)]

# API key security scheme, registered in the OpenAPI security definition
api_key_header = APIKeyHeader(name=settings.api_key_header_name, auto_error=True)


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


async def get_redis(request: Request) -> Optional[aioredis.Redis]:
    """Inject the Redis client from app.state (set during lifespan startup)."""
    return getattr(request.app.state, "redis", None)


async def get_scheduler(request: Request) -> Scheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler is not available")
    return scheduler


async def get_updater(request: Request) -> ProfileUpdater:
    """The scheduler's updater when present, so both share one configuration."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is not None:
        return scheduler.updater
    return ProfileUpdater(session_factory=async_session_factory)


async def get_current_user(
    raw_key: str = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Authenticate a request via the API key header.

    Computes SHA-256 hash of the raw key and looks it up in users.api_key_hash.
    Raises 401 for both missing and invalid keys.
    """
    result = await db.execute(select(User).where(User.api_key_hash == hash_api_key(raw_key)))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return user


async def require_staff(user: User = Depends(get_current_user)) -> User:
    """Gate: instructors and admins only."""
    if not user.is_staff:
        raise HTTPException(status_code=403, detail="Instructor or admin role required")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user


# Annotated type aliases for clean endpoint signatures
CurrentUser = Annotated[User, Depends(get_current_user)]
StaffUser = Annotated[User, Depends(require_staff)]
AdminUser = Annotated[User, Depends(require_admin)]
RedisClient = Annotated[Optional[aioredis.Redis], Depends(get_redis)]
SchedulerDep = Annotated[Scheduler, Depends(get_scheduler)]
UpdaterDep = Annotated[ProfileUpdater, Depends(get_updater)]
