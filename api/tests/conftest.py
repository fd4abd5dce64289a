"""Shared fixtures: in-memory trackers, fake sessions and fake crawlers.

Nothing here touches a database, Redis or the network.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import Integer, Numeric

from cptracker.models.tracker import Tracker
from cptracker.models.user import User, UserRole

COUNT_COLUMNS = [c.name for c in Tracker.__table__.columns if isinstance(c.type, Integer)]
SCORE_COLUMNS = [c.name for c in Tracker.__table__.columns if isinstance(c.type, Numeric)]


def make_tracker(**overrides) -> Tracker:
    """A transient Tracker with column defaults filled in."""
    values = {name: 0 for name in COUNT_COLUMNS}
    values.update({name: Decimal("0.00") for name in SCORE_COLUMNS})
    values.update(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        active_platforms=[],
        is_active=True,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        updated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return Tracker(**values)


def make_user(role: UserRole = UserRole.student, **overrides) -> User:
    values = dict(
        id=uuid.uuid4(),
        email=f"{uuid.uuid4().hex[:8]}@example.com",
        display_name="Test User",
        role=role,
        cohort_ids=["2026-spring"],
    )
    values.update(overrides)
    return User(**values)


class FakeSession:
    """Stands in for AsyncSession; ``scalar`` returns a fixed object."""

    def __init__(self, scalar_result=None):
        self.scalar = AsyncMock(return_value=scalar_result)
        self.execute = AsyncMock()
        self.commit = AsyncMock()
        self.refresh = AsyncMock()
        self.get = AsyncMock(return_value=None)
        self.add = MagicMock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeCrawler:
    """Returns canned per-platform results; an Exception value is raised."""

    def __init__(self, results: dict):
        self.results = results
        self.calls: list[tuple[str, str]] = []

    async def fetch(self, platform: str, username: str):
        self.calls.append((platform, username))
        result = self.results.get(platform)
        if isinstance(result, Exception):
            raise result
        return result

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


@pytest.fixture
def fake_session():
    return FakeSession()
