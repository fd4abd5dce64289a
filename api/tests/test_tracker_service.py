import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from cptracker.models.tracker import Tracker
from cptracker.schemas.tracker import TrackerAdminUpdate
from cptracker.services import tracker_service
from cptracker.services.errors import (
    ProfileRefreshError,
    RefreshRateLimitedError,
    TrackerNotFoundError,
)
from cptracker.services.tracker_service import derive_active_platforms, hours_until_refresh

from conftest import FakeSession, make_tracker, make_user

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestDeriveActivePlatforms:
    def test_canonical_order(self):
        usernames = {"atcoder": "a", "leetcode": "l", "codeforces": None, "codechef": ""}
        assert derive_active_platforms(usernames) == ["leetcode", "atcoder"]

    def test_whitespace_only_is_blank(self):
        assert derive_active_platforms({"codechef": "   "}) == []

    def test_empty(self):
        assert derive_active_platforms({}) == []


class TestHoursUntilRefresh:
    def test_never_refreshed(self):
        assert hours_until_refresh(None, NOW) is None

    def test_rounds_up(self):
        assert hours_until_refresh(NOW - timedelta(hours=23), NOW) == 1
        assert hours_until_refresh(NOW - timedelta(hours=22, minutes=30), NOW) == 2
        assert hours_until_refresh(NOW - timedelta(minutes=1), NOW) == 24

    def test_exactly_at_cooldown(self):
        assert hours_until_refresh(NOW - timedelta(hours=24), NOW) is None

    def test_custom_cooldown(self):
        assert hours_until_refresh(NOW - timedelta(hours=1), NOW, cooldown_hours=2) == 1


@pytest.mark.asyncio
class TestRefreshProfile:
    async def test_inside_cooldown_is_rejected(self):
        tracker = make_tracker(last_updated_by_user=NOW - timedelta(hours=23))
        db = FakeSession(scalar_result=tracker)
        updater = AsyncMock()

        with pytest.raises(RefreshRateLimitedError) as exc_info:
            await tracker_service.refresh_profile(db, updater, tracker.user_id, now=NOW)

        assert exc_info.value.hours_remaining == 1
        assert tracker.last_updated_by_user == NOW - timedelta(hours=23)
        updater.update_single_profile.assert_not_awaited()
        db.commit.assert_not_awaited()

    async def test_after_cooldown_stamps_and_delegates(self):
        tracker = make_tracker(last_updated_by_user=NOW - timedelta(hours=25))
        refreshed = make_tracker(user_id=tracker.user_id, performance_score=Decimal("10.00"))
        db = FakeSession(scalar_result=tracker)
        updater = AsyncMock()
        updater.update_single_profile.return_value = refreshed

        result = await tracker_service.refresh_profile(db, updater, tracker.user_id, now=NOW)

        assert result is refreshed
        assert tracker.last_updated_by_user == NOW
        db.commit.assert_awaited_once()
        updater.update_single_profile.assert_awaited_once_with(tracker.user_id)

    async def test_first_refresh_allowed(self):
        tracker = make_tracker(last_updated_by_user=None)
        db = FakeSession(scalar_result=tracker)
        updater = AsyncMock()
        updater.update_single_profile.return_value = None

        result = await tracker_service.refresh_profile(db, updater, tracker.user_id, now=NOW)

        assert result is tracker
        assert tracker.last_updated_by_user == NOW

    async def test_cooldown_stamp_keeps_updated_at(self):
        tracker = make_tracker(last_updated_by_user=None)
        db = FakeSession(scalar_result=tracker)
        updater = AsyncMock()
        updater.update_single_profile.return_value = None

        await tracker_service.refresh_profile(db, updater, tracker.user_id, now=NOW)

        # The stamping UPDATE writes updated_at = updated_at, so onupdate never fires
        assert tracker.updated_at is Tracker.__table__.c.updated_at
        db.refresh.assert_awaited_once_with(tracker)

    async def test_all_platforms_failing_returns_unchanged_tracker(self):
        tracker = make_tracker(last_updated_by_user=None, codeforces_rating=1400)
        db = FakeSession(scalar_result=tracker)
        updater = AsyncMock()
        updater.update_single_profile.side_effect = ProfileRefreshError(
            tracker.user_id, {"codeforces": "codeforces unavailable: timeout"}
        )

        result = await tracker_service.refresh_profile(db, updater, tracker.user_id, now=NOW)

        assert result is tracker
        assert result.codeforces_rating == 1400
        assert tracker.last_updated_by_user == NOW

    async def test_missing_tracker(self):
        with pytest.raises(TrackerNotFoundError):
            await tracker_service.refresh_profile(FakeSession(), AsyncMock(), uuid.uuid4(), now=NOW)


@pytest.mark.asyncio
class TestAdminRefresh:
    async def test_inactive_tracker_is_not_found(self):
        tracker = make_tracker(is_active=False)
        updater = AsyncMock()
        updater.update_single_profile.return_value = None
        with pytest.raises(TrackerNotFoundError):
            await tracker_service.admin_refresh_profile(
                FakeSession(scalar_result=tracker), updater, tracker.user_id
            )

    async def test_ignores_cooldown(self):
        tracker = make_tracker(last_updated_by_user=datetime.now(timezone.utc))
        updater = AsyncMock()
        updater.update_single_profile.return_value = tracker
        result = await tracker_service.admin_refresh_profile(
            FakeSession(scalar_result=tracker), updater, tracker.user_id
        )
        assert result is tracker

    async def test_all_platforms_failing_returns_unchanged_tracker(self):
        tracker = make_tracker(codeforces_rating=1400)
        updater = AsyncMock()
        updater.update_single_profile.side_effect = ProfileRefreshError(
            tracker.user_id, {"codeforces": "codeforces unavailable: http 503"}
        )
        result = await tracker_service.admin_refresh_profile(
            FakeSession(scalar_result=tracker), updater, tracker.user_id
        )
        assert result is tracker
        assert result.codeforces_rating == 1400


@pytest.mark.asyncio
class TestConnect:
    async def test_creates_tracker(self):
        db = FakeSession(scalar_result=None)
        user_id = uuid.uuid4()

        tracker = await tracker_service.connect_or_update_profile(
            db, user_id, {"leetcode": "alice", "codeforces": None, "codechef": "", "atcoder": "al_ac"}
        )

        db.add.assert_called_once_with(tracker)
        db.commit.assert_awaited_once()
        assert tracker.user_id == user_id
        assert tracker.leetcode_username == "alice"
        assert tracker.codechef_username is None
        assert tracker.active_platforms == ["leetcode", "atcoder"]
        assert tracker.is_active is True

    async def test_update_keeps_usernames_not_supplied(self):
        existing = make_tracker(
            leetcode_username="old_lc",
            codeforces_username="old_cf",
            active_platforms=["leetcode", "codeforces"],
            is_active=False,
        )
        db = FakeSession(scalar_result=existing)

        tracker = await tracker_service.connect_or_update_profile(
            db, existing.user_id, {"leetcode": "new_lc", "codeforces": None}
        )

        assert tracker is existing
        db.add.assert_not_called()
        assert tracker.leetcode_username == "new_lc"
        assert tracker.codeforces_username == "old_cf"
        # Derived from this call's usernames only
        assert tracker.active_platforms == ["leetcode"]
        assert tracker.is_active is True


@pytest.mark.asyncio
class TestMyProfile:
    async def test_reports_refresh_availability(self):
        user = make_user(cohort_ids=["c1", "c2"])
        tracker = make_tracker(
            user_id=user.id,
            last_updated_by_user=datetime.now(timezone.utc) - timedelta(hours=2),
        )
        response = await tracker_service.get_my_profile(FakeSession(scalar_result=tracker), user)
        assert response.can_refresh is False
        assert response.hours_until_refresh == 22
        assert response.cohort_ids == ["c1", "c2"]
        assert response.tracker.user_id == user.id

    async def test_without_tracker(self):
        with pytest.raises(TrackerNotFoundError):
            await tracker_service.get_my_profile(FakeSession(), make_user())


@pytest.mark.asyncio
class TestAdminUpdate:
    async def test_explicit_platforms_require_username(self):
        tracker = make_tracker(leetcode_username="lc", active_platforms=["leetcode"])
        data = TrackerAdminUpdate(codechef_username="chef", active_platforms=["codechef", "atcoder"])

        await tracker_service.admin_update_tracker(
            FakeSession(scalar_result=tracker), tracker.user_id, data
        )

        assert tracker.codechef_username == "chef"
        assert tracker.active_platforms == ["codechef"]

    async def test_soft_delete(self):
        tracker = make_tracker()
        db = FakeSession(scalar_result=tracker)
        await tracker_service.soft_delete_tracker(db, tracker.user_id)
        assert tracker.is_active is False
        db.commit.assert_awaited_once()


class TestSummarizeTrackers:
    def test_aggregates(self):
        early = datetime(2026, 1, 1, tzinfo=timezone.utc)
        late = datetime(2026, 2, 1, tzinfo=timezone.utc)
        rows = [
            (make_tracker(performance_score=Decimal("100.00"), leetcode_username="a",
                          active_platforms=["leetcode"], created_at=late), "Late"),
            (make_tracker(performance_score=Decimal("100.00"), codeforces_username="b",
                          created_at=early), "Early"),
            (make_tracker(performance_score=Decimal("0.00")), "Zero"),
        ]

        stats = tracker_service.summarize_trackers(rows, top=2)

        assert stats.total_users == 3
        assert stats.users_with_score == 2
        assert stats.average_performance_score == Decimal("66.67")
        assert stats.platforms == {"leetcode": 1, "codeforces": 1, "codechef": 0, "atcoder": 0}
        assert [p.display_name for p in stats.top_performers] == ["Early", "Late"]
        assert stats.top_performers[0].rank == 1

    def test_empty(self):
        stats = tracker_service.summarize_trackers([])
        assert stats.total_users == 0
        assert stats.average_performance_score == Decimal("0.00")
        assert stats.top_performers == []
