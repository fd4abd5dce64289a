"""Tests for ProfileUpdater merging and batch accounting."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest

from cptracker.services.errors import ProfileRefreshError, UpstreamUnavailableError
from cptracker.services.platform_client import (
    CodeChefStats,
    CodeForcesStats,
    LeetCodeStats,
    PlatformCrawler,
)
from cptracker.services.updater import ProfileUpdater

from conftest import FakeCrawler, FakeSession, make_tracker

pytestmark = pytest.mark.asyncio

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def updater_for(session: FakeSession, crawler: FakeCrawler = None) -> ProfileUpdater:
    return ProfileUpdater(
        session_factory=lambda: session,
        crawler_factory=lambda: crawler or FakeCrawler({}),
        full_refresh_delay=0,
        batch_delay=0,
    )


class TestRefreshTracker:
    async def test_merges_results_and_scores(self):
        tracker = make_tracker(
            leetcode_username="alice",
            codeforces_username="alice_cf",
            active_platforms=["leetcode", "codeforces"],
        )
        crawler = FakeCrawler({
            "leetcode": LeetCodeStats(total_solved=300, contest_solved_count=5,
                                      practice_solved_count=100, current_rating=1500),
            "codeforces": CodeForcesStats(handle="alice_cf", rating=1400,
                                          contests_participated=10, problems_solved=150),
        })

        changed = await updater_for(FakeSession()).refresh_tracker(tracker, crawler, now=NOW)

        assert changed is True
        assert tracker.leetcode_score == Decimal("1950.00")
        assert tracker.codeforces_score == Decimal("1850.00")
        assert tracker.performance_score == Decimal("3800.00")
        assert tracker.leetcode_last_updated == NOW
        assert tracker.codeforces_last_updated == NOW
        assert tracker.updated_at == NOW

    async def test_platform_failure_is_isolated(self):
        """One platform raising must not prevent the others from updating."""
        tracker = make_tracker(
            leetcode_username="alice",
            codechef_username="alice_cc",
            active_platforms=["leetcode", "codechef"],
            leetcode_total_problems=42,
        )
        crawler = FakeCrawler({
            "leetcode": UpstreamUnavailableError("leetcode", "http 503"),
            "codechef": CodeChefStats(username="alice_cc", rating=1600, contests_participated=4),
        })

        assert await updater_for(FakeSession()).refresh_tracker(tracker, crawler, now=NOW)
        assert tracker.leetcode_total_problems == 42
        assert tracker.leetcode_last_updated is None
        assert tracker.codechef_rating == 1600
        assert tracker.codechef_last_updated == NOW

    async def test_none_result_leaves_data_untouched(self):
        tracker = make_tracker(
            codeforces_username="gone",
            active_platforms=["codeforces"],
            codeforces_rating=1234,
        )
        changed = await updater_for(FakeSession()).refresh_tracker(
            tracker, FakeCrawler({"codeforces": None}), now=NOW
        )
        assert changed is False
        assert tracker.codeforces_rating == 1234
        assert tracker.updated_at != NOW

    async def test_all_platforms_raising_fails_the_refresh(self):
        tracker = make_tracker(
            leetcode_username="alice",
            codeforces_username="alice_cf",
            active_platforms=["leetcode", "codeforces"],
            leetcode_total_problems=42,
        )
        crawler = FakeCrawler({
            "leetcode": UpstreamUnavailableError("leetcode", "timeout"),
            "codeforces": None,
        })

        with pytest.raises(ProfileRefreshError) as exc_info:
            await updater_for(FakeSession()).refresh_tracker(tracker, crawler, now=NOW)

        assert set(exc_info.value.failures) == {"leetcode"}
        assert tracker.leetcode_total_problems == 42
        assert tracker.updated_at != NOW

    async def test_unknown_fields_keep_stored_values(self):
        tracker = make_tracker(
            codeforces_username="alice_cf",
            active_platforms=["codeforces"],
            codeforces_contests_participated=8,
            codeforces_problems_solved=150,
        )
        crawler = FakeCrawler({
            "codeforces": CodeForcesStats(handle="alice_cf", rating=1400,
                                          contests_participated=10, problems_solved=None),
        })

        assert await updater_for(FakeSession()).refresh_tracker(tracker, crawler, now=NOW)
        assert tracker.codeforces_contests_participated == 10
        assert tracker.codeforces_problems_solved == 150
        assert tracker.codeforces_score == Decimal("1850.00")

    async def test_only_enabled_platforms_are_fetched(self):
        tracker = make_tracker(
            leetcode_username="alice",
            atcoder_username="alice_ac",
            active_platforms=["atcoder", "codechef"],
        )
        crawler = FakeCrawler({})
        await updater_for(FakeSession()).refresh_tracker(tracker, crawler)
        assert crawler.calls == [("atcoder", "alice_ac")]


class TestUpdateSingleProfile:
    async def test_missing_tracker_returns_none(self):
        session = FakeSession(scalar_result=None)
        assert await updater_for(session).update_single_profile(uuid.uuid4()) is None
        session.commit.assert_not_awaited()

    async def test_commits_when_data_changed(self):
        tracker = make_tracker(codechef_username="chef", active_platforms=["codechef"])
        session = FakeSession(scalar_result=tracker)
        crawler = FakeCrawler({"codechef": CodeChefStats(username="chef", rating=1700)})

        result = await updater_for(session, crawler).update_single_profile(tracker.user_id)

        assert result is tracker
        assert tracker.codechef_score == Decimal("1700.00")
        session.commit.assert_awaited_once()

    async def test_unchanged_tracker_not_committed(self):
        tracker = make_tracker(active_platforms=[])
        session = FakeSession(scalar_result=tracker)
        result = await updater_for(session).update_single_profile(tracker.user_id)
        assert result is tracker
        session.commit.assert_not_awaited()

    async def test_all_platforms_raising_is_not_committed(self):
        tracker = make_tracker(leetcode_username="alice", active_platforms=["leetcode"])
        session = FakeSession(scalar_result=tracker)
        crawler = FakeCrawler({"leetcode": UpstreamUnavailableError("leetcode", "http 503")})

        with pytest.raises(ProfileRefreshError):
            await updater_for(session, crawler).update_single_profile(tracker.user_id)
        session.commit.assert_not_awaited()

    async def test_failed_submission_list_keeps_solved_count(self):
        """A 503 from user.status must not wipe the stored solve count."""

        def handler(request: httpx.Request) -> httpx.Response:
            method = request.url.path.rsplit("/", 1)[-1]
            if method == "user.info":
                return httpx.Response(200, json={"status": "OK", "result": [
                    {"handle": "alice_cf", "rating": 1400, "maxRating": 1500, "rank": "specialist"},
                ]})
            if method == "user.rating":
                return httpx.Response(200, json={"status": "OK", "result": [{}] * 10})
            return httpx.Response(503)

        tracker = make_tracker(
            codeforces_username="alice_cf",
            active_platforms=["codeforces"],
            codeforces_problems_solved=150,
        )
        session = FakeSession(scalar_result=tracker)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await updater_for(session).update_single_profile(
                tracker.user_id, crawler=PlatformCrawler(client)
            )

        assert tracker.codeforces_rating == 1400
        assert tracker.codeforces_contests_participated == 10
        assert tracker.codeforces_problems_solved == 150
        assert tracker.codeforces_score == Decimal("1850.00")
        session.commit.assert_awaited_once()


class TestBatches:
    async def test_one_failure_does_not_abort_batch(self):
        ok_user, bad_user = uuid.uuid4(), uuid.uuid4()
        updater = updater_for(FakeSession())

        async def fake_update(user_id, crawler=None):
            if user_id == bad_user:
                raise RuntimeError("database went away")
            return make_tracker(user_id=user_id)

        updater.update_single_profile = fake_update
        result = await updater.update_specific_users([ok_user, bad_user])

        assert result.model_dump() == {"success": 1, "failed": 1, "total": 2}

    async def test_user_whose_platforms_all_raise_counts_as_failed(self):
        user_a = make_tracker(
            leetcode_username="alice",
            active_platforms=["leetcode"],
            leetcode_total_problems=42,
        )
        user_b = make_tracker(codeforces_username="bob_cf", active_platforms=["codeforces"])
        session = FakeSession()
        session.scalar = AsyncMock(side_effect=[user_a, user_b])
        crawler = FakeCrawler({
            "leetcode": UpstreamUnavailableError("leetcode", "timeout"),
            "codeforces": CodeForcesStats(handle="bob_cf", rating=1200),
        })

        result = await updater_for(session, crawler).update_specific_users(
            [user_a.user_id, user_b.user_id]
        )

        assert result.model_dump() == {"success": 1, "failed": 1, "total": 2}
        assert user_a.leetcode_total_problems == 42
        assert user_a.leetcode_last_updated is None
        assert user_a.updated_at == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert user_b.codeforces_rating == 1200
        session.commit.assert_awaited_once()

    async def test_empty_batch(self):
        result = await updater_for(FakeSession()).update_specific_users([])
        assert result.total == 0

    async def test_all_profiles_uses_active_ids(self, monkeypatch):
        updater = updater_for(FakeSession())
        ids = [uuid.uuid4(), uuid.uuid4(), uuid.uuid4()]
        monkeypatch.setattr(updater, "_active_user_ids", AsyncMock(return_value=ids))
        updater.update_single_profile = AsyncMock(return_value=None)

        result = await updater.update_all_profiles()

        assert result.success == 3
        assert updater.update_single_profile.await_count == 3

    async def test_cohort_filter_passed_through(self, monkeypatch):
        updater = updater_for(FakeSession())
        lookup = AsyncMock(return_value=[])
        monkeypatch.setattr(updater, "_active_user_ids", lookup)
        await updater.update_cohort_profiles("2026-spring")
        lookup.assert_awaited_once_with("2026-spring")


class TestStatistics:
    async def test_needs_update_is_active_minus_recent(self):
        session = FakeSession()
        session.scalar = AsyncMock(side_effect=[10, 8, 5])
        stats = await updater_for(session).get_update_statistics(now=NOW)
        assert stats.model_dump() == {
            "total_profiles": 10,
            "active_profiles": 8,
            "recently_updated": 5,
            "needs_update": 3,
        }
