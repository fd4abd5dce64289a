"""HTTP surface: routing, auth gates and error translation.

The app is exercised without its lifespan, so no Redis or scheduler is
created unless a test installs one on app.state.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from cptracker.database import get_db
from cptracker.dependencies import get_current_user
from cptracker.main import app
from cptracker.models.user import UserRole
from cptracker.services import leaderboard, tracker_service
from cptracker.services.errors import RefreshRateLimitedError
from cptracker.services.updater import BatchResult, UpdateStatistics
from cptracker.worker.scheduler import Scheduler

from conftest import FakeSession, make_tracker, make_user

BASE = "/api/v1/cp-tracker"


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def as_user(session):
    """Install overrides for a caller with the given role; returns the user."""

    def install(role: UserRole = UserRole.student):
        user = make_user(role)

        async def override_db():
            yield session

        app.dependency_overrides[get_db] = override_db
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    yield install
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def scheduler():
    updater = AsyncMock()
    updater.update_all_profiles.return_value = BatchResult(success=3, failed=0, total=3)
    updater.get_update_statistics.return_value = UpdateStatistics(
        total_profiles=4, active_profiles=3, recently_updated=1, needs_update=2
    )
    app.state.scheduler = Scheduler(updater=updater, initial_delay=3600)
    yield app.state.scheduler
    del app.state.scheduler


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_missing_api_key_rejected(client):
    response = client.get(f"{BASE}/my-profile")
    assert response.status_code in (401, 403)


class TestStudentRoutes:
    def test_connect_rejects_bad_username(self, client, as_user):
        as_user()
        response = client.post(f"{BASE}/connect", json={"codeforces_username": "x"})
        assert response.status_code == 422

    def test_connect_passes_normalized_usernames(self, client, as_user, monkeypatch):
        user = as_user()
        tracker = make_tracker(
            user_id=user.id,
            leetcode_username="alice",
            active_platforms=["leetcode"],
        )
        connect = AsyncMock(return_value=tracker)
        monkeypatch.setattr(tracker_service, "connect_or_update_profile", connect)

        response = client.post(
            f"{BASE}/connect",
            json={"leetcode_username": " alice ", "codechef_username": ""},
        )

        assert response.status_code == 200
        assert response.json()["user_id"] == str(user.id)
        usernames = connect.await_args.args[2]
        assert usernames == {
            "leetcode": "alice",
            "codeforces": None,
            "codechef": None,
            "atcoder": None,
        }

    def test_my_profile_not_found(self, client, as_user):
        as_user()
        response = client.get(f"{BASE}/my-profile")
        assert response.status_code == 404

    def test_refresh_rate_limited(self, client, as_user, monkeypatch):
        as_user()
        monkeypatch.setattr(
            tracker_service, "refresh_profile", AsyncMock(side_effect=RefreshRateLimitedError(5))
        )

        response = client.post(f"{BASE}/my-profile/refresh")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == str(5 * 3600)
        assert "5 hour" in response.json()["detail"]

    def test_refresh_returns_tracker(self, client, as_user, monkeypatch):
        user = as_user()
        tracker = make_tracker(user_id=user.id)
        monkeypatch.setattr(tracker_service, "refresh_profile", AsyncMock(return_value=tracker))

        response = client.post(f"{BASE}/my-profile/refresh")

        assert response.status_code == 200
        assert response.json()["id"] == str(tracker.id)

    def test_edit_request_blank_reason(self, client, as_user):
        as_user()
        response = client.post(
            f"{BASE}/edit-request", json={"leetcode_username": "alice", "reason": "  "}
        )
        assert response.status_code == 422

    def test_leaderboard(self, client, as_user, monkeypatch):
        as_user()
        rows = [
            (make_tracker(codechef_rating=1800), "Chef"),
            (make_tracker(codechef_rating=2100), "Grandmaster"),
        ]
        monkeypatch.setattr(leaderboard, "load_active_trackers", AsyncMock(return_value=rows))

        response = client.get(f"{BASE}/leaderboard", params={"limit": 1})

        assert response.status_code == 200
        body = response.json()
        assert body["source"] == "live"
        assert [e["user"]["display_name"] for e in body["entries"]] == ["Grandmaster"]
        assert body["pagination"]["total_items"] == 2
        assert body["pagination"]["has_next_page"] is True

    def test_leaderboard_limit_bounds(self, client, as_user):
        as_user()
        assert client.get(f"{BASE}/leaderboard", params={"limit": 0}).status_code == 422


class TestStaffRoutes:
    def test_student_forbidden(self, client, as_user):
        as_user(UserRole.student)
        assert client.get(f"{BASE}/admin/trackers").status_code == 403
        assert client.post(f"{BASE}/admin/update/all").status_code == 403

    def test_instructor_cannot_delete(self, client, as_user):
        as_user(UserRole.instructor)
        response = client.delete(f"{BASE}/admin/trackers/{make_tracker().user_id}")
        assert response.status_code == 403

    def test_admin_delete_missing_tracker(self, client, as_user):
        as_user(UserRole.admin)
        response = client.delete(f"{BASE}/admin/trackers/{make_tracker().user_id}")
        assert response.status_code == 404

    def test_jobs_unavailable_without_scheduler(self, client, as_user):
        as_user(UserRole.instructor)
        assert client.get(f"{BASE}/admin/jobs").status_code == 503

    def test_job_status(self, client, as_user, scheduler):
        as_user(UserRole.instructor)
        response = client.get(f"{BASE}/admin/jobs")
        assert response.status_code == 200
        assert {job["name"] for job in response.json()} == {"full_refresh", "batch_refresh", "cleanup"}

    def test_unknown_job(self, client, as_user, scheduler):
        as_user(UserRole.admin)
        response = client.post(f"{BASE}/admin/jobs/nope", json={"action": "stop"})
        assert response.status_code == 404

    def test_update_all(self, client, as_user, scheduler):
        as_user(UserRole.admin)
        response = client.post(f"{BASE}/admin/update/all")
        assert response.status_code == 200
        assert response.json() == {"success": 3, "failed": 0, "total": 3}

    def test_update_specific_users(self, client, as_user, scheduler):
        as_user(UserRole.instructor)
        scheduler.updater.update_specific_users.return_value = BatchResult(success=1, failed=1, total=2)
        ids = [str(make_tracker().user_id), str(make_tracker().user_id)]

        response = client.post(f"{BASE}/admin/update/users", json={"user_ids": ids})

        assert response.status_code == 200
        assert response.json() == {"success": 1, "failed": 1, "total": 2}
        assert client.post(f"{BASE}/admin/update/users", json={"user_ids": []}).status_code == 422

    def test_update_statistics_uses_scheduler_updater(self, client, as_user, scheduler):
        as_user(UserRole.instructor)
        response = client.get(f"{BASE}/admin/update/statistics")
        assert response.json()["needs_update"] == 2

    def test_edit_request_not_found(self, client, as_user):
        as_user(UserRole.instructor)
        response = client.post(
            f"{BASE}/admin/edit-requests/{make_tracker().id}/approve", json={}
        )
        assert response.status_code == 404


def test_metric_paths_collapse_ids():
    from cptracker.middleware.logging_middleware import normalize_path

    user_id = make_tracker().user_id
    assert normalize_path(f"{BASE}/admin/trackers/{user_id}/refresh") == f"{BASE}/admin/trackers/{{id}}/refresh"
    assert normalize_path(f"{BASE}/admin/jobs/cohort/2026-spring") == f"{BASE}/admin/jobs/cohort/{{cohort_id}}"
