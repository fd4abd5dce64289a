"""LeetCode client (GraphQL with a profile-page fallback)."""

from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog
from pydantic import BaseModel

from cptracker.services import profile_scraper
from cptracker.services.errors import UpstreamUnavailableError
from cptracker.services.platform_client import (
    LeetCodeStats,
    as_int,
    browser_headers,
    request_json,
    request_text,
)

log = structlog.get_logger(__name__)

PLATFORM = "leetcode"
GRAPHQL_URL = "https://leetcode.com/graphql"
PROFILE_URL = "https://leetcode.com/{username}/"

SUBMISSIONS_QUERY = """
query userPublicProfile($username: String!) {
  matchedUser(username: $username) {
    username
    submitStatsGlobal {
      acSubmissionNum {
        difficulty
        count
      }
    }
  }
}
"""

CONTEST_RANKING_QUERY = """
query userContestRankingInfo($username: String!) {
  userContestRanking(username: $username) {
    attendedContestsCount
    rating
  }
}
"""

CONTEST_HISTORY_QUERY = """
query userContestRankingHistory($username: String!) {
  userContestRankingHistory(username: $username) {
    attended
    problemsSolved
    rating
    contest {
      title
      startTime
    }
  }
}
"""

_DIFFICULTY_FIELDS = {
    "Easy": "easy_solved",
    "Medium": "medium_solved",
    "Hard": "hard_solved",
}


class ContestSummary(BaseModel):
    """Contest figures for one user; a None field could not be fetched."""

    participated: Optional[int] = 0
    rating: Optional[int] = 0
    max_rating: Optional[int] = 0
    contest_solved: Optional[int] = 0
    last_contest_name: Optional[str] = None
    last_contest_date: Optional[datetime] = None

    @classmethod
    def unknown(cls) -> "ContestSummary":
        return cls(participated=None, rating=None, max_rating=None, contest_solved=None)


async def _graphql(client: httpx.AsyncClient, query: str, username: str) -> dict:
    return await request_json(
        client,
        PLATFORM,
        "POST",
        GRAPHQL_URL,
        json={"query": query, "variables": {"username": username}},
        headers=browser_headers(
            Referer="https://leetcode.com/",
            Accept="application/json",
        ),
    )


async def fetch_contest_summary(client: httpx.AsyncClient, username: str) -> ContestSummary:
    """Contest count, ratings and last contest.

    A user who never entered a contest gets real zeros. Fields whose endpoint
    failed are None.
    """
    try:
        payload = await _graphql(client, CONTEST_RANKING_QUERY, username)
    except UpstreamUnavailableError as exc:
        log.warning("leetcode_contest_ranking_failed", username=username, reason=exc.reason)
        return ContestSummary.unknown()

    ranking = (payload.get("data") or {}).get("userContestRanking")
    if not ranking:
        log.info("leetcode_no_contest_data", username=username)
        return ContestSummary()

    summary = ContestSummary(
        participated=as_int(ranking.get("attendedContestsCount")),
        rating=as_int(ranking.get("rating")),
    )
    summary.max_rating = summary.rating

    try:
        history_payload = await _graphql(client, CONTEST_HISTORY_QUERY, username)
    except UpstreamUnavailableError as exc:
        log.warning("leetcode_contest_history_failed", username=username, reason=exc.reason)
        summary.max_rating = None
        summary.contest_solved = None
        return summary

    history = (history_payload.get("data") or {}).get("userContestRankingHistory") or []
    if not history:
        return summary

    summary.max_rating = max(
        [summary.rating] + [as_int(entry.get("rating")) for entry in history]
    )
    summary.contest_solved = sum(as_int(entry.get("problemsSolved")) for entry in history)

    attended = [e for e in history if e.get("attended") and e.get("contest")]
    if attended:
        latest = max(attended, key=lambda e: as_int(e["contest"].get("startTime")))
        summary.last_contest_name = latest["contest"].get("title")
        summary.last_contest_date = datetime.fromtimestamp(
            as_int(latest["contest"].get("startTime")), tz=timezone.utc
        )
    return summary


def _build_stats(counts: Optional[dict], contests: ContestSummary) -> LeetCodeStats:
    if counts is None:
        counts = dict.fromkeys(("total_solved", *_DIFFICULTY_FIELDS.values()))
    total = counts.get("total_solved", 0)
    practice = None
    if total is not None and contests.contest_solved is not None:
        practice = max(0, total - contests.contest_solved)
    return LeetCodeStats(
        total_solved=total,
        easy_solved=counts.get("easy_solved", 0),
        medium_solved=counts.get("medium_solved", 0),
        hard_solved=counts.get("hard_solved", 0),
        contest_solved_count=contests.contest_solved,
        practice_solved_count=practice,
        contests_participated=contests.participated,
        current_rating=contests.rating,
        highest_rating=contests.max_rating,
        last_contest_name=contests.last_contest_name,
        last_contest_date=contests.last_contest_date,
    )


async def fetch_leetcode_stats_fallback(
    client: httpx.AsyncClient, username: str
) -> Optional[LeetCodeStats]:
    """Scrape the public profile page, then query the contest endpoints.

    Returns None only when the profile page answers 404. Any other scraping
    failure leaves the solve counts unknown (None) alongside whatever contest
    data is available.
    """
    log.info("leetcode_fallback_started", username=username)
    counts: Optional[dict] = None
    try:
        status, html = await request_text(
            client, PLATFORM, PROFILE_URL.format(username=username)
        )
    except UpstreamUnavailableError as exc:
        log.warning("leetcode_profile_scrape_failed", username=username, reason=exc.reason)
    else:
        if status == 404:
            log.warning("leetcode_user_not_found", username=username)
            return None
        if status < 400:
            counts = profile_scraper.parse_leetcode_profile(html)
        else:
            log.warning("leetcode_profile_scrape_failed", username=username, reason=f"http {status}")

    contests = await fetch_contest_summary(client, username)
    stats = _build_stats(counts, contests)
    log.info(
        "leetcode_fallback_stats",
        username=username,
        total_solved=stats.total_solved,
        contests=stats.contests_participated,
        rating=stats.current_rating,
    )
    return stats


async def fetch_leetcode_stats(
    client: httpx.AsyncClient, username: str
) -> Optional[LeetCodeStats]:
    try:
        payload = await _graphql(client, SUBMISSIONS_QUERY, username)
    except UpstreamUnavailableError as exc:
        if exc.reason != "http 400":
            raise
        log.warning("leetcode_graphql_bad_request", username=username)
        return await fetch_leetcode_stats_fallback(client, username)

    if payload.get("errors"):
        log.warning("leetcode_graphql_errors", username=username, errors=payload["errors"])
        return await fetch_leetcode_stats_fallback(client, username)

    user = (payload.get("data") or {}).get("matchedUser")
    if not user:
        log.warning("leetcode_user_missing_in_graphql", username=username)
        return await fetch_leetcode_stats_fallback(client, username)

    counts = {"total_solved": 0}
    submissions = (user.get("submitStatsGlobal") or {}).get("acSubmissionNum") or []
    for bucket in submissions:
        field = _DIFFICULTY_FIELDS.get(bucket.get("difficulty"))
        if field is None:
            continue
        counts[field] = as_int(bucket.get("count"))
        counts["total_solved"] += counts[field]

    contests = await fetch_contest_summary(client, username)
    stats = _build_stats(counts, contests)
    log.info(
        "leetcode_stats_fetched",
        username=username,
        total_solved=stats.total_solved,
        contest_solved=stats.contest_solved_count,
        practice_solved=stats.practice_solved_count,
        contests=stats.contests_participated,
        rating=stats.current_rating,
    )
    return stats
