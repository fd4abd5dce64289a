"""AtCoder client.

Submissions and ratings come from the kenkoooo community API; contest
participation comes from AtCoder's own contest-history JSON.
"""

from typing import Optional

import httpx
import structlog

from cptracker.services.errors import UpstreamUnavailableError
from cptracker.services.platform_client import AtCoderStats, as_int, request_json

log = structlog.get_logger(__name__)

PLATFORM = "atcoder"
KENKOOOO_API_URL = "https://kenkoooo.com/atcoder/atcoder-api"
HISTORY_URL = "https://atcoder.jp/users/{username}/history/json"

# (minimum rating, colour), highest first
RATING_COLORS = [
    (3200, "Red"),
    (2800, "Orange"),
    (2400, "Yellow"),
    (2000, "Blue"),
    (1600, "Cyan"),
    (1200, "Green"),
    (800, "Brown"),
    (400, "Gray"),
]


def rating_color(rating: int) -> str:
    for threshold, color in RATING_COLORS:
        if rating >= threshold:
            return color
    return "Unrated"


def count_accepted_problems(results: list[dict]) -> int:
    return len({r.get("problem_id") for r in results if r.get("result") == "AC"})


async def fetch_contest_history(client: httpx.AsyncClient, username: str) -> Optional[list[dict]]:
    """Rated contest entries, oldest first. None when the history cannot be fetched."""
    try:
        history = await request_json(
            client, PLATFORM, "GET", HISTORY_URL.format(username=username)
        )
    except UpstreamUnavailableError as exc:
        log.warning("atcoder_history_failed", username=username, reason=exc.reason)
        return None
    if not isinstance(history, list):
        log.warning("atcoder_history_failed", username=username, reason="unexpected payload")
        return None
    return [entry for entry in history if entry.get("IsRated")]


async def fetch_atcoder_stats(
    client: httpx.AsyncClient, username: str
) -> Optional[AtCoderStats]:
    results = await request_json(
        client, PLATFORM, "GET", f"{KENKOOOO_API_URL}/results", params={"user": username}
    )
    if not results:
        log.warning("atcoder_user_not_found", username=username)
        return None

    try:
        user_info = await request_json(
            client, PLATFORM, "GET", f"{KENKOOOO_API_URL}/user_info", params={"user": username}
        ) or {}
    except UpstreamUnavailableError as exc:
        log.warning("atcoder_user_info_failed", username=username, reason=exc.reason)
        user_info = None

    history = await fetch_contest_history(client, username)

    rating = max_rating = None
    if user_info is not None:
        rating = as_int(user_info.get("rating"))
        max_rating = as_int(user_info.get("max_rating"))
    if history is not None:
        rating = rating or 0
        max_rating = max_rating or 0
        if history:
            if not rating:
                rating = as_int(history[-1].get("NewRating"))
            if not max_rating:
                max_rating = max(as_int(entry.get("NewRating")) for entry in history)
    if rating is not None:
        max_rating = max(max_rating or 0, rating)

    stats = AtCoderStats(
        username=username,
        rating=rating,
        max_rating=max_rating,
        color=None if rating is None else rating_color(rating),
        contests_participated=None if history is None else len(history),
        problems_solved=count_accepted_problems(results),
    )
    log.info(
        "atcoder_stats_fetched",
        username=username,
        rating=stats.rating,
        submissions=len(results),
        contests=stats.contests_participated,
        problems_solved=stats.problems_solved,
    )
    return stats
