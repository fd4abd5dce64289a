"""CodeForces client (official JSON API)."""

from typing import Optional

import httpx
import structlog

from cptracker.services.errors import UpstreamUnavailableError
from cptracker.services.platform_client import CodeForcesStats, as_int, request_json

log = structlog.get_logger(__name__)

PLATFORM = "codeforces"
API_URL = "https://codeforces.com/api"


async def _api_call(client: httpx.AsyncClient, method: str, **params) -> Optional[list]:
    """Call an API method and return its ``result``, or None unless status is OK."""
    payload = await request_json(client, PLATFORM, "GET", f"{API_URL}/{method}", params=params)
    if payload.get("status") != "OK":
        log.warning("codeforces_api_not_ok", method=method, comment=payload.get("comment"))
        return None
    return payload.get("result")


async def fetch_contest_count(client: httpx.AsyncClient, handle: str) -> Optional[int]:
    """Rated contests entered, or None when the history cannot be fetched."""
    try:
        history = await _api_call(client, "user.rating", handle=handle)
    except UpstreamUnavailableError as exc:
        log.warning("codeforces_contests_failed", handle=handle, reason=exc.reason)
        return None
    if history is None:
        return None
    return len(history)


async def fetch_solved_count(client: httpx.AsyncClient, handle: str) -> Optional[int]:
    """Distinct problems (``contestId-index``) with at least one accepted submission.

    None when the submission list cannot be fetched.
    """
    try:
        submissions = await _api_call(client, "user.status", handle=handle)
    except UpstreamUnavailableError as exc:
        log.warning("codeforces_problems_failed", handle=handle, reason=exc.reason)
        return None
    if submissions is None:
        return None

    solved = set()
    for submission in submissions:
        if submission.get("verdict") != "OK":
            continue
        problem = submission.get("problem") or {}
        solved.add(f"{problem.get('contestId')}-{problem.get('index')}")
    return len(solved)


async def fetch_codeforces_stats(
    client: httpx.AsyncClient, handle: str
) -> Optional[CodeForcesStats]:
    try:
        users = await _api_call(client, "user.info", handles=handle)
    except UpstreamUnavailableError as exc:
        # Unknown handles are answered with HTTP 400 and status FAILED
        if exc.reason == "http 400":
            log.warning("codeforces_user_not_found", handle=handle)
            return None
        raise

    if not users:
        log.warning("codeforces_user_not_found", handle=handle)
        return None

    user = users[0]
    stats = CodeForcesStats(
        handle=user.get("handle") or handle,
        rating=as_int(user.get("rating")),
        max_rating=as_int(user.get("maxRating")),
        rank=user.get("rank") or "unrated",
        max_rank=user.get("maxRank") or "unrated",
        contests_participated=await fetch_contest_count(client, handle),
        problems_solved=await fetch_solved_count(client, handle),
    )
    log.info(
        "codeforces_stats_fetched",
        handle=handle,
        rating=stats.rating,
        contests=stats.contests_participated,
        problems_solved=stats.problems_solved,
    )
    return stats
