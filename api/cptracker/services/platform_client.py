"""Shared plumbing for the competitive-programming platform clients.

Every client receives an httpx.AsyncClient built by make_http_client() and
returns a normalized stats record, or None when the user does not exist or
the platform cannot be reached in a meaningful way. Transport failures are
raised as UpstreamUnavailableError so the updater can attribute them to a
single platform.

A field set to None in a stats record could not be fetched on this run
(an auxiliary endpoint failed); the updater keeps the stored value for it.
"""

import time
from datetime import datetime
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel

from cptracker.config import settings
from cptracker.metrics import platform_fetch_duration, platform_fetches
from cptracker.services.errors import UpstreamUnavailableError

log = structlog.get_logger(__name__)


class LeetCodeStats(BaseModel):
    total_solved: Optional[int] = 0
    easy_solved: Optional[int] = 0
    medium_solved: Optional[int] = 0
    hard_solved: Optional[int] = 0
    contest_solved_count: Optional[int] = 0
    practice_solved_count: Optional[int] = 0
    contests_participated: Optional[int] = 0
    current_rating: Optional[int] = 0
    highest_rating: Optional[int] = 0
    last_contest_name: Optional[str] = None
    last_contest_date: Optional[datetime] = None


class CodeForcesStats(BaseModel):
    handle: str
    rating: int = 0
    max_rating: int = 0
    rank: str = "unrated"
    max_rank: str = "unrated"
    contests_participated: Optional[int] = 0
    problems_solved: Optional[int] = 0


class CodeChefStats(BaseModel):
    username: str
    rating: int = 0
    max_rating: int = 0
    stars: str = "0★"
    division: int = 3
    contests_participated: int = 0
    problems_solved: int = 0


class AtCoderStats(BaseModel):
    username: str
    rating: Optional[int] = 0
    max_rating: Optional[int] = 0
    color: Optional[str] = "Unrated"
    contests_participated: Optional[int] = 0
    problems_solved: int = 0


def browser_headers(**extra: str) -> dict[str, str]:
    """Browser-like headers; several platforms reject obvious bots."""
    headers = {
        "User-Agent": settings.platform_user_agent,
        "Accept-Language": "en-US,en;q=0.9",
    }
    headers.update(extra)
    return headers


def make_http_client(**kwargs: Any) -> httpx.AsyncClient:
    """Create the AsyncClient shared by all platform clients in one run."""
    kwargs.setdefault("timeout", settings.platform_request_timeout_seconds)
    kwargs.setdefault("follow_redirects", True)
    kwargs.setdefault("headers", browser_headers())
    return httpx.AsyncClient(**kwargs)


async def request_json(
    client: httpx.AsyncClient,
    platform: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> Any:
    """Perform a request and decode its JSON body.

    Raises:
        UpstreamUnavailableError: on transport errors, non-2xx statuses or a
            body that is not valid JSON. The HTTP status (if any) is kept in
            the reason so callers can branch on e.g. 400 vs 5xx.
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise UpstreamUnavailableError(platform, f"transport error: {exc!r}") from exc

    if response.status_code >= 400:
        raise UpstreamUnavailableError(platform, f"http {response.status_code}")

    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamUnavailableError(platform, "invalid json body") from exc


async def request_text(
    client: httpx.AsyncClient,
    platform: str,
    url: str,
    **kwargs: Any,
) -> tuple[int, str]:
    """GET a page and return (status_code, text). Only transport errors raise."""
    try:
        response = await client.get(url, **kwargs)
    except httpx.HTTPError as exc:
        raise UpstreamUnavailableError(platform, f"transport error: {exc!r}") from exc
    return response.status_code, response.text


def as_int(value: Any) -> int:
    """Coerce API numbers (None, float ratings, numeric strings) to int."""
    if value is None:
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class PlatformCrawler:
    """Dispatches a (platform, username) pair to the matching client.

    Holds a single AsyncClient for the lifetime of a refresh run. Records a
    fetch counter and duration histogram per platform.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "PlatformCrawler":
        if self._client is None:
            self._client = make_http_client()
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = make_http_client()
            self._owns_client = True
        return self._client

    async def fetch(self, platform: str, username: str):
        # Deferred import: the client modules import this one
        from cptracker.services import atcoder, codechef, codeforces, leetcode

        fetchers = {
            "leetcode": leetcode.fetch_leetcode_stats,
            "codeforces": codeforces.fetch_codeforces_stats,
            "codechef": codechef.fetch_codechef_stats,
            "atcoder": atcoder.fetch_atcoder_stats,
        }
        fetcher = fetchers.get(platform)
        if fetcher is None:
            raise ValueError(f"Unknown platform: {platform}")

        start = time.monotonic()
        try:
            stats = await fetcher(self.client, username)
        except Exception:
            platform_fetches.labels(platform=platform, status="error").inc()
            raise
        finally:
            platform_fetch_duration.labels(platform=platform).observe(time.monotonic() - start)

        platform_fetches.labels(
            platform=platform, status="success" if stats is not None else "not_found"
        ).inc()
        return stats
