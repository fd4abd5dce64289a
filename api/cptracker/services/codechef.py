"""CodeChef client. CodeChef has no public API; the profile page is scraped."""

import httpx
import structlog

from cptracker.services import profile_scraper
from cptracker.services.errors import UpstreamUnavailableError
from cptracker.services.platform_client import CodeChefStats, request_text

log = structlog.get_logger(__name__)

PLATFORM = "codechef"
PROFILE_URL = "https://www.codechef.com/users/{username}"


async def fetch_codechef_stats(client: httpx.AsyncClient, username: str) -> CodeChefStats:
    """Scrape a CodeChef profile.

    Never returns None: any fetch or parse failure produces a zero-filled
    record, so a CodeChef outage reads as "no activity" on the leaderboard.
    """
    log.info("codechef_fetch_started", username=username)
    try:
        status, html = await request_text(client, PLATFORM, PROFILE_URL.format(username=username))
        if status >= 400:
            raise UpstreamUnavailableError(PLATFORM, f"http {status}")
        parsed = profile_scraper.parse_codechef_profile(html)
    except Exception as exc:
        log.error("codechef_fetch_failed", username=username, error=str(exc))
        return CodeChefStats(username=username)

    stats = CodeChefStats(
        username=username,
        rating=parsed["rating"],
        max_rating=parsed["max_rating"],
        stars=parsed["stars"],
        division=profile_scraper.codechef_division(parsed["rating"]),
        contests_participated=parsed["contests_participated"],
        problems_solved=parsed["problems_solved"],
    )
    log.info(
        "codechef_stats_fetched",
        username=username,
        rating=stats.rating,
        contests=stats.contests_participated,
        problems_solved=stats.problems_solved,
    )
    return stats
