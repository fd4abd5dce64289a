"""Best-effort extraction of statistics from public profile HTML.

CodeChef has no public API and LeetCode's GraphQL endpoint is sometimes
blocked, so both fall back to reading the rendered profile page. Page
layouts change without notice: each field is extracted by a list of
independent strategies tried in order, and the name of the strategy that
produced the value is logged.

All functions are pure (HTML text in, values out) and never raise on
malformed markup.
"""

import re
from typing import Callable, Optional

import structlog
from bs4 import BeautifulSoup

log = structlog.get_logger(__name__)

# Counts above this are layout noise (ids, years, rank numbers), not problems
MAX_PLAUSIBLE_PROBLEM_COUNT = 10000

_FIRST_INT = re.compile(r"(\d+)")
_STARS = re.compile(r"(\d+)\s*★")
_CONTESTS = re.compile(r"(\d+)\s*contests?", re.IGNORECASE)
_PROBLEMS_SOLVED = re.compile(
    r"problems?\s*solved\s*[:\-]?\s*(\d+)|(\d+)\s*problems?\s*solved", re.IGNORECASE
)
_LEETCODE_SOLVED = re.compile(r"(\d+)\s*/\s*\d+\s*Solved", re.IGNORECASE)

Strategy = Callable[[BeautifulSoup], Optional[int]]


def _first_int(text: str) -> Optional[int]:
    match = _FIRST_INT.search(text)
    return int(match.group(1)) if match else None


def _run_strategies(
    field: str, soup: BeautifulSoup, strategies: list[tuple[str, Strategy]]
) -> Optional[int]:
    for name, strategy in strategies:
        value = strategy(soup)
        if value is not None:
            log.debug("profile_field_extracted", field=field, strategy=name, value=value)
            return value
    log.debug("profile_field_missing", field=field)
    return None


# ---------------------------------------------------------------------------
# CodeChef
# ---------------------------------------------------------------------------


def _codechef_rating_number(soup: BeautifulSoup) -> Optional[int]:
    element = soup.select_one(".rating-number")
    if element is None:
        return None
    return _first_int(element.get_text(strip=True))


def _codechef_highest_rating(soup: BeautifulSoup) -> Optional[int]:
    for item in soup.select(".rating-header .inline-list li"):
        text = item.get_text(" ", strip=True)
        if "Highest Rating" in text:
            value = _first_int(text)
            if value is not None:
                return value
    return None


def _codechef_contests_rating_header(soup: BeautifulSoup) -> Optional[int]:
    best = None
    for header in soup.select(".rating-header"):
        match = _CONTESTS.search(header.get_text(" ", strip=True))
        if match:
            best = max(best or 0, int(match.group(1)))
    return best


def _codechef_contests_rating_table(soup: BeautifulSoup) -> Optional[int]:
    best = None
    for row in soup.select(".rating-data-section table tr"):
        text = row.get_text(" ", strip=True)
        if "Contests" in text:
            value = _first_int(text)
            if value is not None:
                best = max(best or 0, value)
    return best


def _codechef_contests_body_scan(soup: BeautifulSoup) -> Optional[int]:
    body = soup.body or soup
    counts = [int(m.group(1)) for m in _CONTESTS.finditer(body.get_text(" "))]
    return max(counts) if counts else None


def _plausible(count: int) -> bool:
    return 0 < count < MAX_PLAUSIBLE_PROBLEM_COUNT


def _codechef_problems_count_blocks(soup: BeautifulSoup) -> Optional[int]:
    best = None
    for element in soup.select(".problem-solved-count, .number-solved, .stats-number"):
        value = _first_int(element.get_text(strip=True))
        if value is not None and _plausible(value):
            best = max(best or 0, value)
    return best


def _codechef_problems_stat_items(soup: BeautifulSoup) -> Optional[int]:
    best = None
    for element in soup.select(
        ".rating-data-section .stat-item, .profile-info-list li, .user-stats .stat"
    ):
        text = element.get_text(" ", strip=True)
        if "problem" in text.lower():
            value = _first_int(text)
            if value is not None and _plausible(value):
                best = max(best or 0, value)
    return best


def _codechef_problems_table_rows(soup: BeautifulSoup) -> Optional[int]:
    best = None
    for element in soup.select("table tr, .user-details-container .row, .stats-row"):
        text = element.get_text(" ", strip=True).lower()
        if "problem" in text and "solved" in text:
            value = _first_int(text)
            if value is not None and _plausible(value):
                best = max(best or 0, value)
    return best


def _codechef_problems_body_scan(soup: BeautifulSoup) -> Optional[int]:
    body = soup.body or soup
    best = None
    for match in _PROBLEMS_SOLVED.finditer(body.get_text(" ")):
        value = int(match.group(1) or match.group(2))
        if _plausible(value):
            best = max(best or 0, value)
    return best


CODECHEF_CONTEST_STRATEGIES: list[tuple[str, Strategy]] = [
    ("rating_header", _codechef_contests_rating_header),
    ("rating_table", _codechef_contests_rating_table),
    ("body_scan", _codechef_contests_body_scan),
]

CODECHEF_PROBLEM_STRATEGIES: list[tuple[str, Strategy]] = [
    ("count_blocks", _codechef_problems_count_blocks),
    ("stat_items", _codechef_problems_stat_items),
    ("table_rows", _codechef_problems_table_rows),
    ("body_scan", _codechef_problems_body_scan),
]


def parse_codechef_profile(html: str) -> dict:
    """Extract rating, highest rating, stars, contests and problems solved.

    Missing fields come back as zero (stars as "0★"); highest rating defaults
    to the current rating when the page does not show it.
    """
    soup = BeautifulSoup(html, "html.parser")

    rating = _run_strategies(
        "codechef_rating", soup, [("rating_number", _codechef_rating_number)]
    ) or 0
    max_rating = _run_strategies(
        "codechef_highest_rating", soup, [("inline_list", _codechef_highest_rating)]
    )
    if max_rating is None:
        max_rating = rating

    stars = "0★"
    stars_element = soup.select_one(".rating")
    if stars_element is not None:
        match = _STARS.search(stars_element.get_text(" ", strip=True))
        if match:
            stars = f"{match.group(1)}★"

    contests = _run_strategies("codechef_contests", soup, CODECHEF_CONTEST_STRATEGIES) or 0
    problems = _run_strategies("codechef_problems", soup, CODECHEF_PROBLEM_STRATEGIES) or 0

    return {
        "rating": rating,
        "max_rating": max_rating,
        "stars": stars,
        "contests_participated": contests,
        "problems_solved": problems,
    }


def codechef_division(rating: int) -> int:
    if rating >= 2000:
        return 1
    if rating >= 1600:
        return 2
    return 3


# ---------------------------------------------------------------------------
# LeetCode fallback
# ---------------------------------------------------------------------------


def _difficulty_pattern(label: str) -> re.Pattern:
    return re.compile(rf"{label}[^:\d]*:\s*(\d+)", re.IGNORECASE)


_DIFFICULTY_PATTERNS = {
    "easy_solved": _difficulty_pattern("Easy"),
    "medium_solved": _difficulty_pattern("Medium"),
    "hard_solved": _difficulty_pattern("Hard"),
}


def parse_leetcode_profile(html: str) -> dict:
    """Scrape "X / Y Solved" and per-difficulty counts from a profile page.

    Returns zeros for anything not found; a page with no recognisable
    counts is indistinguishable from an account with no activity.
    """
    text = BeautifulSoup(html, "html.parser").get_text(" ")
    counts = {"total_solved": 0, "easy_solved": 0, "medium_solved": 0, "hard_solved": 0}

    match = _LEETCODE_SOLVED.search(text)
    if match:
        counts["total_solved"] = int(match.group(1))

    for field, pattern in _DIFFICULTY_PATTERNS.items():
        match = pattern.search(text)
        if match:
            counts[field] = int(match.group(1))

    if not counts["total_solved"]:
        counts["total_solved"] = (
            counts["easy_solved"] + counts["medium_solved"] + counts["hard_solved"]
        )
    return counts
