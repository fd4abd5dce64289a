"""Pydantic schemas for the ranked leaderboard."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from cptracker.schemas.common import Pagination


class LeaderboardUser(BaseModel):
    id: uuid.UUID
    display_name: Optional[str] = None


class LeaderboardEntry(BaseModel):
    rank: int
    user: LeaderboardUser
    performance_score: Decimal

    leetcode_score: Decimal
    codeforces_score: Decimal
    codechef_score: Decimal
    atcoder_score: Decimal

    leetcode_total_problems: int = 0
    leetcode_contest_solved_count: int = 0
    leetcode_practice_solved_count: int = 0
    leetcode_current_rating: int = 0
    leetcode_contests_participated: int = 0
    leetcode_last_contest_name: Optional[str] = None
    leetcode_last_contest_date: Optional[datetime] = None

    codeforces_rating: int = 0
    codeforces_contests_participated: int = 0
    codeforces_problems_solved: int = 0

    codechef_rating: int = 0
    codechef_contests_participated: int = 0
    codechef_problems_solved: int = 0

    atcoder_rating: int = 0
    atcoder_contests_participated: int = 0
    atcoder_problems_solved: int = 0

    total_solved_count: int = 0
    platforms_connected: int = 0
    last_updated: Optional[datetime] = None


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry] = Field(default_factory=list)
    pagination: Pagination
    cohort_id: Optional[str] = None
    # "live" when computed for this request, "snapshot" when served from cache
    source: Literal["live", "snapshot"] = "live"
