"""Pydantic schemas for connecting, reading and editing trackers."""

import re
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from cptracker.models.tracker import PLATFORMS

# Username formats accepted by each platform
USERNAME_PATTERNS: dict[str, re.Pattern] = {
    "leetcode": re.compile(r"[A-Za-z0-9_-]{1,30}"),
    "codeforces": re.compile(r"[A-Za-z0-9_.-]{3,24}"),
    "codechef": re.compile(r"[a-z0-9_]{1,30}", re.IGNORECASE),
    "atcoder": re.compile(r"[A-Za-z0-9_]{3,16}"),
}

USERNAME_FIELDS = tuple(f"{p}_username" for p in PLATFORMS)


def normalize_username(platform: str, value: Optional[str]) -> Optional[str]:
    """Strip whitespace; blank becomes None; anything else must match the platform format."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not USERNAME_PATTERNS[platform].fullmatch(value):
        raise ValueError(f"Invalid {platform} username: {value!r}")
    return value


def validate_platform_list(platforms: Optional[list[str]]) -> Optional[list[str]]:
    if platforms is None:
        return None
    unknown = [p for p in platforms if p not in PLATFORMS]
    if unknown:
        raise ValueError(f"Unknown platform(s): {', '.join(unknown)}")
    # Canonical order, no duplicates
    return [p for p in PLATFORMS if p in platforms]


class PlatformUsernames(BaseModel):
    """The four optional platform usernames, validated per platform."""

    leetcode_username: Optional[str] = None
    codeforces_username: Optional[str] = None
    codechef_username: Optional[str] = None
    atcoder_username: Optional[str] = None

    @field_validator(*USERNAME_FIELDS)
    @classmethod
    def check_username(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        return normalize_username(info.field_name.removesuffix("_username"), value)

    def as_dict(self) -> dict[str, Optional[str]]:
        return {p: getattr(self, f"{p}_username") for p in PLATFORMS}


class TrackerConnect(PlatformUsernames):
    """Request schema for POST /connect."""


class TrackerAdminUpdate(PlatformUsernames):
    """Request schema for staff edits of a tracker.

    Usernames left out (or blank) are unchanged. When active_platforms is
    omitted it is re-derived from the resulting usernames.
    """

    active_platforms: Optional[list[str]] = None
    is_active: Optional[bool] = None

    @field_validator("active_platforms")
    @classmethod
    def check_platforms(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return validate_platform_list(value)


class TrackerResponse(BaseModel):
    """Full tracker row, suitable for ORM serialization."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID

    leetcode_username: Optional[str] = None
    codeforces_username: Optional[str] = None
    codechef_username: Optional[str] = None
    atcoder_username: Optional[str] = None

    leetcode_total_problems: int = 0
    leetcode_easy_solved: int = 0
    leetcode_medium_solved: int = 0
    leetcode_hard_solved: int = 0
    leetcode_contest_solved_count: int = 0
    leetcode_practice_solved_count: int = 0
    leetcode_contests_participated: int = 0
    leetcode_current_rating: int = 0
    leetcode_highest_rating: int = 0
    leetcode_last_contest_name: Optional[str] = None
    leetcode_last_contest_date: Optional[datetime] = None

    codeforces_handle: Optional[str] = None
    codeforces_rating: int = 0
    codeforces_max_rating: int = 0
    codeforces_rank: Optional[str] = None
    codeforces_contests_participated: int = 0
    codeforces_problems_solved: int = 0

    codechef_rating: int = 0
    codechef_highest_rating: int = 0
    codechef_stars: Optional[str] = None
    codechef_contests_participated: int = 0
    codechef_problems_solved: int = 0

    atcoder_rating: int = 0
    atcoder_highest_rating: int = 0
    atcoder_color: Optional[str] = None
    atcoder_contests_participated: int = 0
    atcoder_problems_solved: int = 0

    leetcode_score: Decimal = Decimal("0.00")
    codeforces_score: Decimal = Decimal("0.00")
    codechef_score: Decimal = Decimal("0.00")
    atcoder_score: Decimal = Decimal("0.00")
    performance_score: Decimal = Decimal("0.00")

    leetcode_last_updated: Optional[datetime] = None
    codeforces_last_updated: Optional[datetime] = None
    codechef_last_updated: Optional[datetime] = None
    atcoder_last_updated: Optional[datetime] = None

    active_platforms: list[str] = Field(default_factory=list)
    is_active: bool = True
    last_updated_by_user: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MyTrackerResponse(BaseModel):
    """The caller's own tracker plus cohort membership and refresh availability."""

    tracker: TrackerResponse
    cohort_ids: list[str] = Field(default_factory=list)
    can_refresh: bool
    hours_until_refresh: Optional[int] = None


class TrackerUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    display_name: Optional[str] = None
    email: Optional[str] = None
    cohort_ids: list[str] = Field(default_factory=list)


class TrackerListItem(BaseModel):
    """Row of the staff tracker listing."""

    id: uuid.UUID
    rank: int
    user: TrackerUser
    platforms: dict[str, Optional[str]]
    performance_score: Decimal
    leetcode_total_problems: int = 0
    codeforces_rating: int = 0
    codechef_rating: int = 0
    atcoder_rating: int = 0
    active_platforms: list[str] = Field(default_factory=list)
    is_active: bool
    last_updated: Optional[datetime] = None
    created_at: Optional[datetime] = None
