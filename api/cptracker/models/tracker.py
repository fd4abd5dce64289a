"""Tracker ORM model.

One row per user aggregating that user's competitive-programming presence
on LeetCode, CodeForces, CodeChef and AtCoder. Raw per-platform statistics
are written by the profile updater; the five score columns are derived from
them by services.scoring and must never be edited by hand.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .user import User


class Platform(str, enum.Enum):
    leetcode = "leetcode"
    codeforces = "codeforces"
    codechef = "codechef"
    atcoder = "atcoder"


PLATFORMS: tuple[str, ...] = tuple(p.value for p in Platform)


def _count():
    return mapped_column(Integer, default=0, server_default="0", nullable=False)


def _score():
    return mapped_column(
        Numeric(10, 2), default=Decimal("0.00"), server_default="0", nullable=False
    )


class Tracker(Base):
    __tablename__ = "cp_trackers"

    __table_args__ = (
        Index("ix_cp_trackers_performance_score", "performance_score"),
        Index("ix_cp_trackers_is_active", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", name="fk_cp_trackers_user_id_users", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    # Platform usernames
    leetcode_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    codeforces_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    codechef_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    atcoder_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # LeetCode
    leetcode_total_problems: Mapped[int] = _count()
    leetcode_easy_solved: Mapped[int] = _count()
    leetcode_medium_solved: Mapped[int] = _count()
    leetcode_hard_solved: Mapped[int] = _count()
    leetcode_contest_solved_count: Mapped[int] = _count()
    leetcode_practice_solved_count: Mapped[int] = _count()
    leetcode_contests_participated: Mapped[int] = _count()
    leetcode_current_rating: Mapped[int] = _count()
    leetcode_highest_rating: Mapped[int] = _count()
    leetcode_last_contest_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    leetcode_last_contest_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # CodeForces
    codeforces_handle: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    codeforces_rating: Mapped[int] = _count()
    codeforces_max_rating: Mapped[int] = _count()
    codeforces_rank: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    codeforces_contests_participated: Mapped[int] = _count()
    codeforces_problems_solved: Mapped[int] = _count()

    # CodeChef
    codechef_rating: Mapped[int] = _count()
    codechef_highest_rating: Mapped[int] = _count()
    codechef_stars: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    codechef_contests_participated: Mapped[int] = _count()
    codechef_problems_solved: Mapped[int] = _count()

    # AtCoder
    atcoder_rating: Mapped[int] = _count()
    atcoder_highest_rating: Mapped[int] = _count()
    atcoder_color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    atcoder_contests_participated: Mapped[int] = _count()
    atcoder_problems_solved: Mapped[int] = _count()

    # Derived scores (services.scoring)
    leetcode_score: Mapped[Decimal] = _score()
    codeforces_score: Mapped[Decimal] = _score()
    codechef_score: Mapped[Decimal] = _score()
    atcoder_score: Mapped[Decimal] = _score()
    performance_score: Mapped[Decimal] = _score()

    # Last successful fetch per platform
    leetcode_last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    codeforces_last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    codechef_last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    atcoder_last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    active_platforms: Mapped[list[str]] = mapped_column(
        ARRAY(String(20)), default=list, server_default="{}", nullable=False
    )

    # Last user-initiated refresh; only used for the manual refresh cooldown
    last_updated_by_user: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="tracker", lazy="raise")

    def username_for(self, platform: str) -> Optional[str]:
        return getattr(self, f"{platform}_username")

    def enabled_platforms(self) -> list[str]:
        """Platforms that are both active and have a username, in canonical order."""
        active = set(self.active_platforms or [])
        return [p for p in PLATFORMS if p in active and self.username_for(p)]
