"""Initial schema: users, cp_trackers, cp_edit_requests

Revision ID: 3f1c9a2b7d10
Revises:
Create Date: 2026-10-19 00:00:00.000000

Written by hand: one tracker per user (unique user_id, cascading delete),
and edit requests that keep a non-owning reference to the reviewer.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, UUID

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c9a2b7d10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PLATFORMS = ("leetcode", "codeforces", "codechef", "atcoder")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def _count(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), nullable=False, server_default="0")


def _score(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(10, 2), nullable=False, server_default="0")


def upgrade() -> None:
    # --- users table ---
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("api_key_hash", sa.String(255), nullable=True, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="student"),
        sa.Column("cohort_ids", ARRAY(sa.String(64)), nullable=False, server_default="{}"),
        *_timestamps(),
    )
    op.create_index(
        "ix_users_cohort_ids", "users", ["cohort_ids"], postgresql_using="gin"
    )

    # --- cp_trackers table ---
    op.create_table(
        "cp_trackers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_cp_trackers_user_id_users", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        *(sa.Column(f"{p}_username", sa.String(64), nullable=True) for p in PLATFORMS),
        # LeetCode
        _count("leetcode_total_problems"),
        _count("leetcode_easy_solved"),
        _count("leetcode_medium_solved"),
        _count("leetcode_hard_solved"),
        _count("leetcode_contest_solved_count"),
        _count("leetcode_practice_solved_count"),
        _count("leetcode_contests_participated"),
        _count("leetcode_current_rating"),
        _count("leetcode_highest_rating"),
        sa.Column("leetcode_last_contest_name", sa.String(255), nullable=True),
        sa.Column("leetcode_last_contest_date", sa.DateTime(timezone=True), nullable=True),
        # CodeForces
        sa.Column("codeforces_handle", sa.String(64), nullable=True),
        _count("codeforces_rating"),
        _count("codeforces_max_rating"),
        sa.Column("codeforces_rank", sa.String(50), nullable=True),
        _count("codeforces_contests_participated"),
        _count("codeforces_problems_solved"),
        # CodeChef
        _count("codechef_rating"),
        _count("codechef_highest_rating"),
        sa.Column("codechef_stars", sa.String(20), nullable=True),
        _count("codechef_contests_participated"),
        _count("codechef_problems_solved"),
        # AtCoder
        _count("atcoder_rating"),
        _count("atcoder_highest_rating"),
        sa.Column("atcoder_color", sa.String(20), nullable=True),
        _count("atcoder_contests_participated"),
        _count("atcoder_problems_solved"),
        # Scores
        _score("leetcode_score"),
        _score("codeforces_score"),
        _score("codechef_score"),
        _score("atcoder_score"),
        _score("performance_score"),
        *(
            sa.Column(f"{p}_last_updated", sa.DateTime(timezone=True), nullable=True)
            for p in PLATFORMS
        ),
        sa.Column(
            "active_platforms", ARRAY(sa.String(20)), nullable=False, server_default="{}"
        ),
        sa.Column("last_updated_by_user", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("ix_cp_trackers_performance_score", "cp_trackers", ["performance_score"])
    op.create_index("ix_cp_trackers_is_active", "cp_trackers", ["is_active"])

    # --- cp_edit_requests table ---
    op.create_table(
        "cp_edit_requests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey(
                "users.id", name="fk_cp_edit_requests_user_id_users", ondelete="CASCADE"
            ),
            nullable=False,
        ),
        *(sa.Column(f"current_{p}_username", sa.String(64), nullable=True) for p in PLATFORMS),
        *(sa.Column(f"requested_{p}_username", sa.String(64), nullable=True) for p in PLATFORMS),
        sa.Column(
            "requested_active_platforms",
            ARRAY(sa.String(20)),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "reviewed_by",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_cp_edit_requests_reviewed_by_users"),
            nullable=True,
        ),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_cp_edit_requests_user_id", "cp_edit_requests", ["user_id"])
    op.create_index("ix_cp_edit_requests_status", "cp_edit_requests", ["status"])
    # At most one pending request per user
    op.create_index(
        "uq_cp_edit_requests_one_pending",
        "cp_edit_requests",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_table("cp_edit_requests")
    op.drop_table("cp_trackers")
    op.drop_index("ix_users_cohort_ids", table_name="users")
    op.drop_table("users")
