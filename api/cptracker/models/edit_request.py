import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, func, text
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .user import User


class EditRequestStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class EditRequest(Base):
    """A student's pending change to their tracker usernames.

    Approval copies the requested values onto the Tracker; rejection leaves
    the Tracker untouched. At most one pending request exists per user.
    """

    __tablename__ = "cp_edit_requests"

    __table_args__ = (
        Index("ix_cp_edit_requests_user_id", "user_id"),
        Index("ix_cp_edit_requests_status", "status"),
        Index(
            "uq_cp_edit_requests_one_pending",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", name="fk_cp_edit_requests_user_id_users", ondelete="CASCADE"),
        nullable=False,
    )

    current_leetcode_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    current_codeforces_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    current_codechef_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    current_atcoder_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    requested_leetcode_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    requested_codeforces_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    requested_codechef_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    requested_atcoder_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    requested_active_platforms: Mapped[list[str]] = mapped_column(
        ARRAY(String(20)), default=list, server_default="{}", nullable=False
    )

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=EditRequestStatus.pending, nullable=False
    )

    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", name="fk_cp_edit_requests_reviewed_by_users"),
        nullable=True,
    )
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
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

    # lazy="raise" prevents implicit loading in async context
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id], lazy="raise")
    reviewer: Mapped[Optional["User"]] = relationship(
        "User", foreign_keys=[reviewed_by], lazy="raise"
    )
