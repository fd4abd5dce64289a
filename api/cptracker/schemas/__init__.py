"""CPTracker Pydantic schemas package.

Re-exports all request and response schemas for convenient importing:

    from cptracker.schemas import TrackerConnect, LeaderboardResponse, ...
"""

from cptracker.schemas.admin import (
    CohortJobCreate,
    JobAction,
    JobStatus,
    TopPerformer,
    TrackerStatistics,
    UserBatchUpdate,
)
from cptracker.schemas.common import MessageResponse, PaginatedResponse, Pagination
from cptracker.schemas.edit_request import (
    EditRequestApprove,
    EditRequestCreate,
    EditRequestReject,
    EditRequestResponse,
)
from cptracker.schemas.leaderboard import LeaderboardEntry, LeaderboardResponse, LeaderboardUser
from cptracker.schemas.tracker import (
    MyTrackerResponse,
    TrackerAdminUpdate,
    TrackerConnect,
    TrackerListItem,
    TrackerResponse,
    TrackerUser,
)

__all__ = [
    # Tracker
    "TrackerConnect",
    "TrackerAdminUpdate",
    "TrackerResponse",
    "MyTrackerResponse",
    "TrackerUser",
    "TrackerListItem",
    # Leaderboard
    "LeaderboardEntry",
    "LeaderboardResponse",
    "LeaderboardUser",
    # Edit requests
    "EditRequestCreate",
    "EditRequestApprove",
    "EditRequestReject",
    "EditRequestResponse",
    # Admin
    "JobAction",
    "JobStatus",
    "CohortJobCreate",
    "TopPerformer",
    "TrackerStatistics",
    "UserBatchUpdate",
    # Common
    "MessageResponse",
    "PaginatedResponse",
    "Pagination",
]
