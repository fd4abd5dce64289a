from .base import Base
from .user import User, UserRole
from .tracker import PLATFORMS, Platform, Tracker
from .edit_request import EditRequest, EditRequestStatus

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Tracker",
    "Platform",
    "PLATFORMS",
    "EditRequest",
    "EditRequestStatus",
]
