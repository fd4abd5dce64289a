"""Pydantic schemas for the staff-only surface: jobs, batches and statistics."""

import uuid
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class JobAction(BaseModel):
    action: Literal["start", "stop"]


class CohortJobCreate(BaseModel):
    interval_hours: float = Field(gt=0, le=24 * 30)


class UserBatchUpdate(BaseModel):
    user_ids: list[uuid.UUID] = Field(min_length=1, max_length=500)


class JobStatus(BaseModel):
    name: str
    running: bool
    schedule: str


class TopPerformer(BaseModel):
    rank: int
    user_id: uuid.UUID
    display_name: Optional[str] = None
    performance_score: Decimal
    platforms_connected: int


class TrackerStatistics(BaseModel):
    total_users: int
    users_with_score: int
    platforms: dict[str, int]
    average_performance_score: Decimal
    top_performers: list[TopPerformer] = Field(default_factory=list)
