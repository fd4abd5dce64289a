"""Pydantic schemas for tracker edit requests and their review."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cptracker.schemas.tracker import PlatformUsernames, validate_platform_list


def _require_text(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class EditRequestCreate(PlatformUsernames):
    """Request schema for a student's username change request.

    When active_platforms is empty it is derived from the requested
    usernames; otherwise every listed platform needs a requested username.
    """

    active_platforms: list[str] = Field(default_factory=list)
    reason: str = Field(min_length=1, max_length=2000)

    @field_validator("active_platforms")
    @classmethod
    def check_platforms(cls, value: list[str]) -> list[str]:
        return validate_platform_list(value) or []

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        return _require_text(value)

    @model_validator(mode="after")
    def platforms_have_usernames(self) -> "EditRequestCreate":
        usernames = self.as_dict()
        if not self.active_platforms:
            self.active_platforms = [p for p, name in usernames.items() if name]
            return self
        missing = [p for p in self.active_platforms if not usernames[p]]
        if missing:
            raise ValueError(
                f"Active platforms require a username: {', '.join(missing)}"
            )
        return self


class EditRequestApprove(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=2000)


class EditRequestReject(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        return _require_text(value)


class EditRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID

    current_leetcode_username: Optional[str] = None
    current_codeforces_username: Optional[str] = None
    current_codechef_username: Optional[str] = None
    current_atcoder_username: Optional[str] = None

    requested_leetcode_username: Optional[str] = None
    requested_codeforces_username: Optional[str] = None
    requested_codechef_username: Optional[str] = None
    requested_atcoder_username: Optional[str] = None
    requested_active_platforms: list[str] = Field(default_factory=list)

    reason: str
    status: str
    reviewed_by: Optional[uuid.UUID] = None
    admin_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
