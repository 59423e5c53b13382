from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from devsync.models.team_member import TeamRole
from devsync.schemas.common import IdentifierModel, ORMModel
from devsync.schemas.user import UserSummary


class TeamCreate(ORMModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Team name cannot be blank")
        return stripped


class TeamUpdate(ORMModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)


class TeamMemberCreate(ORMModel):
    email: EmailStr
    role: TeamRole = Field(default=TeamRole.DEVELOPER)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class TeamMemberRead(ORMModel):
    id: UUID
    team_id: UUID
    user_id: UUID
    role: TeamRole
    joined_at: datetime = Field(validation_alias="created_at")
    user: UserSummary


class TeamRead(IdentifierModel):
    name: str
    description: str | None = None


class TeamListItem(TeamRead):
    role: TeamRole
    member_count: int
    project_count: int


class TeamWithMembers(TeamRead):
    members: list[TeamMemberRead]
