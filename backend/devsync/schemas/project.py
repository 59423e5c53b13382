from __future__ import annotations

from uuid import UUID

from pydantic import Field, field_validator

from devsync.models.project_member import ProjectRole
from devsync.schemas.common import IdentifierModel, ORMModel
from devsync.schemas.label import LabelRead
from devsync.schemas.user import UserSummary


class ProjectBase(ORMModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Project name cannot be blank")
        return stripped


class ProjectCreate(ProjectBase):
    team_id: UUID


class ProjectUpdate(ORMModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    is_active: bool | None = None


class ProjectRead(IdentifierModel):
    team_id: UUID
    name: str
    description: str | None = None
    is_active: bool
    created_by: UUID


class ProjectListItem(ProjectRead):
    role: ProjectRole
    task_count: int
    member_count: int


class ProjectMemberCreate(ORMModel):
    user_id: UUID
    role: ProjectRole = Field(default=ProjectRole.DEVELOPER)


class ProjectMemberRead(IdentifierModel):
    project_id: UUID
    user_id: UUID
    role: ProjectRole
    user: UserSummary


class ProjectDetail(ProjectRead):
    members: list[ProjectMemberRead]
    labels: list[LabelRead]
