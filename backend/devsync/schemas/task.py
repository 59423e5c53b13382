from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from devsync.models.task import TaskPriority, TaskStatus
from devsync.schemas.common import IdentifierModel, ORMModel, as_utc
from devsync.schemas.label import LabelRead
from devsync.schemas.user import UserSummary


def clean_title(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("Task title cannot be blank")
    return stripped


class TaskBase(ORMModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=10000)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        return clean_title(value)


class TaskCreate(TaskBase):
    project_id: UUID
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    assignee_id: UUID | None = None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class TaskUpdate(ORMModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=10000)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    assignee_id: UUID | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str | None) -> str | None:
        return None if value is None else clean_title(value)

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class TaskProjectRef(ORMModel):
    id: UUID
    name: str
    team_id: UUID


class TaskRead(IdentifierModel):
    project_id: UUID
    title: str
    description: str | None = None
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime | None = None
    assignee_id: UUID | None = None
    created_by_id: UUID
    assignee: UserSummary | None = None
    created_by: UserSummary
    labels: list[LabelRead] = Field(default_factory=list)
    comment_count: int = 0


class TaskWithProject(TaskRead):
    project: TaskProjectRef
