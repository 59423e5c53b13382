from __future__ import annotations

from uuid import UUID

from pydantic import Field, field_validator

from devsync.schemas.common import IdentifierModel, ORMModel
from devsync.schemas.user import UserSummary


class CommentCreate(ORMModel):
    content: str = Field(min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def strip_content(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Comment cannot be blank")
        return stripped


class CommentUpdate(CommentCreate):
    pass


class CommentRead(IdentifierModel):
    task_id: UUID
    user_id: UUID
    content: str
    user: UserSummary
