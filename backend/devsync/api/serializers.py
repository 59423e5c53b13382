from __future__ import annotations

from typing import Any

from devsync.models.comment import Comment
from devsync.models.label import TaskLabel
from devsync.models.task import Task
from devsync.schemas.comment import CommentRead
from devsync.schemas.label import LabelRead
from devsync.schemas.task import TaskRead, TaskWithProject


def serialize_task(task: Task, *, include_project: bool = False) -> dict[str, Any]:
    schema = TaskWithProject if include_project else TaskRead
    return schema.model_validate(task).model_dump(mode="json", by_alias=True)


def serialize_comment(comment: Comment) -> dict[str, Any]:
    return CommentRead.model_validate(comment).model_dump(mode="json", by_alias=True)


def serialize_label(label: TaskLabel) -> dict[str, Any]:
    return LabelRead.model_validate(label).model_dump(mode="json", by_alias=True)
