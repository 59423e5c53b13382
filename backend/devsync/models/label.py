from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Column, ForeignKey, String, Table, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devsync.db.base import Base, BaseModel

if TYPE_CHECKING:
    from devsync.models.project import Project
    from devsync.models.task import Task


task_label_assignments = Table(
    "task_label_assignments",
    Base.metadata,
    Column("task_id", ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("label_id", ForeignKey("task_labels.id", ondelete="CASCADE"), primary_key=True),
)


class TaskLabel(BaseModel, Base):
    __tablename__ = "task_labels"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_task_labels_project_name"),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#3B82F6")

    project: Mapped[Project] = relationship("Project", back_populates="labels")
    tasks: Mapped[list[Task]] = relationship(
        "Task",
        secondary=task_label_assignments,
        back_populates="labels",
    )
