from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, String, Text, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devsync.db.base import Base, BaseModel

if TYPE_CHECKING:
    from devsync.models.label import TaskLabel
    from devsync.models.project_member import ProjectMember
    from devsync.models.task import Task
    from devsync.models.team import Team
    from devsync.models.user import User


class Project(BaseModel, Base):
    __tablename__ = "projects"

    team_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    team: Mapped[Team] = relationship("Team", back_populates="projects")
    creator: Mapped[User] = relationship("User")
    members: Mapped[list[ProjectMember]] = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectMember.created_at",
    )
    tasks: Mapped[list[Task]] = relationship(
        "Task",
        back_populates="project",
        cascade="all, delete-orphan",
    )
    labels: Mapped[list[TaskLabel]] = relationship(
        "TaskLabel",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="TaskLabel.name",
    )
