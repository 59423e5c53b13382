from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devsync.db.base import Base, BaseModel

if TYPE_CHECKING:  # pragma: no cover - typing only
    from devsync.models.project import Project
    from devsync.models.team_member import TeamMember


class Team(BaseModel, Base):
    __tablename__ = "teams"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    members: Mapped[list[TeamMember]] = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by="TeamMember.created_at",
    )
    projects: Mapped[list[Project]] = relationship(
        "Project",
        back_populates="team",
        cascade="all, delete-orphan",
    )
