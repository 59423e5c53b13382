from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from devsync.core.errors import ErrorCode, http_exception
from devsync.core.policy import Action, denial_message, project_allows, team_allows
from devsync.core.security import InvalidTokenError, user_id_from_token
from devsync.db.session import get_db
from devsync.logging import bind_log_context
from devsync.models.comment import Comment
from devsync.models.project import Project
from devsync.models.project_member import ProjectMember
from devsync.models.task import Task
from devsync.models.team import Team
from devsync.models.team_member import TeamMember
from devsync.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

PROJECT_NOT_FOUND = "Project not found or access denied"
TASK_NOT_FOUND = "Task not found or access denied"
TEAM_NOT_FOUND = "Team not found or access denied"
COMMENT_NOT_FOUND = "Comment not found or access denied"


@dataclass
class TeamContext:
    team: Team
    membership: TeamMember


@dataclass
class ProjectContext:
    project: Project
    membership: ProjectMember


@dataclass
class TaskContext:
    task: Task
    project: Project
    membership: ProjectMember


@dataclass
class CommentContext:
    comment: Comment
    task: Task
    membership: ProjectMember


def _invalid_token(message: str = "Invalid authentication token"):
    return http_exception(
        status.HTTP_401_UNAUTHORIZED,
        ErrorCode.AUTH_TOKEN_INVALID,
        message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def authenticate_token(raw_token: str, db: Session) -> User:
    try:
        user_id = user_id_from_token(raw_token)
    except InvalidTokenError:
        raise _invalid_token() from None

    user = db.get(User, user_id)
    if user is None:
        raise _invalid_token("Authentication credentials are no longer valid")
    return user


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    if not token:
        raise http_exception(
            status.HTTP_401_UNAUTHORIZED,
            ErrorCode.NOT_AUTHENTICATED,
            "Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = authenticate_token(token, db)
    bind_log_context(user_id=user.id)
    return user


def find_team_membership(db: Session, team_id: uuid.UUID, user_id: uuid.UUID) -> TeamMember | None:
    stmt = select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def find_project_membership(db: Session, project_id: uuid.UUID, user_id: uuid.UUID) -> ProjectMember | None:
    stmt = select(ProjectMember).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def ensure_allowed(allowed: bool, action: Action, message: str | None = None) -> None:
    if not allowed:
        raise http_exception(status.HTTP_403_FORBIDDEN, ErrorCode.NO_PERMISSION, message or denial_message(action))


def load_team_context(db: Session, team_id: uuid.UUID, user: User) -> TeamContext:
    team = db.get(Team, team_id)
    membership = find_team_membership(db, team_id, user.id) if team else None
    if team is None or membership is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, TEAM_NOT_FOUND)
    bind_log_context(team_id=team.id)
    return TeamContext(team=team, membership=membership)


def load_project_context(db: Session, project_id: uuid.UUID, user: User) -> ProjectContext:
    project = db.get(Project, project_id)
    membership = find_project_membership(db, project_id, user.id) if project else None
    if project is None or membership is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, PROJECT_NOT_FOUND)
    bind_log_context(project_id=project.id)
    return ProjectContext(project=project, membership=membership)


def load_task_context(db: Session, task_id: uuid.UUID, user: User) -> TaskContext:
    task = db.get(Task, task_id)
    membership = find_project_membership(db, task.project_id, user.id) if task else None
    if task is None or membership is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, TASK_NOT_FOUND)
    bind_log_context(project_id=task.project_id, task_id=task.id)
    return TaskContext(task=task, project=task.project, membership=membership)


def load_comment_context(db: Session, comment_id: uuid.UUID, user: User) -> CommentContext:
    comment = db.get(Comment, comment_id)
    membership = find_project_membership(db, comment.task.project_id, user.id) if comment else None
    if comment is None or membership is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, COMMENT_NOT_FOUND)
    bind_log_context(project_id=comment.task.project_id, comment_id=comment.id)
    return CommentContext(comment=comment, task=comment.task, membership=membership)


def get_team_context(
    team_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TeamContext:
    return load_team_context(db, team_id, current_user)


def get_project_context(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ProjectContext:
    return load_project_context(db, project_id, current_user)


def get_task_context(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TaskContext:
    return load_task_context(db, task_id, current_user)


def get_comment_context(
    comment_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CommentContext:
    return load_comment_context(db, comment_id, current_user)


def require_team_permission(action: Action) -> Callable[..., TeamContext]:
    def dependency(context: TeamContext = Depends(get_team_context)) -> TeamContext:
        ensure_allowed(team_allows(context.membership.role, action), action)
        return context

    return dependency


def require_project_permission(action: Action) -> Callable[..., ProjectContext]:
    def dependency(context: ProjectContext = Depends(get_project_context)) -> ProjectContext:
        ensure_allowed(project_allows(context.membership.role, action), action)
        return context

    return dependency
