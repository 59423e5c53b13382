"""Access policy evaluator.

Every allow/deny decision in the service is made here from role facts that the
caller has already fetched (a team membership row, a project membership row).
The functions are pure: no database access, no exceptions. Mapping a denial to
an HTTP response is the job of :mod:`devsync.core.authz`.

Roles are always scoped to a team or a project. ``None`` stands for "no
membership row", which no allow-list ever contains.
"""

from __future__ import annotations

import enum
import uuid
from typing import Mapping

from devsync.models.project_member import ProjectRole
from devsync.models.task import TaskStatus
from devsync.models.team_member import TeamRole


class Action(str, enum.Enum):
    READ_TEAM = "team:read"
    UPDATE_TEAM = "team:update"
    DELETE_TEAM = "team:delete"
    MANAGE_TEAM_MEMBERS = "team:members"
    CREATE_PROJECT = "project:create"
    READ_PROJECT = "project:read"
    UPDATE_PROJECT = "project:update"
    DELETE_PROJECT = "project:delete"
    MANAGE_PROJECT_MEMBERS = "project:members"
    MANAGE_LABELS = "label:manage"
    WRITE_TASK = "task:write"
    ASSIGN_LABEL = "task:label"
    DELETE_ANY_TASK = "task:delete-any"
    WRITE_COMMENT = "comment:write"
    DELETE_ANY_COMMENT = "comment:delete-any"


_ALL_TEAM_ROLES = frozenset(TeamRole)
_ALL_PROJECT_ROLES = frozenset(ProjectRole)
_TEAM_LEADERS = frozenset({TeamRole.ADMIN, TeamRole.MANAGER})
_PROJECT_MANAGERS = frozenset({ProjectRole.ADMIN, ProjectRole.MANAGER})

TEAM_ALLOW: Mapping[Action, frozenset[TeamRole]] = {
    Action.READ_TEAM: _ALL_TEAM_ROLES,
    Action.UPDATE_TEAM: frozenset({TeamRole.ADMIN}),
    Action.DELETE_TEAM: frozenset({TeamRole.ADMIN}),
    Action.MANAGE_TEAM_MEMBERS: frozenset({TeamRole.ADMIN}),
    Action.CREATE_PROJECT: _TEAM_LEADERS,
    Action.DELETE_PROJECT: frozenset({TeamRole.ADMIN}),
}

PROJECT_ALLOW: Mapping[Action, frozenset[ProjectRole]] = {
    Action.READ_PROJECT: _ALL_PROJECT_ROLES,
    Action.UPDATE_PROJECT: _PROJECT_MANAGERS,
    Action.DELETE_PROJECT: frozenset({ProjectRole.ADMIN, ProjectRole.LEAD}),
    Action.MANAGE_PROJECT_MEMBERS: _PROJECT_MANAGERS,
    Action.MANAGE_LABELS: _PROJECT_MANAGERS,
    Action.WRITE_TASK: _ALL_PROJECT_ROLES,
    Action.ASSIGN_LABEL: _ALL_PROJECT_ROLES,
    Action.DELETE_ANY_TASK: _PROJECT_MANAGERS,
    Action.WRITE_COMMENT: _ALL_PROJECT_ROLES,
    Action.DELETE_ANY_COMMENT: _PROJECT_MANAGERS,
}

DENIAL_MESSAGES: Mapping[Action, str] = {
    Action.UPDATE_TEAM: "Only team admins can update the team",
    Action.DELETE_TEAM: "Only team admins can delete the team",
    Action.MANAGE_TEAM_MEMBERS: "Only team admins can manage team members",
    Action.CREATE_PROJECT: "Only team admins and managers can create projects",
    Action.UPDATE_PROJECT: "Only project admins and managers can update the project",
    Action.DELETE_PROJECT: "Only project admins, project leads or team admins can delete the project",
    Action.MANAGE_PROJECT_MEMBERS: "Only project admins and managers can manage project members",
    Action.MANAGE_LABELS: "Only project admins and managers can manage labels",
    Action.DELETE_ANY_TASK: "Only the task creator or project admins and managers can delete this task",
    Action.DELETE_ANY_COMMENT: "Only the comment author or project admins and managers can delete this comment",
}

_STATUS_ORDER = {TaskStatus.TODO: 0, TaskStatus.IN_PROGRESS: 1, TaskStatus.DONE: 2}


def denial_message(action: Action) -> str:
    return DENIAL_MESSAGES.get(action, "Access denied")


def team_allows(role: TeamRole | None, action: Action) -> bool:
    if role is None:
        return False
    return role in TEAM_ALLOW.get(action, frozenset())


def project_allows(role: ProjectRole | None, action: Action) -> bool:
    if role is None:
        return False
    return role in PROJECT_ALLOW.get(action, frozenset())


def project_role_for_creator(team_role: TeamRole) -> ProjectRole:
    """A project creator starts with the project role matching their team role."""
    return ProjectRole(team_role.value)


def can_delete_project(project_role: ProjectRole | None, team_role: TeamRole | None) -> bool:
    return project_allows(project_role, Action.DELETE_PROJECT) or team_allows(team_role, Action.DELETE_PROJECT)


def project_is_deletable(active_task_count: int) -> bool:
    return active_task_count == 0


def can_delete_task(actor_id: uuid.UUID, created_by_id: uuid.UUID, project_role: ProjectRole | None) -> bool:
    if project_role is None:
        return False
    return actor_id == created_by_id or project_allows(project_role, Action.DELETE_ANY_TASK)


def can_update_comment(actor_id: uuid.UUID, author_id: uuid.UUID) -> bool:
    return actor_id == author_id


def can_delete_comment(actor_id: uuid.UUID, author_id: uuid.UUID, project_role: ProjectRole | None) -> bool:
    if project_role is None:
        return False
    return actor_id == author_id or project_allows(project_role, Action.DELETE_ANY_COMMENT)


def can_transition_status(current: TaskStatus, target: TaskStatus, *, forward_only: bool = False) -> bool:
    if not forward_only:
        return True
    return _STATUS_ORDER[target] >= _STATUS_ORDER[current]


def can_join_user_room(actor_id: uuid.UUID, requested_user_id: uuid.UUID) -> bool:
    return actor_id == requested_user_id


__all__ = [
    "Action",
    "DENIAL_MESSAGES",
    "PROJECT_ALLOW",
    "TEAM_ALLOW",
    "can_delete_comment",
    "can_delete_project",
    "can_delete_task",
    "can_join_user_room",
    "can_transition_status",
    "can_update_comment",
    "denial_message",
    "project_allows",
    "project_is_deletable",
    "project_role_for_creator",
    "team_allows",
]
