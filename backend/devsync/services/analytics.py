from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from devsync.models.project import Project
from devsync.models.project_member import ProjectMember
from devsync.models.task import ACTIVE_TASK_STATUSES, Task, TaskPriority, TaskStatus
from devsync.models.team import Team
from devsync.models.team_member import TeamMember
from devsync.models.user import User
from devsync.schemas.common import as_utc

PERIOD_DAYS = {"week": 7, "month": 30, "quarter": 90, "year": 365}


def _period_start(period: str, now: datetime) -> datetime:
    return now - timedelta(days=PERIOD_DAYS[period])


def _completion_rate(done: int, total: int) -> float:
    return round(done * 100 / total, 1) if total else 0.0


def project_task_summary(
    session: Session,
    project_id: uuid.UUID,
    *,
    period: str = "month",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Status and priority distribution, overdue count and completion rate for one project.

    Distributions cover every task of the project; ``createdInPeriod`` and
    ``completedInPeriod`` restrict to tasks created or last touched inside the
    requested window.
    """
    if period not in PERIOD_DAYS:
        raise ValueError(f"Unsupported period: {period}")
    current = now or datetime.now(timezone.utc)
    since = _period_start(period, current)

    status_rows = session.execute(
        select(Task.status, func.count()).where(Task.project_id == project_id).group_by(Task.status)
    ).all()
    priority_rows = session.execute(
        select(Task.priority, func.count()).where(Task.project_id == project_id).group_by(Task.priority)
    ).all()

    by_status = {status.value: 0 for status in TaskStatus}
    by_status.update({status.value: int(count) for status, count in status_rows})
    by_priority = {priority.value: 0 for priority in TaskPriority}
    by_priority.update({priority.value: int(count) for priority, count in priority_rows})

    overdue = session.execute(
        select(func.count())
        .select_from(Task)
        .where(
            Task.project_id == project_id,
            Task.status.in_(ACTIVE_TASK_STATUSES),
            Task.due_date.is_not(None),
            Task.due_date < current,
        )
    ).scalar_one()
    created_in_period = session.execute(
        select(func.count()).select_from(Task).where(Task.project_id == project_id, Task.created_at >= since)
    ).scalar_one()
    completed_in_period = session.execute(
        select(func.count())
        .select_from(Task)
        .where(Task.project_id == project_id, Task.status == TaskStatus.DONE, Task.updated_at >= since)
    ).scalar_one()

    total = sum(by_status.values())
    completion_rate = _completion_rate(by_status[TaskStatus.DONE.value], total)

    return {
        "projectId": str(project_id),
        "period": period,
        "totalTasks": total,
        "byStatus": by_status,
        "byPriority": by_priority,
        "overdueTasks": int(overdue),
        "createdInPeriod": int(created_in_period),
        "completedInPeriod": int(completed_in_period),
        "completionRate": completion_rate,
    }


def _full_name(first_name: str | None, last_name: str | None) -> str:
    return f"{first_name or ''} {last_name or ''}".strip() or "Unknown"


def user_task_analytics(
    session: Session,
    user_id: uuid.UUID,
    *,
    period: str = "month",
    project_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Task analytics across every project ``user_id`` is a member of.

    ``project_id`` narrows the scope to one project; callers check membership
    first. ``completionTrend`` has one entry per calendar day (UTC) of the
    period, zero-filled, counting tasks marked done that day.
    """
    if period not in PERIOD_DAYS:
        raise ValueError(f"Unsupported period: {period}")
    current = now or datetime.now(timezone.utc)
    since = _period_start(period, current)

    scope = [Task.project_id.in_(select(ProjectMember.project_id).where(ProjectMember.user_id == user_id))]
    if project_id is not None:
        scope.append(Task.project_id == project_id)

    status_rows = session.execute(select(Task.status, func.count()).where(*scope).group_by(Task.status)).all()
    priority_rows = session.execute(select(Task.priority, func.count()).where(*scope).group_by(Task.priority)).all()
    by_status = {status.value: 0 for status in TaskStatus}
    by_status.update({status.value: int(count) for status, count in status_rows})
    by_priority = {priority.value: 0 for priority in TaskPriority}
    by_priority.update({priority.value: int(count) for priority, count in priority_rows})

    overdue = session.execute(
        select(func.count())
        .select_from(Task)
        .where(*scope, Task.status.in_(ACTIVE_TASK_STATUSES), Task.due_date.is_not(None), Task.due_date < current)
    ).scalar_one()
    created_in_period = session.execute(
        select(func.count()).select_from(Task).where(*scope, Task.created_at >= since)
    ).scalar_one()

    trend = {since.date() + timedelta(days=offset): 0 for offset in range((current.date() - since.date()).days + 1)}
    completion_days: list[float] = []
    done_rows = session.execute(
        select(Task.created_at, Task.updated_at).where(*scope, Task.status == TaskStatus.DONE, Task.updated_at >= since)
    ).all()
    for created_at, updated_at in done_rows:
        finished = as_utc(updated_at)
        day = finished.date()
        if day in trend:
            trend[day] += 1
        started = as_utc(created_at)
        if started >= since:
            completion_days.append((finished - started).total_seconds() / 86400)

    assignee_rows = session.execute(
        select(User.id, User.first_name, User.last_name, func.count(Task.id))
        .join(Task, Task.assignee_id == User.id)
        .where(*scope)
        .group_by(User.id, User.first_name, User.last_name)
        .order_by(func.count(Task.id).desc(), User.first_name)
    ).all()

    total = sum(by_status.values())
    completed = by_status[TaskStatus.DONE.value]
    average_days = round(sum(completion_days) / len(completion_days), 1) if completion_days else 0.0

    return {
        "period": period,
        "projectId": str(project_id) if project_id else None,
        "dateRange": {"start": since, "end": current},
        "byStatus": by_status,
        "byPriority": by_priority,
        "completionTrend": [{"date": day.isoformat(), "count": count} for day, count in trend.items()],
        "assigneeBreakdown": [
            {"userId": str(assignee_id), "name": _full_name(first_name, last_name), "taskCount": int(count)}
            for assignee_id, first_name, last_name, count in assignee_rows
        ],
        "statistics": {
            "totalTasks": total,
            "completedTasks": completed,
            "overdueTasks": int(overdue),
            "tasksThisPeriod": int(created_in_period),
            "completionRate": _completion_rate(completed, total),
            "avgCompletionDays": average_days,
        },
    }


TEAM_ACTIVITY_DAYS = 30
GLOBAL_ACTIVITY_DAYS = 7
ACTIVITY_LIMIT = 20


def team_activity(
    session: Session,
    team_ids: Sequence[uuid.UUID],
    *,
    days: int = TEAM_ACTIVITY_DAYS,
    per_kind: int = 10,
    limit: int = ACTIVITY_LIMIT,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Recent completed tasks, created projects and joined members across ``team_ids``, newest first."""
    if not team_ids:
        return []
    current = now or datetime.now(timezone.utc)
    since = current - timedelta(days=days)
    activities: list[dict[str, Any]] = []

    task_rows = session.execute(
        select(Task, Project.name, Team.id, Team.name)
        .join(Project, Task.project_id == Project.id)
        .join(Team, Project.team_id == Team.id)
        .where(Team.id.in_(team_ids), Task.status == TaskStatus.DONE, Task.updated_at >= since)
        .order_by(Task.updated_at.desc())
        .limit(per_kind)
    ).all()
    for task, project_name, team_id, team_name in task_rows:
        assignee = task.assignee
        activities.append(
            {
                "id": f"task-{task.id}",
                "type": "task_completed",
                "message": f'Task "{task.title}" was completed in {project_name}',
                "user": _full_name(assignee.first_name, assignee.last_name) if assignee else "Unknown",
                "timestamp": as_utc(task.updated_at),
                "teamId": str(team_id),
                "teamName": team_name,
                "metadata": {"taskId": str(task.id), "projectId": str(task.project_id)},
            }
        )

    project_rows = session.execute(
        select(Project, User.first_name, User.last_name, Team.name)
        .join(User, Project.created_by == User.id)
        .join(Team, Project.team_id == Team.id)
        .where(Team.id.in_(team_ids), Project.created_at >= since)
        .order_by(Project.created_at.desc())
        .limit(per_kind)
    ).all()
    for project, first_name, last_name, team_name in project_rows:
        activities.append(
            {
                "id": f"project-{project.id}",
                "type": "project_created",
                "message": f'Project "{project.name}" was created',
                "user": _full_name(first_name, last_name),
                "timestamp": as_utc(project.created_at),
                "teamId": str(project.team_id),
                "teamName": team_name,
                "metadata": {"projectId": str(project.id)},
            }
        )

    member_rows = session.execute(
        select(TeamMember, User.first_name, User.last_name, Team.name)
        .join(User, TeamMember.user_id == User.id)
        .join(Team, TeamMember.team_id == Team.id)
        .where(Team.id.in_(team_ids), TeamMember.created_at >= since)
        .order_by(TeamMember.created_at.desc())
        .limit(per_kind)
    ).all()
    for membership, first_name, last_name, team_name in member_rows:
        activities.append(
            {
                "id": f"member-{membership.id}",
                "type": "member_joined",
                "message": f"{_full_name(first_name, last_name)} joined {team_name}",
                "user": "System",
                "timestamp": as_utc(membership.created_at),
                "teamId": str(membership.team_id),
                "teamName": team_name,
                "metadata": {"memberId": str(membership.id), "userId": str(membership.user_id)},
            }
        )

    activities.sort(key=lambda item: item["timestamp"], reverse=True)
    return activities[:limit]


__all__ = [
    "ACTIVITY_LIMIT",
    "GLOBAL_ACTIVITY_DAYS",
    "PERIOD_DAYS",
    "TEAM_ACTIVITY_DAYS",
    "project_task_summary",
    "team_activity",
    "user_task_analytics",
]
