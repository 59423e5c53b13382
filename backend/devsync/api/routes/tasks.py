from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import case, or_, select
from sqlalchemy.orm import Session, selectinload

from devsync.api.deps import get_event_bus
from devsync.api.response import ResponseEnvelope, success_response
from devsync.api.serializers import serialize_label, serialize_task
from devsync.core.authz import (
    ProjectContext,
    TaskContext,
    ensure_allowed,
    find_project_membership,
    get_current_user,
    get_project_context,
    get_task_context,
    load_project_context,
)
from devsync.core.config import Settings, get_settings
from devsync.core.errors import ErrorCode, http_exception
from devsync.core.policy import Action, can_delete_task, can_transition_status, denial_message, project_allows
from devsync.db.session import get_db
from devsync.logging import get_logger
from devsync.models.label import TaskLabel
from devsync.models.project_member import ProjectMember
from devsync.models.task import Task, TaskPriority, TaskStatus
from devsync.models.user import User
from devsync.schemas.common import as_utc
from devsync.schemas.task import TaskCreate, TaskUpdate
from devsync.services.events import (
    Actor,
    EventBus,
    TaskAssigned,
    TaskCreated,
    TaskDeleted,
    TaskLabelAssigned,
    TaskLabelRemoved,
    TaskUpdated,
)

router = APIRouter(tags=["tasks"])
logger = get_logger()

STATUS_RANK = case(
    (Task.status == TaskStatus.TODO, 0),
    (Task.status == TaskStatus.IN_PROGRESS, 1),
    else_=2,
)
PRIORITY_RANK = case(
    (Task.priority == TaskPriority.URGENT, 0),
    (Task.priority == TaskPriority.HIGH, 1),
    (Task.priority == TaskPriority.MEDIUM, 2),
    else_=3,
)

_TASK_LOAD_OPTIONS = (
    selectinload(Task.assignee),
    selectinload(Task.created_by),
    selectinload(Task.labels),
    selectinload(Task.comments),
)


def _task_query():
    return select(Task).options(*_TASK_LOAD_OPTIONS).order_by(STATUS_RANK, PRIORITY_RANK, Task.created_at.desc())


def _reload_task(db: Session, task_id: UUID, *, include_project: bool = False) -> Task:
    stmt = select(Task).where(Task.id == task_id).options(*_TASK_LOAD_OPTIONS).execution_options(populate_existing=True)
    if include_project:
        stmt = stmt.options(selectinload(Task.project))
    return db.execute(stmt).scalar_one()


def _ensure_assignee_is_member(db: Session, project_id: UUID, assignee_id: UUID | None) -> None:
    if assignee_id is None:
        return
    if find_project_membership(db, project_id, assignee_id) is None:
        raise http_exception(status.HTTP_400_BAD_REQUEST, ErrorCode.STATE_CONFLICT, "Assignee must be a project member")


@router.get("/projects/{project_id}/tasks", response_model=ResponseEnvelope)
def list_project_tasks(
    status_filter: Optional[TaskStatus] = Query(default=None, alias="status"),
    assignee_id: Optional[UUID] = Query(default=None, alias="assigneeId"),
    priority: Optional[TaskPriority] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=255),
    due_date: Optional[datetime] = Query(default=None, alias="dueDate"),
    context: ProjectContext = Depends(get_project_context),
    db: Session = Depends(get_db),
) -> dict:
    stmt = _task_query().where(Task.project_id == context.project.id)
    if status_filter is not None:
        stmt = stmt.where(Task.status == status_filter)
    if assignee_id is not None:
        stmt = stmt.where(Task.assignee_id == assignee_id)
    if priority is not None:
        stmt = stmt.where(Task.priority == priority)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))
    if due_date is not None:
        stmt = stmt.where(Task.due_date.is_not(None), Task.due_date <= as_utc(due_date))

    tasks = db.execute(stmt).scalars().all()
    return success_response([serialize_task(task) for task in tasks])


@router.post("/tasks", response_model=ResponseEnvelope, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    context = load_project_context(db, payload.project_id, current_user)
    ensure_allowed(project_allows(context.membership.role, Action.WRITE_TASK), Action.WRITE_TASK)
    _ensure_assignee_is_member(db, context.project.id, payload.assignee_id)

    task = Task(
        project_id=context.project.id,
        title=payload.title,
        description=payload.description,
        status=payload.status,
        priority=payload.priority,
        due_date=payload.due_date,
        assignee_id=payload.assignee_id,
        created_by_id=current_user.id,
    )
    db.add(task)
    db.commit()

    task = _reload_task(db, task.id)
    data = serialize_task(task)
    logger.info("task_created", task_id=str(task.id), assignee_id=str(task.assignee_id) if task.assignee_id else None)

    actor = Actor.from_user(current_user)
    await bus.publish(TaskCreated(actor=actor, project_id=task.project_id, task=data))
    if task.assignee_id is not None:
        await bus.publish(
            TaskAssigned(
                actor=actor,
                project_id=task.project_id,
                task_id=task.id,
                title=task.title,
                assignee_id=task.assignee_id,
            )
        )
    return success_response(data, message="Task created successfully")


@router.get("/tasks", response_model=ResponseEnvelope)
def list_my_tasks(
    status_filter: Optional[TaskStatus] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    member_projects = select(ProjectMember.project_id).where(ProjectMember.user_id == current_user.id)
    stmt = (
        _task_query()
        .options(selectinload(Task.project))
        .where(
            Task.project_id.in_(member_projects),
            or_(Task.assignee_id == current_user.id, Task.created_by_id == current_user.id),
        )
    )
    if status_filter is not None:
        stmt = stmt.where(Task.status == status_filter)

    tasks = db.execute(stmt).scalars().all()
    return success_response([serialize_task(task, include_project=True) for task in tasks])


@router.get("/tasks/{task_id}", response_model=ResponseEnvelope)
def get_task(
    context: TaskContext = Depends(get_task_context),
    db: Session = Depends(get_db),
) -> dict:
    task = _reload_task(db, context.task.id, include_project=True)
    return success_response(serialize_task(task, include_project=True))


@router.put("/tasks/{task_id}", response_model=ResponseEnvelope)
async def update_task(
    payload: TaskUpdate,
    context: TaskContext = Depends(get_task_context),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
    settings: Settings = Depends(get_settings),
) -> dict:
    ensure_allowed(project_allows(context.membership.role, Action.WRITE_TASK), Action.WRITE_TASK)
    task = context.task
    updates = payload.model_dump(exclude_unset=True)
    previous_assignee_id = task.assignee_id
    previous_status = task.status

    new_status = updates.get("status")
    if new_status is not None and not can_transition_status(
        previous_status, new_status, forward_only=settings.task_status_forward_only
    ):
        raise http_exception(
            status.HTTP_400_BAD_REQUEST,
            ErrorCode.STATE_CONFLICT,
            f"Cannot move task from {previous_status.value} back to {new_status.value}",
        )
    if "assignee_id" in updates:
        _ensure_assignee_is_member(db, task.project_id, updates["assignee_id"])

    changed_fields: list[str] = []
    for field_name, value in updates.items():
        # title, status and priority are required columns; an explicit null leaves them untouched.
        if value is None and field_name in {"title", "status", "priority"}:
            continue
        if getattr(task, field_name) != value:
            setattr(task, field_name, value)
            changed_fields.append(field_name)
    db.commit()

    task = _reload_task(db, task.id)
    data = serialize_task(task)
    assignee_changed = task.assignee_id != previous_assignee_id
    status_changed = task.status != previous_status
    logger.info("task_updated", task_id=str(task.id), fields=changed_fields)

    actor = Actor.from_user(current_user)
    await bus.publish(
        TaskUpdated(
            actor=actor,
            project_id=task.project_id,
            task=data,
            task_id=task.id,
            title=task.title,
            assignee_id=task.assignee_id,
            assignee_changed=assignee_changed,
            status_changed=status_changed,
            changed_fields=tuple(changed_fields),
        )
    )
    if assignee_changed and task.assignee_id is not None:
        await bus.publish(
            TaskAssigned(
                actor=actor,
                project_id=task.project_id,
                task_id=task.id,
                title=task.title,
                assignee_id=task.assignee_id,
            )
        )
    return success_response(data, message="Task updated successfully")


@router.delete("/tasks/{task_id}", response_model=ResponseEnvelope)
async def delete_task(
    context: TaskContext = Depends(get_task_context),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    task = context.task
    if not can_delete_task(current_user.id, task.created_by_id, context.membership.role):
        raise http_exception(status.HTTP_403_FORBIDDEN, ErrorCode.NO_PERMISSION, denial_message(Action.DELETE_ANY_TASK))

    task_id = task.id
    project_id = task.project_id
    db.delete(task)
    db.commit()

    logger.info("task_deleted", task_id=str(task_id))
    await bus.publish(TaskDeleted(actor=Actor.from_user(current_user), project_id=project_id, task_id=task_id))
    return success_response({"id": task_id, "deleted": True}, message="Task deleted successfully")


@router.post("/tasks/{task_id}/labels/{label_id}", response_model=ResponseEnvelope)
async def assign_label(
    label_id: UUID,
    context: TaskContext = Depends(get_task_context),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    ensure_allowed(project_allows(context.membership.role, Action.ASSIGN_LABEL), Action.ASSIGN_LABEL)
    task = context.task
    label = db.execute(
        select(TaskLabel).where(TaskLabel.id == label_id, TaskLabel.project_id == task.project_id)
    ).scalar_one_or_none()
    if label is None:
        raise http_exception(
            status.HTTP_404_NOT_FOUND,
            ErrorCode.NOT_FOUND,
            "Label not found or does not belong to this project",
        )
    if label in task.labels:
        raise http_exception(status.HTTP_400_BAD_REQUEST, ErrorCode.STATE_CONFLICT, "Label is already assigned to this task")

    task.labels.append(label)
    db.commit()

    task = _reload_task(db, task.id)
    data = serialize_task(task)
    logger.info("task_label_assigned", task_id=str(task.id), label_id=str(label.id))
    await bus.publish(
        TaskLabelAssigned(
            actor=Actor.from_user(current_user),
            project_id=task.project_id,
            task=data,
            label=serialize_label(label),
        )
    )
    return success_response(data, message="Label assigned successfully")


@router.delete("/tasks/{task_id}/labels/{label_id}", response_model=ResponseEnvelope)
async def remove_label(
    label_id: UUID,
    context: TaskContext = Depends(get_task_context),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    ensure_allowed(project_allows(context.membership.role, Action.ASSIGN_LABEL), Action.ASSIGN_LABEL)
    task = context.task
    label = next((candidate for candidate in task.labels if candidate.id == label_id), None)
    if label is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, "Label is not assigned to this task")

    task.labels.remove(label)
    db.commit()

    task = _reload_task(db, task.id)
    data = serialize_task(task)
    logger.info("task_label_removed", task_id=str(task.id), label_id=str(label_id))
    await bus.publish(
        TaskLabelRemoved(
            actor=Actor.from_user(current_user),
            project_id=task.project_id,
            task=data,
            label_id=label_id,
        )
    )
    return success_response(data, message="Label removed successfully")
