from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from devsync.api.deps import get_event_bus
from devsync.api.response import ResponseEnvelope, success_response
from devsync.core.authz import (
    ProjectContext,
    ensure_allowed,
    find_project_membership,
    find_team_membership,
    get_current_user,
    get_project_context,
    load_team_context,
    require_project_permission,
)
from devsync.core.errors import ErrorCode, http_exception
from devsync.core.policy import (
    Action,
    can_delete_project,
    project_is_deletable,
    project_role_for_creator,
    team_allows,
)
from devsync.db.session import get_db
from devsync.logging import get_logger
from devsync.models.project import Project
from devsync.models.project_member import ProjectMember, ProjectRole
from devsync.models.task import ACTIVE_TASK_STATUSES, Task
from devsync.models.user import User
from devsync.schemas.project import (
    ProjectCreate,
    ProjectDetail,
    ProjectListItem,
    ProjectMemberCreate,
    ProjectMemberRead,
    ProjectRead,
    ProjectUpdate,
)
from devsync.services.events import Actor, EventBus, ProjectMemberAdded, ProjectMemberRemoved

router = APIRouter(prefix="/projects", tags=["projects"])
logger = get_logger()


def _load_project_detail(db: Session, project_id: UUID) -> Project:
    stmt = (
        select(Project)
        .where(Project.id == project_id)
        .options(
            selectinload(Project.members).selectinload(ProjectMember.user),
            selectinload(Project.labels),
        )
    )
    return db.execute(stmt).scalar_one()


def _active_task_count(db: Session, project_id: UUID) -> int:
    stmt = select(func.count()).select_from(Task).where(
        Task.project_id == project_id,
        Task.status.in_(ACTIVE_TASK_STATUSES),
    )
    return int(db.execute(stmt).scalar_one())


@router.post("", response_model=ResponseEnvelope, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    team_context = load_team_context(db, payload.team_id, current_user)
    team_role = team_context.membership.role
    ensure_allowed(team_allows(team_role, Action.CREATE_PROJECT), Action.CREATE_PROJECT)

    project = Project(
        team_id=payload.team_id,
        name=payload.name,
        description=payload.description,
        is_active=True,
        created_by=current_user.id,
    )
    project.members.append(ProjectMember(user_id=current_user.id, role=project_role_for_creator(team_role)))
    db.add(project)
    db.commit()

    project = _load_project_detail(db, project.id)
    logger.info(
        "project_created",
        project_id=str(project.id),
        team_id=str(project.team_id),
        creator_role=team_role.value,
    )
    return success_response(ProjectDetail.model_validate(project), message="Project created successfully")


@router.get("", response_model=ResponseEnvelope)
def list_projects(
    team_id: Optional[UUID] = Query(default=None, alias="teamId"),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    task_counts = (
        select(Task.project_id, func.count().label("task_count")).group_by(Task.project_id).subquery()
    )
    member_counts = (
        select(ProjectMember.project_id, func.count().label("member_count"))
        .group_by(ProjectMember.project_id)
        .subquery()
    )
    stmt = (
        select(
            Project,
            ProjectMember.role,
            func.coalesce(task_counts.c.task_count, 0),
            func.coalesce(member_counts.c.member_count, 0),
        )
        .join(ProjectMember, ProjectMember.project_id == Project.id)
        .outerjoin(task_counts, task_counts.c.project_id == Project.id)
        .outerjoin(member_counts, member_counts.c.project_id == Project.id)
        .where(ProjectMember.user_id == current_user.id)
    )
    if team_id is not None:
        stmt = stmt.where(Project.team_id == team_id)
    if is_active is not None:
        stmt = stmt.where(Project.is_active.is_(is_active))
    stmt = stmt.order_by(Project.updated_at.desc())

    items = [
        ProjectListItem(
            **ProjectRead.model_validate(project).model_dump(),
            role=role,
            task_count=task_count,
            member_count=member_count,
        )
        for project, role, task_count, member_count in db.execute(stmt).all()
    ]
    return success_response(items)


@router.get("/{project_id}", response_model=ResponseEnvelope)
def get_project(
    context: ProjectContext = Depends(get_project_context),
    db: Session = Depends(get_db),
) -> dict:
    project = _load_project_detail(db, context.project.id)
    return success_response(ProjectDetail.model_validate(project))


@router.put("/{project_id}", response_model=ResponseEnvelope)
def update_project(
    payload: ProjectUpdate,
    context: ProjectContext = Depends(require_project_permission(Action.UPDATE_PROJECT)),
    db: Session = Depends(get_db),
) -> dict:
    project = context.project
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("name") is not None:
        name = updates["name"].strip()
        if not name:
            raise http_exception(status.HTTP_400_BAD_REQUEST, ErrorCode.VALIDATION_ERROR, "Project name cannot be blank")
        project.name = name
    if "description" in updates:
        project.description = updates["description"]
    if updates.get("is_active") is not None:
        project.is_active = updates["is_active"]
    db.commit()
    db.refresh(project)

    logger.info("project_updated", project_id=str(project.id), fields=sorted(updates))
    return success_response(ProjectRead.model_validate(project), message="Project updated successfully")


@router.delete("/{project_id}", response_model=ResponseEnvelope)
def delete_project(
    context: ProjectContext = Depends(get_project_context),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    project = context.project
    team_membership = find_team_membership(db, project.team_id, current_user.id)
    team_role = team_membership.role if team_membership else None
    ensure_allowed(can_delete_project(context.membership.role, team_role), Action.DELETE_PROJECT)

    active_tasks = _active_task_count(db, project.id)
    if not project_is_deletable(active_tasks):
        raise http_exception(
            status.HTTP_400_BAD_REQUEST,
            ErrorCode.STATE_CONFLICT,
            f"Cannot delete project with {active_tasks} active tasks. Please complete or move them first.",
            data={"activeTaskCount": active_tasks},
        )

    project_id = project.id
    db.delete(project)
    db.commit()

    logger.info("project_deleted", project_id=str(project_id))
    return success_response({"id": project_id, "deleted": True}, message="Project deleted successfully")


@router.post("/{project_id}/members", response_model=ResponseEnvelope, status_code=status.HTTP_201_CREATED)
async def add_project_member(
    payload: ProjectMemberCreate,
    context: ProjectContext = Depends(require_project_permission(Action.MANAGE_PROJECT_MEMBERS)),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    project = context.project
    user = db.get(User, payload.user_id)
    if user is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, "User not found")

    if find_team_membership(db, project.team_id, user.id) is None:
        raise http_exception(
            status.HTTP_400_BAD_REQUEST,
            ErrorCode.STATE_CONFLICT,
            "User must be a member of the project's team",
        )

    if find_project_membership(db, project.id, user.id) is not None:
        raise http_exception(status.HTTP_409_CONFLICT, ErrorCode.CONFLICT, "User is already a member of this project")

    membership = ProjectMember(project_id=project.id, user_id=user.id, role=payload.role)
    db.add(membership)
    db.commit()
    db.refresh(membership)

    logger.info(
        "project_member_added",
        project_id=str(project.id),
        member_user_id=str(user.id),
        role=payload.role.value,
    )
    await bus.publish(
        ProjectMemberAdded(
            actor=Actor.from_user(current_user),
            project_id=project.id,
            user_id=user.id,
            project_name=project.name,
        )
    )
    return success_response(ProjectMemberRead.model_validate(membership), message="Member added successfully")


@router.delete("/{project_id}/members/{member_id}", response_model=ResponseEnvelope)
async def remove_project_member(
    member_id: UUID,
    context: ProjectContext = Depends(require_project_permission(Action.MANAGE_PROJECT_MEMBERS)),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    project = context.project
    membership = db.execute(
        select(ProjectMember).where(ProjectMember.id == member_id, ProjectMember.project_id == project.id)
    ).scalar_one_or_none()
    if membership is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, "Project member not found")

    if membership.role == ProjectRole.ADMIN:
        admins = db.execute(
            select(func.count())
            .select_from(ProjectMember)
            .where(ProjectMember.project_id == project.id, ProjectMember.role == ProjectRole.ADMIN)
        ).scalar_one()
        if admins <= 1:
            raise http_exception(
                status.HTTP_400_BAD_REQUEST,
                ErrorCode.STATE_CONFLICT,
                "Cannot remove the last project admin",
            )

    removed_user_id = membership.user_id
    db.delete(membership)
    db.commit()

    logger.info("project_member_removed", project_id=str(project.id), member_user_id=str(removed_user_id))
    await bus.publish(
        ProjectMemberRemoved(actor=Actor.from_user(current_user), project_id=project.id, user_id=removed_user_id)
    )
    return success_response({"removedUserId": removed_user_id}, message="Member removed successfully")
