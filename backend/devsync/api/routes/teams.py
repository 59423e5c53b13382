from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import and_, delete, func, select
from sqlalchemy.orm import Session, selectinload

from devsync.api.deps import get_event_bus
from devsync.api.response import ResponseEnvelope, success_response
from devsync.core.authz import TeamContext, find_team_membership, get_current_user, get_team_context, require_team_permission
from devsync.core.config import Settings, get_settings
from devsync.core.errors import ErrorCode, http_exception
from devsync.core.policy import Action
from devsync.db.session import get_db
from devsync.logging import get_logger
from devsync.models.project import Project
from devsync.models.project_member import ProjectMember
from devsync.models.team import Team
from devsync.models.team_member import TeamMember, TeamRole
from devsync.models.user import User
from devsync.schemas.team import (
    TeamCreate,
    TeamListItem,
    TeamMemberCreate,
    TeamMemberRead,
    TeamRead,
    TeamUpdate,
    TeamWithMembers,
)
from devsync.services.analytics import GLOBAL_ACTIVITY_DAYS, TEAM_ACTIVITY_DAYS, team_activity
from devsync.services.events import Actor, EventBus, ProjectMemberRemoved, TeamMemberAdded

router = APIRouter(prefix="/teams", tags=["teams"])
logger = get_logger()


def _load_team_with_members(db: Session, team_id: UUID) -> Team:
    stmt = (
        select(Team)
        .where(Team.id == team_id)
        .options(selectinload(Team.members).selectinload(TeamMember.user))
    )
    team = db.execute(stmt).scalar_one_or_none()
    if team is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, "Team not found or access denied")
    return team


def _admin_count(db: Session, team_id: UUID) -> int:
    stmt = select(func.count()).select_from(TeamMember).where(
        TeamMember.team_id == team_id,
        TeamMember.role == TeamRole.ADMIN,
    )
    return int(db.execute(stmt).scalar_one())


@router.post("", response_model=ResponseEnvelope, status_code=status.HTTP_201_CREATED)
def create_team(
    payload: TeamCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    team = Team(name=payload.name, description=payload.description)
    membership = TeamMember(team=team, user=current_user, role=TeamRole.ADMIN)
    db.add(team)
    db.add(membership)
    db.commit()

    team = _load_team_with_members(db, team.id)
    logger.info("team_created", team_id=str(team.id), user_id=str(current_user.id))
    return success_response(TeamWithMembers.model_validate(team), message="Team created successfully")


@router.get("", response_model=ResponseEnvelope)
def list_teams(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    member_counts = (
        select(TeamMember.team_id, func.count().label("member_count"))
        .group_by(TeamMember.team_id)
        .subquery()
    )
    project_counts = (
        select(Project.team_id, func.count().label("project_count"))
        .where(Project.is_active.is_(True))
        .group_by(Project.team_id)
        .subquery()
    )
    stmt = (
        select(
            Team,
            TeamMember.role,
            func.coalesce(member_counts.c.member_count, 0),
            func.coalesce(project_counts.c.project_count, 0),
        )
        .join(TeamMember, TeamMember.team_id == Team.id)
        .outerjoin(member_counts, member_counts.c.team_id == Team.id)
        .outerjoin(project_counts, project_counts.c.team_id == Team.id)
        .where(TeamMember.user_id == current_user.id)
        .order_by(Team.created_at)
    )
    items = [
        TeamListItem(
            id=team.id,
            created_at=team.created_at,
            updated_at=team.updated_at,
            name=team.name,
            description=team.description,
            role=role,
            member_count=member_count,
            project_count=project_count,
        )
        for team, role, member_count, project_count in db.execute(stmt).all()
    ]
    return success_response(items)


@router.get("/activity", response_model=ResponseEnvelope)
def get_my_teams_activity(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    team_ids = list(db.execute(select(TeamMember.team_id).where(TeamMember.user_id == current_user.id)).scalars())
    activities = team_activity(db, team_ids, days=GLOBAL_ACTIVITY_DAYS, per_kind=5)
    return success_response({"activities": activities})


@router.get("/{team_id}/activity", response_model=ResponseEnvelope)
def get_team_activity(
    context: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
) -> dict:
    activities = team_activity(db, [context.team.id], days=TEAM_ACTIVITY_DAYS)
    return success_response({"activities": activities})


@router.get("/{team_id}", response_model=ResponseEnvelope)
def get_team(
    context: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
) -> dict:
    team = _load_team_with_members(db, context.team.id)
    return success_response(TeamWithMembers.model_validate(team))


@router.put("/{team_id}", response_model=ResponseEnvelope)
def update_team(
    payload: TeamUpdate,
    context: TeamContext = Depends(require_team_permission(Action.UPDATE_TEAM)),
    db: Session = Depends(get_db),
) -> dict:
    team = context.team
    updates = payload.model_dump(exclude_unset=True)
    if "name" in updates and updates["name"] is not None:
        team.name = updates["name"].strip()
    if "description" in updates:
        team.description = updates["description"]
    db.add(team)
    db.commit()
    db.refresh(team)

    logger.info("team_updated", team_id=str(team.id), fields=sorted(updates))
    return success_response(TeamRead.model_validate(team), message="Team updated successfully")


@router.delete("/{team_id}", response_model=ResponseEnvelope)
def delete_team(
    context: TeamContext = Depends(require_team_permission(Action.DELETE_TEAM)),
    db: Session = Depends(get_db),
) -> dict:
    team = context.team
    active_projects = db.execute(
        select(func.count()).select_from(Project).where(Project.team_id == team.id, Project.is_active.is_(True))
    ).scalar_one()
    if active_projects:
        raise http_exception(
            status.HTTP_400_BAD_REQUEST,
            ErrorCode.STATE_CONFLICT,
            "Cannot delete team with active projects. Please archive or delete projects first.",
            data={"activeProjectCount": int(active_projects)},
        )

    team_id = team.id
    db.delete(team)
    db.commit()

    logger.info("team_deleted", team_id=str(team_id))
    return success_response({"id": team_id, "deleted": True}, message="Team deleted successfully")


@router.post("/{team_id}/members", response_model=ResponseEnvelope, status_code=status.HTTP_201_CREATED)
async def add_team_member(
    payload: TeamMemberCreate,
    context: TeamContext = Depends(require_team_permission(Action.MANAGE_TEAM_MEMBERS)),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    team = context.team
    user = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if user is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, "User not found with this email")

    if find_team_membership(db, team.id, user.id) is not None:
        raise http_exception(status.HTTP_409_CONFLICT, ErrorCode.CONFLICT, "User is already a member of this team")

    membership = TeamMember(team=team, user=user, role=payload.role)
    db.add(membership)
    db.commit()
    db.refresh(membership)

    logger.info("team_member_added", team_id=str(team.id), member_user_id=str(user.id), role=payload.role.value)
    await bus.publish(
        TeamMemberAdded(actor=Actor.from_user(current_user), team_id=team.id, user_id=user.id, team_name=team.name)
    )
    return success_response(TeamMemberRead.model_validate(membership), message="Member added successfully")


@router.delete("/{team_id}/members/{member_id}", response_model=ResponseEnvelope)
async def remove_team_member(
    member_id: UUID,
    context: TeamContext = Depends(require_team_permission(Action.MANAGE_TEAM_MEMBERS)),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    team = context.team
    membership = db.execute(
        select(TeamMember).where(TeamMember.id == member_id, TeamMember.team_id == team.id)
    ).scalar_one_or_none()
    if membership is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, "Team member not found")

    if membership.role == TeamRole.ADMIN and _admin_count(db, team.id) <= 1:
        raise http_exception(status.HTTP_400_BAD_REQUEST, ErrorCode.STATE_CONFLICT, "Cannot remove the last team admin")

    removed_user_id = membership.user_id
    team_id = team.id
    db.delete(membership)
    revoked_project_ids: list[UUID] = []
    if settings.revoke_project_membership_on_team_removal:
        team_project_ids = select(Project.id).where(Project.team_id == team_id)
        revoked = and_(ProjectMember.user_id == removed_user_id, ProjectMember.project_id.in_(team_project_ids))
        revoked_project_ids = list(db.execute(select(ProjectMember.project_id).where(revoked)).scalars())
        db.execute(delete(ProjectMember).where(revoked).execution_options(synchronize_session=False))
    db.commit()

    logger.info(
        "team_member_removed",
        team_id=str(team_id),
        member_user_id=str(removed_user_id),
        revoked_project_memberships=len(revoked_project_ids),
    )
    actor = Actor.from_user(current_user)
    for project_id in revoked_project_ids:
        await bus.publish(ProjectMemberRemoved(actor=actor, project_id=project_id, user_id=removed_user_id))
    return success_response({"removedUserId": removed_user_id}, message="Member removed successfully")
