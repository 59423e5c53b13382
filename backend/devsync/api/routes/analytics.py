from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from devsync.api.response import ResponseEnvelope, success_response
from devsync.core.authz import ProjectContext, get_current_user, get_project_context, load_project_context
from devsync.core.errors import ErrorCode, http_exception
from devsync.db.session import get_db
from devsync.models.user import User
from devsync.services.analytics import PERIOD_DAYS, project_task_summary, user_task_analytics

# Mounted ahead of the tasks router so "/tasks/analytics" is not read as a task id.
router = APIRouter(tags=["analytics"])


def _ensure_period(period: str) -> None:
    if period not in PERIOD_DAYS:
        raise http_exception(
            status.HTTP_400_BAD_REQUEST,
            ErrorCode.VALIDATION_ERROR,
            f"Unsupported period '{period}'. Use one of: {', '.join(PERIOD_DAYS)}",
        )


@router.get("/projects/{project_id}/analytics", response_model=ResponseEnvelope)
def get_project_analytics(
    period: str = Query(default="month"),
    context: ProjectContext = Depends(get_project_context),
    db: Session = Depends(get_db),
) -> dict:
    _ensure_period(period)
    return success_response(project_task_summary(db, context.project.id, period=period))


@router.get("/tasks/analytics", response_model=ResponseEnvelope)
def get_task_analytics(
    period: str = Query(default="month"),
    project_id: Optional[UUID] = Query(default=None, alias="projectId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    _ensure_period(period)
    if project_id is not None:
        load_project_context(db, project_id, current_user)
    return success_response(user_task_analytics(db, current_user.id, period=period, project_id=project_id))
