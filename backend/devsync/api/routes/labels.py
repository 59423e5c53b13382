from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from devsync.api.deps import get_event_bus
from devsync.api.response import ResponseEnvelope, success_response
from devsync.api.serializers import serialize_label
from devsync.core.authz import ProjectContext, get_current_user, get_project_context, require_project_permission
from devsync.core.errors import ErrorCode, http_exception
from devsync.core.policy import Action
from devsync.db.session import get_db
from devsync.logging import get_logger
from devsync.models.label import TaskLabel
from devsync.models.user import User
from devsync.schemas.label import LabelCreate, LabelRead
from devsync.services.events import Actor, EventBus, LabelCreated, LabelDeleted

router = APIRouter(prefix="/projects/{project_id}/labels", tags=["labels"])
logger = get_logger()


@router.get("", response_model=ResponseEnvelope)
def list_labels(
    context: ProjectContext = Depends(get_project_context),
    db: Session = Depends(get_db),
) -> dict:
    stmt = select(TaskLabel).where(TaskLabel.project_id == context.project.id).order_by(TaskLabel.name)
    labels = db.execute(stmt).scalars().all()
    return success_response([LabelRead.model_validate(label) for label in labels])


@router.post("", response_model=ResponseEnvelope, status_code=status.HTTP_201_CREATED)
async def create_label(
    payload: LabelCreate,
    context: ProjectContext = Depends(require_project_permission(Action.MANAGE_LABELS)),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    project = context.project
    duplicate = db.execute(
        select(TaskLabel.id).where(TaskLabel.project_id == project.id, TaskLabel.name == payload.name)
    ).first()
    if duplicate is not None:
        raise http_exception(
            status.HTTP_400_BAD_REQUEST,
            ErrorCode.STATE_CONFLICT,
            "A label with this name already exists in the project",
        )

    label = TaskLabel(project_id=project.id, name=payload.name, color=payload.color)
    db.add(label)
    db.commit()
    db.refresh(label)

    logger.info("label_created", project_id=str(project.id), label_id=str(label.id))
    data = serialize_label(label)
    await bus.publish(LabelCreated(actor=Actor.from_user(current_user), project_id=project.id, label=data))
    return success_response(data, message="Label created successfully")


@router.delete("/{label_id}", response_model=ResponseEnvelope)
async def delete_label(
    label_id: UUID,
    context: ProjectContext = Depends(require_project_permission(Action.MANAGE_LABELS)),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    project = context.project
    label = db.execute(
        select(TaskLabel).where(TaskLabel.id == label_id, TaskLabel.project_id == project.id)
    ).scalar_one_or_none()
    if label is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, "Label not found")

    db.delete(label)
    db.commit()

    logger.info("label_deleted", project_id=str(project.id), label_id=str(label_id))
    await bus.publish(LabelDeleted(actor=Actor.from_user(current_user), project_id=project.id, label_id=label_id))
    return success_response({"id": label_id, "deleted": True}, message="Label deleted successfully")
