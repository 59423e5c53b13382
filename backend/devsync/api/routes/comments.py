from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from devsync.api.deps import get_event_bus
from devsync.api.response import ResponseEnvelope, success_response
from devsync.api.serializers import serialize_comment
from devsync.core.authz import (
    CommentContext,
    TaskContext,
    ensure_allowed,
    get_comment_context,
    get_current_user,
    get_task_context,
)
from devsync.core.errors import ErrorCode, http_exception
from devsync.core.policy import Action, can_delete_comment, can_update_comment, denial_message, project_allows
from devsync.db.session import get_db
from devsync.logging import get_logger
from devsync.models.comment import Comment
from devsync.models.user import User
from devsync.schemas.comment import CommentCreate, CommentUpdate
from devsync.services.events import Actor, CommentAdded, CommentDeleted, CommentUpdated, EventBus

router = APIRouter(tags=["comments"])
logger = get_logger()


@router.get("/tasks/{task_id}/comments", response_model=ResponseEnvelope)
def list_comments(
    context: TaskContext = Depends(get_task_context),
    db: Session = Depends(get_db),
) -> dict:
    stmt = (
        select(Comment)
        .where(Comment.task_id == context.task.id)
        .options(selectinload(Comment.user))
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    comments = db.execute(stmt).scalars().all()
    return success_response([serialize_comment(comment) for comment in comments])


@router.post("/tasks/{task_id}/comments", response_model=ResponseEnvelope, status_code=status.HTTP_201_CREATED)
async def add_comment(
    payload: CommentCreate,
    context: TaskContext = Depends(get_task_context),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    ensure_allowed(project_allows(context.membership.role, Action.WRITE_COMMENT), Action.WRITE_COMMENT)
    task = context.task
    comment = Comment(task_id=task.id, user_id=current_user.id, content=payload.content)
    db.add(comment)
    db.commit()
    db.refresh(comment)

    data = serialize_comment(comment)
    logger.info("comment_added", task_id=str(task.id), comment_id=str(comment.id))
    await bus.publish(
        CommentAdded(
            actor=Actor.from_user(current_user),
            project_id=task.project_id,
            comment=data,
            task_id=task.id,
            task_title=task.title,
            task_assignee_id=task.assignee_id,
            task_creator_id=task.created_by_id,
        )
    )
    return success_response(data, message="Comment added successfully")


@router.put("/comments/{comment_id}", response_model=ResponseEnvelope)
async def update_comment(
    payload: CommentUpdate,
    context: CommentContext = Depends(get_comment_context),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    comment = context.comment
    if not can_update_comment(current_user.id, comment.user_id):
        raise http_exception(
            status.HTTP_403_FORBIDDEN,
            ErrorCode.NO_PERMISSION,
            "Only the comment author can edit this comment",
        )

    comment.content = payload.content
    db.commit()
    db.refresh(comment)

    data = serialize_comment(comment)
    logger.info("comment_updated", comment_id=str(comment.id))
    await bus.publish(
        CommentUpdated(
            actor=Actor.from_user(current_user),
            project_id=context.task.project_id,
            comment=data,
            task_id=context.task.id,
        )
    )
    return success_response(data, message="Comment updated successfully")


@router.delete("/comments/{comment_id}", response_model=ResponseEnvelope)
async def delete_comment(
    context: CommentContext = Depends(get_comment_context),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    comment = context.comment
    if not can_delete_comment(current_user.id, comment.user_id, context.membership.role):
        raise http_exception(
            status.HTTP_403_FORBIDDEN,
            ErrorCode.NO_PERMISSION,
            denial_message(Action.DELETE_ANY_COMMENT),
        )

    comment_id = comment.id
    task_id = context.task.id
    project_id = context.task.project_id
    db.delete(comment)
    db.commit()

    logger.info("comment_deleted", comment_id=str(comment_id), task_id=str(task_id))
    await bus.publish(
        CommentDeleted(
            actor=Actor.from_user(current_user),
            project_id=project_id,
            comment_id=comment_id,
            task_id=task_id,
        )
    )
    return success_response({"id": comment_id, "deleted": True}, message="Comment deleted successfully")
