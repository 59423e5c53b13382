from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from devsync.api.response import ResponseEnvelope, success_response
from devsync.core.authz import get_current_user
from devsync.core.config import Settings, get_settings
from devsync.core.errors import ErrorCode, http_exception
from devsync.db.session import get_db
from devsync.logging import get_logger
from devsync.models.user import User
from devsync.schemas.notification import NotificationPage, NotificationRead
from devsync.services.notifications import count_unread, list_notifications, mark_all_read, mark_read

router = APIRouter(prefix="/notifications", tags=["notifications"])
logger = get_logger()


@router.get("", response_model=ResponseEnvelope)
def get_notifications(
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> dict:
    page_size = min(limit or settings.notifications_default_limit, settings.notifications_max_limit)
    items, total = list_notifications(db, current_user.id, limit=page_size, offset=offset, unread_only=unread_only)
    page = NotificationPage(
        notifications=[NotificationRead.model_validate(item) for item in items],
        total_count=total,
        has_more=offset + len(items) < total,
    )
    return success_response(page)


@router.get("/unread-count", response_model=ResponseEnvelope)
def get_unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    return success_response({"unreadCount": count_unread(db, current_user.id)})


@router.patch("/read-all", response_model=ResponseEnvelope)
def read_all_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    updated = mark_all_read(db, current_user.id)
    logger.info("notifications_marked_read", updated_count=updated)
    return success_response({"updatedCount": updated}, message=f"{updated} notifications marked as read")


@router.patch("/{notification_id}/read", response_model=ResponseEnvelope)
def read_notification(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    notification = mark_read(db, current_user.id, notification_id)
    if notification is None:
        raise http_exception(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, "Notification not found")
    return success_response(NotificationRead.model_validate(notification), message="Notification marked as read")
