"""Notification pipeline and inbox queries.

``NotificationPipeline`` subscribes to the event bus. For every triggering
event it persists one ``Notification`` row per recipient in its own session,
commits, and then pushes the stored row to ``user:<recipient>``. Persisting is
unconditional; the push is best effort. Neither step raises into the caller.
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devsync.db import session as session_module
from devsync.logging import get_logger
from devsync.models.notification import Notification, NotificationType
from devsync.observability.metrics import record_notification_created, record_notification_failed
from devsync.realtime.channels import ServerEvent, user_channel
from devsync.realtime.registry import ConnectionRegistry
from devsync.schemas.notification import NotificationRead
from devsync.services.events import (
    CommentAdded,
    DomainEvent,
    ProjectMemberAdded,
    TaskAssigned,
    TaskUpdated,
    TeamMemberAdded,
)

logger = get_logger().bind(component="notification_pipeline")

TASK_ASSIGNED_TITLE = "New Task Assigned"
TASK_UPDATED_TITLE = "Task Updated"
COMMENT_ADDED_TITLE = "New Comment"
PROJECT_ASSIGNED_TITLE = "Added to Project"
TEAM_INVITE_TITLE = "Team Invitation"


def serialize_notification(notification: Notification) -> dict[str, Any]:
    return NotificationRead.model_validate(notification).model_dump(mode="json", by_alias=True)


def unique_recipients(candidates: Iterable[uuid.UUID | None], *, exclude: uuid.UUID) -> list[uuid.UUID]:
    """Drop empty ids, the acting user and duplicates while keeping first-seen order."""
    recipients: list[uuid.UUID] = []
    for candidate in candidates:
        if candidate is None or candidate == exclude or candidate in recipients:
            continue
        recipients.append(candidate)
    return recipients


class NotificationPipeline:
    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def __call__(self, event: DomainEvent) -> None:
        if isinstance(event, TaskAssigned):
            await self._on_task_assigned(event)
        elif isinstance(event, TaskUpdated):
            await self._on_task_updated(event)
        elif isinstance(event, CommentAdded):
            await self._on_comment_added(event)
        elif isinstance(event, ProjectMemberAdded):
            await self._on_project_member_added(event)
        elif isinstance(event, TeamMemberAdded):
            await self._on_team_member_added(event)

    async def notify(
        self,
        notification_type: NotificationType,
        recipient_id: uuid.UUID,
        title: str,
        message: str,
        *,
        project_id: uuid.UUID | None = None,
    ) -> dict[str, Any] | None:
        payload = self._persist(notification_type, recipient_id, title, message, project_id)
        if payload is None:
            return None
        await self._push(recipient_id, payload)
        return payload

    def _persist(
        self,
        notification_type: NotificationType,
        recipient_id: uuid.UUID,
        title: str,
        message: str,
        project_id: uuid.UUID | None,
    ) -> dict[str, Any] | None:
        session = session_module.open_session()
        try:
            notification = Notification(
                user_id=recipient_id,
                type=notification_type,
                title=title,
                message=message,
                project_id=project_id,
                is_read=False,
            )
            session.add(notification)
            session.commit()
            session.refresh(notification)
            payload = serialize_notification(notification)
        except SQLAlchemyError:
            session.rollback()
            record_notification_failed("persist")
            logger.exception(
                "notification_persist_failed",
                notification_type=notification_type.value,
                recipient_id=str(recipient_id),
            )
            return None
        finally:
            session.close()

        record_notification_created(notification_type.value)
        logger.info(
            "notification_created",
            notification_id=payload["id"],
            notification_type=notification_type.value,
            recipient_id=str(recipient_id),
        )
        return payload

    async def _push(self, recipient_id: uuid.UUID, payload: dict[str, Any]) -> None:
        try:
            await self.registry.broadcast(user_channel(recipient_id), ServerEvent.NOTIFICATION.value, {"notification": payload})
        except Exception:
            record_notification_failed("push")
            logger.warning("notification_push_failed", recipient_id=str(recipient_id), exc_info=True)

    async def _on_task_assigned(self, event: TaskAssigned) -> None:
        if event.assignee_id == event.actor.id:
            return
        await self.notify(
            NotificationType.TASK_ASSIGNED,
            event.assignee_id,
            TASK_ASSIGNED_TITLE,
            f'{event.actor.display_name} assigned you a task: "{event.title}"',
            project_id=event.project_id,
        )

    async def _on_task_updated(self, event: TaskUpdated) -> None:
        # A reassignment is announced to the new assignee by TaskAssigned instead.
        if event.assignee_id is None or event.assignee_changed or event.assignee_id == event.actor.id:
            return
        update_type = "changed the status of" if event.status_changed else "updated"
        await self.notify(
            NotificationType.TASK_UPDATED,
            event.assignee_id,
            TASK_UPDATED_TITLE,
            f'{event.actor.display_name} {update_type} the task: "{event.title}"',
            project_id=event.project_id,
        )

    async def _on_comment_added(self, event: CommentAdded) -> None:
        recipients = unique_recipients((event.task_assignee_id, event.task_creator_id), exclude=event.actor.id)
        for recipient_id in recipients:
            await self.notify(
                NotificationType.COMMENT_ADDED,
                recipient_id,
                COMMENT_ADDED_TITLE,
                f'{event.actor.display_name} commented on task: "{event.task_title}"',
                project_id=event.project_id,
            )

    async def _on_project_member_added(self, event: ProjectMemberAdded) -> None:
        await self.notify(
            NotificationType.PROJECT_ASSIGNED,
            event.user_id,
            PROJECT_ASSIGNED_TITLE,
            f'{event.actor.display_name} added you to project: "{event.project_name}"',
            project_id=event.project_id,
        )

    async def _on_team_member_added(self, event: TeamMemberAdded) -> None:
        await self.notify(
            NotificationType.TEAM_INVITE,
            event.user_id,
            TEAM_INVITE_TITLE,
            f'{event.actor.display_name} invited you to join team: "{event.team_name}"',
        )


def list_notifications(
    session: Session,
    user_id: uuid.UUID,
    *,
    limit: int,
    offset: int = 0,
    unread_only: bool = False,
) -> tuple[list[Notification], int]:
    conditions = [Notification.user_id == user_id]
    if unread_only:
        conditions.append(Notification.is_read.is_(False))

    total = session.execute(select(func.count()).select_from(Notification).where(*conditions)).scalar_one()
    stmt = (
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(session.execute(stmt).scalars().all()), int(total)


def count_unread(session: Session, user_id: uuid.UUID) -> int:
    stmt = select(func.count()).select_from(Notification).where(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    )
    return int(session.execute(stmt).scalar_one())


def mark_read(session: Session, user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification | None:
    """Flip one notification to read; ``None`` when it does not exist or belongs to someone else."""
    stmt = select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    notification = session.execute(stmt).scalar_one_or_none()
    if notification is None:
        return None
    if not notification.is_read:
        notification.is_read = True
        session.commit()
        session.refresh(notification)
    return notification


def mark_all_read(session: Session, user_id: uuid.UUID) -> int:
    stmt = (
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    session.commit()
    return int(result.rowcount or 0)


__all__ = [
    "NotificationPipeline",
    "count_unread",
    "list_notifications",
    "mark_all_read",
    "mark_read",
    "serialize_notification",
    "unique_recipients",
]
