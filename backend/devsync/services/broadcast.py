from __future__ import annotations

from typing import Any, Callable

from devsync.logging import get_logger
from devsync.realtime.channels import ServerEvent, project_channel
from devsync.realtime.registry import ConnectionRegistry
from devsync.services.events import (
    CommentAdded,
    CommentDeleted,
    CommentUpdated,
    DomainEvent,
    LabelCreated,
    LabelDeleted,
    ProjectEvent,
    ProjectMemberRemoved,
    TaskCreated,
    TaskDeleted,
    TaskLabelAssigned,
    TaskLabelRemoved,
    TaskUpdated,
)

logger = get_logger().bind(component="project_broadcaster")

PayloadBuilder = Callable[[Any], dict[str, Any]]


def _task_created(event: TaskCreated) -> dict[str, Any]:
    return {"task": event.task, "createdBy": event.actor.as_payload()}


def _task_updated(event: TaskUpdated) -> dict[str, Any]:
    return {"task": event.task, "updatedBy": event.actor.as_payload(), "changedFields": list(event.changed_fields)}


def _task_deleted(event: TaskDeleted) -> dict[str, Any]:
    return {"taskId": str(event.task_id), "deletedBy": event.actor.as_payload()}


def _comment_added(event: CommentAdded) -> dict[str, Any]:
    return {
        "comment": event.comment,
        "task": {"id": str(event.task_id), "title": event.task_title},
        "addedBy": event.actor.as_payload(),
    }


def _comment_updated(event: CommentUpdated) -> dict[str, Any]:
    return {"comment": event.comment, "taskId": str(event.task_id), "updatedBy": event.actor.as_payload()}


def _comment_deleted(event: CommentDeleted) -> dict[str, Any]:
    return {"commentId": str(event.comment_id), "taskId": str(event.task_id), "deletedBy": event.actor.as_payload()}


def _label_created(event: LabelCreated) -> dict[str, Any]:
    return {"label": event.label, "createdBy": event.actor.as_payload()}


def _label_deleted(event: LabelDeleted) -> dict[str, Any]:
    return {"labelId": str(event.label_id), "deletedBy": event.actor.as_payload()}


def _task_label_assigned(event: TaskLabelAssigned) -> dict[str, Any]:
    return {"task": event.task, "label": event.label, "assignedBy": event.actor.as_payload()}


def _task_label_removed(event: TaskLabelRemoved) -> dict[str, Any]:
    return {"task": event.task, "labelId": str(event.label_id), "removedBy": event.actor.as_payload()}


PROJECT_EVENT_ROUTES: dict[type[ProjectEvent], tuple[ServerEvent, PayloadBuilder]] = {
    TaskCreated: (ServerEvent.TASK_CREATED, _task_created),
    TaskUpdated: (ServerEvent.TASK_UPDATED, _task_updated),
    TaskDeleted: (ServerEvent.TASK_DELETED, _task_deleted),
    CommentAdded: (ServerEvent.COMMENT_ADDED, _comment_added),
    CommentUpdated: (ServerEvent.COMMENT_UPDATED, _comment_updated),
    CommentDeleted: (ServerEvent.COMMENT_DELETED, _comment_deleted),
    LabelCreated: (ServerEvent.LABEL_CREATED, _label_created),
    LabelDeleted: (ServerEvent.LABEL_DELETED, _label_deleted),
    TaskLabelAssigned: (ServerEvent.TASK_LABEL_ASSIGNED, _task_label_assigned),
    TaskLabelRemoved: (ServerEvent.TASK_LABEL_REMOVED, _task_label_removed),
}


class ProjectBroadcaster:
    """Event bus subscriber that mirrors project events onto ``project:<id>`` channels."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def __call__(self, event: DomainEvent) -> None:
        if isinstance(event, ProjectMemberRemoved):
            await self._evict(event)
            return
        route = PROJECT_EVENT_ROUTES.get(type(event))
        if route is None or not isinstance(event, ProjectEvent):
            return
        server_event, build_payload = route
        payload = build_payload(event)
        payload["projectId"] = str(event.project_id)
        try:
            await self.registry.broadcast(project_channel(event.project_id), server_event.value, payload)
        except Exception:
            logger.exception("project_broadcast_failed", event_name=server_event.value, project_id=str(event.project_id))

    async def _evict(self, event: ProjectMemberRemoved) -> None:
        """Unsubscribe a removed member's live connections and tell each one it left the room."""
        channel = project_channel(event.project_id)
        evicted = self.registry.leave_user(event.user_id, channel)
        for connection in evicted:
            try:
                await connection.send(ServerEvent.ROOM_LEFT.value, {"room": channel})
            except Exception:
                logger.warning(
                    "room_left_send_failed",
                    channel=channel,
                    connection_id=connection.connection_id,
                    exc_info=True,
                )
        logger.info(
            "project_member_evicted",
            project_id=str(event.project_id),
            member_user_id=str(event.user_id),
            connections=len(evicted),
        )


__all__ = ["PROJECT_EVENT_ROUTES", "ProjectBroadcaster"]
