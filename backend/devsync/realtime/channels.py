from __future__ import annotations

import enum
import uuid

PROJECT_CHANNEL_PREFIX = "project"
USER_CHANNEL_PREFIX = "user"


class ServerEvent(str, enum.Enum):
    TASK_CREATED = "task-created"
    TASK_UPDATED = "task-updated"
    TASK_DELETED = "task-deleted"
    COMMENT_ADDED = "comment-added"
    COMMENT_UPDATED = "comment-updated"
    COMMENT_DELETED = "comment-deleted"
    LABEL_CREATED = "label-created"
    LABEL_DELETED = "label-deleted"
    TASK_LABEL_ASSIGNED = "task-label-assigned"
    TASK_LABEL_REMOVED = "task-label-removed"
    NOTIFICATION = "notification"
    ROOM_JOINED = "room-joined"
    ROOM_LEFT = "room-left"
    PONG = "pong"
    ERROR = "error"


class ClientEvent(str, enum.Enum):
    JOIN_USER_ROOM = "join-user-room"
    JOIN_PROJECT = "join-project"
    LEAVE_PROJECT = "leave-project"
    PING = "ping"


def project_channel(project_id: uuid.UUID | str) -> str:
    return f"{PROJECT_CHANNEL_PREFIX}:{project_id}"


def user_channel(user_id: uuid.UUID | str) -> str:
    return f"{USER_CHANNEL_PREFIX}:{user_id}"


def envelope(event: str, payload: object) -> dict[str, object]:
    """Wire frame shared by both directions of the websocket."""
    return {"event": event, "data": payload}
