"""Client-side reconciliation of realtime events.

``Reconciler`` keeps a local view (task lists per joined project, comments of
the open task, the notification inbox) consistent with the server. It never
patches that view from event payloads: each event only says which collection
is stale, and the collection is re-fetched over HTTP. Every event except the
caller's own actions also produces a toast.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from devsync.client.api import ApiError, DevSyncApiClient
from devsync.logging import get_logger
from devsync.realtime.channels import PROJECT_CHANNEL_PREFIX, ClientEvent, ServerEvent

_logger = get_logger().bind(component="reconciler")

ACTOR_KEYS = ("createdBy", "updatedBy", "deletedBy", "addedBy", "assignedBy", "removedBy")

TASK_EVENTS = frozenset(
    {
        ServerEvent.TASK_CREATED.value,
        ServerEvent.TASK_UPDATED.value,
        ServerEvent.TASK_DELETED.value,
        ServerEvent.TASK_LABEL_ASSIGNED.value,
        ServerEvent.TASK_LABEL_REMOVED.value,
    }
)
COMMENT_EVENTS = frozenset(
    {
        ServerEvent.COMMENT_ADDED.value,
        ServerEvent.COMMENT_UPDATED.value,
        ServerEvent.COMMENT_DELETED.value,
    }
)
LABEL_EVENTS = frozenset({ServerEvent.LABEL_CREATED.value, ServerEvent.LABEL_DELETED.value})
# Re-fetch failures with these statuses mean the caller lost access.
LOST_ACCESS_STATUSES = frozenset({403, 404})


class Transport(Protocol):
    def send_json(self, data: Any) -> None:
        ...


@dataclass(frozen=True)
class Toast:
    event: str
    message: str


@dataclass
class ClientState:
    tasks: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    comments: list[dict[str, Any]] = field(default_factory=list)
    notifications: list[dict[str, Any]] = field(default_factory=list)
    unread_count: int = 0


def actor_of(data: dict[str, Any]) -> dict[str, Any] | None:
    for key in ACTOR_KEYS:
        actor = data.get(key)
        if isinstance(actor, dict):
            return actor
    return None


def _actor_name(actor: dict[str, Any] | None) -> str:
    if not actor:
        return "Someone"
    name = f"{actor.get('firstName', '')} {actor.get('lastName', '')}".strip()
    return name or actor.get("email") or "Someone"


def _toast_message(event: str, data: dict[str, Any]) -> str:
    name = _actor_name(actor_of(data))
    task = data.get("task") if isinstance(data.get("task"), dict) else {}
    label = data.get("label") if isinstance(data.get("label"), dict) else {}
    if event == ServerEvent.TASK_CREATED.value:
        return f'{name} created task "{task.get("title", "")}"'
    if event == ServerEvent.TASK_UPDATED.value:
        return f'{name} updated task "{task.get("title", "")}"'
    if event == ServerEvent.TASK_DELETED.value:
        return f"{name} deleted a task"
    if event == ServerEvent.COMMENT_ADDED.value:
        return f'{name} commented on "{task.get("title", "")}"'
    if event == ServerEvent.COMMENT_UPDATED.value:
        return f"{name} edited a comment"
    if event == ServerEvent.COMMENT_DELETED.value:
        return f"{name} deleted a comment"
    if event == ServerEvent.LABEL_CREATED.value:
        return f'{name} created label "{label.get("name", "")}"'
    if event == ServerEvent.LABEL_DELETED.value:
        return f"{name} deleted a label"
    if event == ServerEvent.TASK_LABEL_ASSIGNED.value:
        return f'{name} added label "{label.get("name", "")}" to "{task.get("title", "")}"'
    if event == ServerEvent.TASK_LABEL_REMOVED.value:
        return f'{name} removed a label from "{task.get("title", "")}"'
    return event


class Reconciler:
    def __init__(
        self,
        api: DevSyncApiClient,
        user_id: uuid.UUID | str,
        *,
        transport: Transport | None = None,
        toast: Callable[[Toast], None] | None = None,
    ) -> None:
        self.api = api
        self.user_id = str(user_id)
        self.transport = transport
        self.toast = toast
        self.state = ClientState()
        self.joined_projects: list[str] = []
        self.open_task_id: str | None = None

    def attach(self, transport: Transport) -> None:
        self.transport = transport
        self.on_connected()

    def on_connected(self) -> None:
        """Re-announce every room after a (re)connect; the server keeps no subscriptions."""
        self._send(ClientEvent.JOIN_USER_ROOM.value, {"userId": self.user_id})
        for project_id in self.joined_projects:
            self._send(ClientEvent.JOIN_PROJECT.value, {"projectId": project_id})

    def join_project(self, project_id: uuid.UUID | str) -> None:
        key = str(project_id)
        if key not in self.joined_projects:
            self.joined_projects.append(key)
        self._send(ClientEvent.JOIN_PROJECT.value, {"projectId": key})
        self.refresh_tasks(key)

    def leave_project(self, project_id: uuid.UUID | str) -> None:
        key = str(project_id)
        if key in self.joined_projects:
            self.joined_projects.remove(key)
        self.state.tasks.pop(key, None)
        self._send(ClientEvent.LEAVE_PROJECT.value, {"projectId": key})

    def open_task(self, task_id: uuid.UUID | str) -> None:
        self.open_task_id = str(task_id)
        self.refresh_comments()

    def close_task(self) -> None:
        self.open_task_id = None
        self.state.comments = []

    def refresh_tasks(self, project_id: str) -> None:
        self.state.tasks[project_id] = self.api.list_project_tasks(project_id)

    def refresh_comments(self) -> None:
        if self.open_task_id is None:
            return
        self.state.comments = self.api.list_task_comments(self.open_task_id)

    def refresh_notifications(self) -> None:
        page = self.api.list_notifications()
        self.state.notifications = page["notifications"]
        self.state.unread_count = self.api.unread_count()

    def handle_message(self, message: dict[str, Any]) -> None:
        event = message.get("event")
        data = message.get("data") or {}
        if not isinstance(event, str) or not isinstance(data, dict):
            _logger.warning("realtime_message_ignored")
            return

        if event == ServerEvent.NOTIFICATION.value:
            self._refetch("notifications", self.refresh_notifications)
            notification = data.get("notification") or {}
            self._emit_toast(event, notification.get("message") or notification.get("title") or "New notification")
            return

        if event == ServerEvent.ERROR.value:
            _logger.warning("realtime_server_error", detail=data.get("message"), source_event=data.get("event"))
            return

        if event == ServerEvent.ROOM_LEFT.value:
            # The server also sends this when it evicts a removed member.
            prefix, _, project_id = str(data.get("room", "")).partition(":")
            if prefix == PROJECT_CHANNEL_PREFIX and project_id:
                self._forget_project(project_id)
            return

        if event in TASK_EVENTS:
            project_id = data.get("projectId")
            if project_id in self.joined_projects:
                if not self._refetch("tasks", lambda: self.refresh_tasks(project_id), project_id=project_id):
                    return
        elif event in COMMENT_EVENTS:
            if self.open_task_id is not None and self._comment_task_id(data) == self.open_task_id:
                if not self._refetch("comments", self.refresh_comments, project_id=data.get("projectId")):
                    return
        elif event not in LABEL_EVENTS:
            return

        actor = actor_of(data)
        if actor is not None and str(actor.get("id")) == self.user_id:
            return
        self._emit_toast(event, _toast_message(event, data))

    def _refetch(self, collection: str, refetch: Callable[[], None], *, project_id: str | None = None) -> bool:
        """Run a re-fetch; return False when it showed the caller lost access."""
        try:
            refetch()
        except ApiError as exc:
            _logger.warning(
                "reconcile_refetch_failed",
                collection=collection,
                project_id=project_id,
                status_code=exc.status_code,
                error_code=exc.code,
            )
            if exc.status_code not in LOST_ACCESS_STATUSES:
                return True
            if collection == "tasks" and project_id is not None:
                self._forget_project(project_id)
            elif collection == "comments":
                self.close_task()
            return False
        return True

    def _forget_project(self, project_id: str) -> None:
        if project_id in self.joined_projects:
            self.joined_projects.remove(project_id)
        self.state.tasks.pop(project_id, None)

    @staticmethod
    def _comment_task_id(data: dict[str, Any]) -> str | None:
        if data.get("taskId"):
            return str(data["taskId"])
        task = data.get("task")
        if isinstance(task, dict) and task.get("id"):
            return str(task["id"])
        comment = data.get("comment")
        if isinstance(comment, dict) and comment.get("taskId"):
            return str(comment["taskId"])
        return None

    def _emit_toast(self, event: str, message: str) -> None:
        if self.toast is not None:
            self.toast(Toast(event=event, message=message))

    def _send(self, event: str, data: Any) -> None:
        if self.transport is None:
            return
        self.transport.send_json({"event": event, "data": data})


__all__ = ["ACTOR_KEYS", "ClientState", "Reconciler", "Toast", "Transport", "actor_of"]
