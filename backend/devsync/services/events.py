"""Domain events and the in-process event bus.

Mutation handlers describe *what happened* by publishing one of the event
types below after their write has committed. Subscribers (project-channel
broadcast, notification pipeline) decide *who cares*. Subscribers run in
registration order; an exception raised by one is logged and does not reach
the publisher or the remaining subscribers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from devsync.logging import get_logger
from devsync.models.user import User

logger = get_logger().bind(component="event_bus")


@dataclass(frozen=True)
class Actor:
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(id=user.id, first_name=user.first_name, last_name=user.last_name, email=user.email)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def as_payload(self) -> dict[str, Any]:
        return {"id": str(self.id), "firstName": self.first_name, "lastName": self.last_name, "email": self.email}


@dataclass(frozen=True)
class DomainEvent:
    actor: Actor


@dataclass(frozen=True)
class ProjectEvent(DomainEvent):
    project_id: uuid.UUID


@dataclass(frozen=True)
class TaskCreated(ProjectEvent):
    task: dict[str, Any]


@dataclass(frozen=True)
class TaskUpdated(ProjectEvent):
    task: dict[str, Any]
    task_id: uuid.UUID
    title: str
    assignee_id: uuid.UUID | None
    assignee_changed: bool = False
    status_changed: bool = False
    changed_fields: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TaskAssigned(ProjectEvent):
    task_id: uuid.UUID
    title: str
    assignee_id: uuid.UUID


@dataclass(frozen=True)
class TaskDeleted(ProjectEvent):
    task_id: uuid.UUID


@dataclass(frozen=True)
class CommentAdded(ProjectEvent):
    comment: dict[str, Any]
    task_id: uuid.UUID
    task_title: str
    task_assignee_id: uuid.UUID | None
    task_creator_id: uuid.UUID


@dataclass(frozen=True)
class CommentUpdated(ProjectEvent):
    comment: dict[str, Any]
    task_id: uuid.UUID


@dataclass(frozen=True)
class CommentDeleted(ProjectEvent):
    comment_id: uuid.UUID
    task_id: uuid.UUID


@dataclass(frozen=True)
class LabelCreated(ProjectEvent):
    label: dict[str, Any]


@dataclass(frozen=True)
class LabelDeleted(ProjectEvent):
    label_id: uuid.UUID


@dataclass(frozen=True)
class TaskLabelAssigned(ProjectEvent):
    task: dict[str, Any]
    label: dict[str, Any]


@dataclass(frozen=True)
class TaskLabelRemoved(ProjectEvent):
    task: dict[str, Any]
    label_id: uuid.UUID


@dataclass(frozen=True)
class ProjectMemberAdded(ProjectEvent):
    user_id: uuid.UUID
    project_name: str


@dataclass(frozen=True)
class ProjectMemberRemoved(ProjectEvent):
    user_id: uuid.UUID


@dataclass(frozen=True)
class TeamMemberAdded(DomainEvent):
    team_id: uuid.UUID
    user_id: uuid.UUID
    team_name: str


Subscriber = Callable[[DomainEvent], Awaitable[None]]


def _subscriber_name(subscriber: Subscriber) -> str:
    name = getattr(subscriber, "__qualname__", None) or type(subscriber).__qualname__
    return str(name)


class EventBus:
    def __init__(self) -> None:
        self._subscribers: list[tuple[type[DomainEvent], Subscriber]] = []

    def subscribe(self, event_type: type[DomainEvent], subscriber: Subscriber) -> None:
        self._subscribers.append((event_type, subscriber))

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._subscribers = [entry for entry in self._subscribers if entry[1] is not subscriber]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: DomainEvent) -> None:
        event_name = type(event).__name__
        for event_type, subscriber in list(self._subscribers):
            if not isinstance(event, event_type):
                continue
            try:
                await subscriber(event)
            except Exception:
                logger.exception(
                    "event_subscriber_failed",
                    event_name=event_name,
                    subscriber=_subscriber_name(subscriber),
                )
        logger.debug("domain_event_published", event_name=event_name, actor_id=str(event.actor.id))


__all__ = [
    "Actor",
    "CommentAdded",
    "CommentDeleted",
    "CommentUpdated",
    "DomainEvent",
    "EventBus",
    "LabelCreated",
    "LabelDeleted",
    "ProjectEvent",
    "ProjectMemberAdded",
    "ProjectMemberRemoved",
    "Subscriber",
    "TaskAssigned",
    "TaskCreated",
    "TaskDeleted",
    "TaskLabelAssigned",
    "TaskLabelRemoved",
    "TaskUpdated",
    "TeamMemberAdded",
]
