from __future__ import annotations

from datetime import datetime
from uuid import UUID

from devsync.models.notification import NotificationType
from devsync.schemas.common import ORMModel


class NotificationRead(ORMModel):
    id: UUID
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    project_id: UUID | None = None
    is_read: bool
    created_at: datetime


class NotificationPage(ORMModel):
    notifications: list[NotificationRead]
    total_count: int
    has_more: bool
