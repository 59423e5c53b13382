from __future__ import annotations

from fastapi import Request

from devsync.services.events import EventBus


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus
