"""Websocket transport for the realtime channels.

A client connects to ``/ws`` with its access token (``?token=`` or an
``Authorization: Bearer`` header) and is subscribed to its own ``user:<id>``
channel straight away. It then asks to join rooms:

* ``join-user-room`` with its own user id, which re-joins the user channel;
* ``join-project`` with a project id, for task/comment/label events of a
  project it is a member of;
* ``leave-project`` to stop receiving a project's events.

Every frame in either direction is ``{"event": ..., "data": ...}``. Joins and
leaves are acknowledged with ``room-joined`` / ``room-left``; refused requests
get an ``error`` frame and the connection stays open.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from devsync.core.authz import PROJECT_NOT_FOUND, find_project_membership
from devsync.core.policy import can_join_user_room
from devsync.core.security import InvalidTokenError, user_id_from_token
from devsync.db import session as session_module
from devsync.logging import bind_log_context, get_logger
from devsync.models.project import Project
from devsync.models.user import User
from devsync.realtime.channels import ClientEvent, ServerEvent, project_channel, user_channel
from devsync.realtime.registry import ConnectionRegistry, WebSocketConnection

router = APIRouter(tags=["realtime"])
logger = get_logger()

UNAUTHORIZED_CLOSE_CODE = 4401


class SubscriptionError(Exception):
    def __init__(self, close_code: int, message: str) -> None:
        super().__init__(message)
        self.close_code = close_code
        self.message = message


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    header_token = _normalize_token(websocket.headers.get("authorization"))
    query_token = _normalize_token(websocket.query_params.get("token"))
    session = session_module.open_session()
    try:
        user_id = _authenticate(header_token or query_token, session)
    except SubscriptionError as exc:
        logger.info("realtime_rejected", reason=exc.message, close_code=exc.close_code)
        await websocket.close(code=exc.close_code, reason=exc.message)
        return
    finally:
        session.close()

    registry: ConnectionRegistry = websocket.app.state.registry
    await websocket.accept()
    connection = WebSocketConnection(websocket, user_id)
    registry.join(connection, user_channel(user_id))
    bind_log_context(user_id=user_id, connection_id=connection.connection_id)
    logger.info("realtime_connected")

    try:
        while True:
            raw = await websocket.receive_text()
            await _dispatch(registry, connection, raw)
    except WebSocketDisconnect:
        pass
    finally:
        channels = registry.disconnect(connection)
        logger.info("realtime_disconnected", channels=sorted(channels))


async def _dispatch(registry: ConnectionRegistry, connection: WebSocketConnection, raw: str) -> None:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        await _send_error(connection, None, "Messages must be JSON objects")
        return
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        await _send_error(connection, None, "Messages must carry an event name")
        return

    event = message["event"]
    data = message.get("data")
    if event == ClientEvent.JOIN_USER_ROOM.value:
        await _join_user_room(registry, connection, data)
    elif event == ClientEvent.JOIN_PROJECT.value:
        await _join_project(registry, connection, data)
    elif event == ClientEvent.LEAVE_PROJECT.value:
        await _leave_project(registry, connection, data)
    elif event == ClientEvent.PING.value:
        await connection.send(ServerEvent.PONG.value, data if data is not None else {})
    else:
        await _send_error(connection, event, f"Unknown event '{event}'")


async def _join_user_room(registry: ConnectionRegistry, connection: WebSocketConnection, data: Any) -> None:
    requested = _parse_id(data, "userId")
    if requested is None or not can_join_user_room(connection.user_id, requested):
        logger.warning("realtime_user_room_denied", requested_user_id=str(requested) if requested else None)
        await _send_error(connection, ClientEvent.JOIN_USER_ROOM.value, "You can only join your own user room")
        return
    channel = user_channel(requested)
    registry.join(connection, channel)
    await connection.send(ServerEvent.ROOM_JOINED.value, {"room": channel})


async def _join_project(registry: ConnectionRegistry, connection: WebSocketConnection, data: Any) -> None:
    project_id = _parse_id(data, "projectId")
    if project_id is None or not _is_project_member(project_id, connection.user_id):
        logger.warning("realtime_project_join_denied", project_id=str(project_id) if project_id else None)
        await _send_error(connection, ClientEvent.JOIN_PROJECT.value, PROJECT_NOT_FOUND)
        return
    channel = project_channel(project_id)
    registry.join(connection, channel)
    await connection.send(ServerEvent.ROOM_JOINED.value, {"room": channel})


async def _leave_project(registry: ConnectionRegistry, connection: WebSocketConnection, data: Any) -> None:
    project_id = _parse_id(data, "projectId")
    if project_id is None:
        await _send_error(connection, ClientEvent.LEAVE_PROJECT.value, "A project id is required")
        return
    channel = project_channel(project_id)
    registry.leave(connection, channel)
    await connection.send(ServerEvent.ROOM_LEFT.value, {"room": channel})


async def _send_error(connection: WebSocketConnection, event: str | None, message: str) -> None:
    await connection.send(ServerEvent.ERROR.value, {"event": event, "message": message})


def _is_project_member(project_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    session = session_module.open_session()
    try:
        if session.get(Project, project_id) is None:
            return False
        return find_project_membership(session, project_id, user_id) is not None
    finally:
        session.close()


def _authenticate(token: str | None, session: Session) -> uuid.UUID:
    if not token:
        raise SubscriptionError(UNAUTHORIZED_CLOSE_CODE, "Authentication token is required")
    try:
        user_id = user_id_from_token(token)
    except InvalidTokenError as exc:
        raise SubscriptionError(UNAUTHORIZED_CLOSE_CODE, "Invalid authentication token") from exc
    if session.get(User, user_id) is None:
        raise SubscriptionError(UNAUTHORIZED_CLOSE_CODE, "Authentication credentials are no longer valid")
    return user_id


def _parse_id(data: Any, key: str) -> uuid.UUID | None:
    """Accept either a bare id or ``{key: id}`` as the event data."""
    raw = data.get(key) if isinstance(data, dict) else data
    if raw is None:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def _normalize_token(raw: str | None) -> str | None:
    if not raw:
        return None
    value = raw.strip()
    if not value:
        return None
    if value.lower().startswith("bearer "):
        value = value[7:]
    return value.strip() or None


__all__ = ["UNAUTHORIZED_CLOSE_CODE", "SubscriptionError", "router"]
