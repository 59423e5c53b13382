"""In-process channel registry for realtime fan-out.

The registry maps channel names (``project:<id>``, ``user:<id>``) to the
connections currently subscribed to them. Delivery is fire-and-forget: no
persistence, replay or acknowledgement. A connection whose send fails or times
out is logged and skipped so that one broken socket never blocks the others.

One registry instance is created per application and kept on ``app.state``.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from typing import Any, Protocol

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from devsync.logging import get_logger
from devsync.observability.metrics import record_broadcast, record_connection_closed, record_connection_opened
from devsync.realtime.channels import envelope

logger = get_logger().bind(component="realtime_registry")


class Connection(Protocol):
    connection_id: str
    user_id: uuid.UUID

    async def send(self, event: str, payload: Any) -> None:
        ...


class WebSocketConnection:
    """A registered websocket together with the user it authenticated as."""

    def __init__(self, websocket: WebSocket, user_id: uuid.UUID) -> None:
        self.websocket = websocket
        self.user_id = user_id
        self.connection_id = uuid.uuid4().hex
        self._send_lock = asyncio.Lock()

    async def send(self, event: str, payload: Any) -> None:
        # Serialise writes so frames on a single socket keep emission order.
        async with self._send_lock:
            await self.websocket.send_json(envelope(event, payload))

    def __repr__(self) -> str:
        return f"WebSocketConnection(id={self.connection_id!r}, user_id={self.user_id!s})"


class ConnectionRegistry:
    def __init__(self, *, send_timeout: float | None = None) -> None:
        self._send_timeout = send_timeout
        self._channels: dict[str, set[Connection]] = defaultdict(set)
        self._subscriptions: dict[Connection, set[str]] = {}

    def register(self, connection: Connection) -> None:
        if connection not in self._subscriptions:
            self._subscriptions[connection] = set()
            record_connection_opened()

    def join(self, connection: Connection, channel: str) -> None:
        self.register(connection)
        self._channels[channel].add(connection)
        self._subscriptions[connection].add(channel)
        logger.debug("realtime_channel_joined", channel=channel, connection_id=connection.connection_id)

    def leave(self, connection: Connection, channel: str) -> None:
        members = self._channels.get(channel)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._channels[channel]
        subscriptions = self._subscriptions.get(connection)
        if subscriptions is not None:
            subscriptions.discard(channel)
        logger.debug("realtime_channel_left", channel=channel, connection_id=connection.connection_id)

    def leave_user(self, user_id: uuid.UUID, channel: str) -> tuple[Connection, ...]:
        """Remove every connection of ``user_id`` from ``channel`` and return them."""
        removed = tuple(connection for connection in self.members(channel) if connection.user_id == user_id)
        for connection in removed:
            self.leave(connection, channel)
        return removed

    def disconnect(self, connection: Connection) -> set[str]:
        """Drop a connection from every channel it joined and return those channels."""
        channels = self._subscriptions.pop(connection, None)
        if channels is None:
            return set()
        for channel in channels:
            members = self._channels.get(channel)
            if members is None:
                continue
            members.discard(connection)
            if not members:
                del self._channels[channel]
        record_connection_closed()
        return channels

    def channels_for(self, connection: Connection) -> frozenset[str]:
        return frozenset(self._subscriptions.get(connection, ()))

    def members(self, channel: str) -> tuple[Connection, ...]:
        return tuple(self._channels.get(channel, ()))

    def connections(self) -> tuple[Connection, ...]:
        return tuple(self._subscriptions)

    @property
    def connection_count(self) -> int:
        return len(self._subscriptions)

    def is_subscribed(self, connection: Connection, channel: str) -> bool:
        return channel in self._subscriptions.get(connection, ())

    async def broadcast(self, channel: str, event: str, payload: Any) -> int:
        """Send ``event`` to every connection on ``channel``; return how many sends succeeded."""
        recipients = self.members(channel)
        if not recipients:
            record_broadcast(channel, event)
            return 0

        data = jsonable_encoder(payload, by_alias=True)
        delivered = 0
        failures = 0
        for connection in recipients:
            try:
                await self._send(connection, event, data)
            except Exception:
                failures += 1
                logger.warning(
                    "broadcast_send_failed",
                    channel=channel,
                    event_name=event,
                    connection_id=connection.connection_id,
                    exc_info=True,
                )
                continue
            delivered += 1

        record_broadcast(channel, event, failures=failures)
        logger.info("broadcast_sent", channel=channel, event_name=event, delivered=delivered, failed=failures)
        return delivered

    def clear(self) -> None:
        for connection in self.connections():
            self.disconnect(connection)

    async def _send(self, connection: Connection, event: str, data: Any) -> None:
        if self._send_timeout is None:
            await connection.send(event, data)
            return
        await asyncio.wait_for(connection.send(event, data), timeout=self._send_timeout)


__all__ = ["Connection", "ConnectionRegistry", "WebSocketConnection"]
