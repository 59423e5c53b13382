from __future__ import annotations

import time

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from sqlalchemy import event
from sqlalchemy.engine import Engine
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from devsync.core.config import get_settings

_settings = get_settings()
_NAMESPACE = _settings.metrics_namespace

_REQUEST_LABELS = ("method", "endpoint", "status")
_IN_PROGRESS_LABELS = ("method", "endpoint")
_BROADCAST_LABELS = ("channel_kind", "event")

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total number of HTTP requests handled by FastAPI",
    _REQUEST_LABELS,
    namespace=_NAMESPACE,
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Latency for FastAPI HTTP requests",
    _REQUEST_LABELS,
    namespace=_NAMESPACE,
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
REQUEST_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Currently active FastAPI HTTP requests",
    _IN_PROGRESS_LABELS,
    namespace=_NAMESPACE,
)
DB_QUERY_DURATION = Histogram(
    "db_query_duration_seconds",
    "SQLAlchemy database query latency",
    ("operation",),
    namespace=_NAMESPACE,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5),
)
REALTIME_CONNECTIONS = Gauge(
    "realtime_connections",
    "Websocket connections currently registered",
    namespace=_NAMESPACE,
)
REALTIME_BROADCASTS = Counter(
    "realtime_broadcasts_total",
    "Events broadcast to realtime channels",
    _BROADCAST_LABELS,
    namespace=_NAMESPACE,
)
REALTIME_SEND_FAILURES = Counter(
    "realtime_send_failures_total",
    "Per-connection sends that raised or timed out",
    _BROADCAST_LABELS,
    namespace=_NAMESPACE,
)
NOTIFICATIONS_CREATED = Counter(
    "notifications_created_total",
    "Notifications persisted by the notification pipeline",
    ("type",),
    namespace=_NAMESPACE,
)
NOTIFICATIONS_FAILED = Counter(
    "notifications_failed_total",
    "Notification persistence or push failures",
    ("stage",),
    namespace=_NAMESPACE,
)


def _metrics_enabled() -> bool:
    return get_settings().metrics_enabled


def _normalize_endpoint(path: str) -> str:
    candidate = path or "unknown"
    return candidate if len(candidate) <= 120 else f"{candidate[:117]}..."


def _channel_kind(channel: str) -> str:
    kind, _, _ = channel.partition(":")
    return kind or "unknown"


def _classify_db_operation(statement: str) -> str:
    first = (statement or "").lstrip().split(" ", 1)[0].upper()
    if first in {"SELECT", "INSERT", "UPDATE", "DELETE", "COMMIT", "ROLLBACK"}:
        return first
    return "OTHER"


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        if not _metrics_enabled() or request.url.path.startswith("/metrics"):
            return await call_next(request)

        start = time.perf_counter()
        route = request.scope.get("route")
        endpoint = _normalize_endpoint(getattr(route, "path", None) or request.url.path)
        method = request.method.upper()

        REQUEST_IN_PROGRESS.labels(method=method, endpoint=endpoint).inc()
        status_label = "500"
        try:
            response = await call_next(request)
            status_label = str(response.status_code)
            return response
        finally:
            duration = time.perf_counter() - start
            REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status_label).inc()
            REQUEST_LATENCY.labels(method=method, endpoint=endpoint, status=status_label).observe(duration)
            REQUEST_IN_PROGRESS.labels(method=method, endpoint=endpoint).dec()


def record_connection_opened() -> None:
    if not _metrics_enabled():
        return
    REALTIME_CONNECTIONS.inc()


def record_connection_closed() -> None:
    if not _metrics_enabled():
        return
    REALTIME_CONNECTIONS.dec()


def record_broadcast(channel: str, event_name: str, *, failures: int = 0) -> None:
    if not _metrics_enabled():
        return
    labels = {"channel_kind": _channel_kind(channel), "event": event_name}
    REALTIME_BROADCASTS.labels(**labels).inc()
    if failures:
        REALTIME_SEND_FAILURES.labels(**labels).inc(failures)


def record_notification_created(notification_type: str) -> None:
    if not _metrics_enabled():
        return
    NOTIFICATIONS_CREATED.labels(type=notification_type).inc()


def record_notification_failed(stage: str) -> None:
    if not _metrics_enabled():
        return
    NOTIFICATIONS_FAILED.labels(stage=stage).inc()


def instrument_engine(engine: Engine) -> None:
    if getattr(engine, "_metrics_instrumented", False):
        return

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):  # type: ignore[override]
        if not _metrics_enabled():
            return
        stack = conn.info.setdefault("_metrics_query_start", [])
        stack.append((time.perf_counter(), _classify_db_operation(statement)))

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):  # type: ignore[override]
        stack = conn.info.get("_metrics_query_start")
        if not stack:
            return
        start, operation = stack.pop()
        DB_QUERY_DURATION.labels(operation=operation).observe(max(time.perf_counter() - start, 0.0))

    engine._metrics_instrumented = True  # type: ignore[attr-defined]


def metrics_response() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "MetricsMiddleware",
    "instrument_engine",
    "metrics_response",
    "record_broadcast",
    "record_connection_closed",
    "record_connection_opened",
    "record_notification_created",
    "record_notification_failed",
]
