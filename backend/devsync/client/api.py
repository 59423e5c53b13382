from __future__ import annotations

import uuid
from typing import Any

import httpx

from devsync.core.config import get_settings
from devsync.logging import get_logger

_logger = get_logger().bind(component="api_client")


class ApiError(RuntimeError):
    """Raised when the API answers with a failure envelope or a non-2xx status."""

    def __init__(self, status_code: int, code: str | None, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def build_http_client(base_url: str | None = None) -> httpx.Client:
    settings = get_settings()
    timeout = httpx.Timeout(
        settings.httpx_read_timeout,
        connect=settings.httpx_connect_timeout,
    )
    return httpx.Client(base_url=base_url or settings.api_base_url, timeout=timeout, follow_redirects=True)


class DevSyncApiClient:
    """Thin wrapper over the JSON API used by the client to re-fetch state.

    Any ``httpx.Client`` works, including FastAPI's ``TestClient``.
    """

    def __init__(self, http_client: httpx.Client, token: str | None = None, *, api_prefix: str = "/api") -> None:
        self.http_client = http_client
        self.token = token
        self.api_prefix = api_prefix.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _request(self, method: str, path: str, *, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.api_prefix}{path}"
        cleaned = {key: value for key, value in (params or {}).items() if value is not None}
        response = self.http_client.request(method, url, params=cleaned or None, headers=self._headers())
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error or not isinstance(payload, dict) or not payload.get("success", False):
            code = payload.get("code") if isinstance(payload, dict) else None
            message = payload.get("message") if isinstance(payload, dict) else response.text
            _logger.warning("api_request_failed", method=method, path=url, status=response.status_code, code=code)
            raise ApiError(response.status_code, code, message or "Request failed")
        return payload.get("data")

    def list_project_tasks(self, project_id: uuid.UUID | str, **filters: Any) -> list[dict[str, Any]]:
        return self._request("GET", f"/projects/{project_id}/tasks", params=filters)

    def get_task(self, task_id: uuid.UUID | str) -> dict[str, Any]:
        return self._request("GET", f"/tasks/{task_id}")

    def list_task_comments(self, task_id: uuid.UUID | str) -> list[dict[str, Any]]:
        return self._request("GET", f"/tasks/{task_id}/comments")

    def list_notifications(self, *, limit: int | None = None, offset: int = 0, unread_only: bool = False) -> dict[str, Any]:
        params = {"limit": limit, "offset": offset, "unreadOnly": "true" if unread_only else None}
        return self._request("GET", "/notifications", params=params)

    def unread_count(self) -> int:
        data = self._request("GET", "/notifications/unread-count")
        return int(data["unreadCount"])


def connect(token: str, base_url: str | None = None) -> DevSyncApiClient:
    return DevSyncApiClient(build_http_client(base_url), token)


__all__ = ["ApiError", "DevSyncApiClient", "build_http_client", "connect"]
