from __future__ import annotations

from typing import Any

import httpx
import pytest

from devsync.client.api import ApiError, DevSyncApiClient, connect
from devsync.client.reconciler import Reconciler, Toast, actor_of

ME = "11111111-1111-1111-1111-111111111111"
PROJECT = "22222222-2222-2222-2222-222222222222"
OTHER_PROJECT = "33333333-3333-3333-3333-333333333333"
TASK = "44444444-4444-4444-4444-444444444444"

ANN = {"id": "55555555-5555-5555-5555-555555555555", "firstName": "Ann", "lastName": "Admin", "email": "ann@example.com"}
SELF = {"id": ME, "firstName": "Bob", "lastName": "Builder", "email": "bob@example.com"}


class FakeApi:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []
        self.tasks: dict[str, list[dict[str, Any]]] = {}
        self.comments: dict[str, list[dict[str, Any]]] = {}
        self.inbox: list[dict[str, Any]] = []

    def list_project_tasks(self, project_id: str) -> list[dict[str, Any]]:
        self.calls.append(("tasks", project_id))
        return list(self.tasks.get(project_id, []))

    def list_task_comments(self, task_id: str) -> list[dict[str, Any]]:
        self.calls.append(("comments", task_id))
        return list(self.comments.get(task_id, []))

    def list_notifications(self) -> dict[str, Any]:
        self.calls.append(("notifications", None))
        return {"notifications": list(self.inbox), "totalCount": len(self.inbox), "hasMore": False}

    def unread_count(self) -> int:
        self.calls.append(("unread", None))
        return sum(1 for item in self.inbox if not item.get("isRead"))


class RecordingTransport:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    def send_json(self, data: Any) -> None:
        self.sent.append(data)


@pytest.fixture()
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture()
def toasts() -> list[Toast]:
    return []


@pytest.fixture()
def reconciler(api: FakeApi, toasts: list[Toast]) -> Reconciler:
    return Reconciler(api, ME, toast=toasts.append)  # type: ignore[arg-type]


def test_attach_joins_user_room(reconciler: Reconciler) -> None:
    transport = RecordingTransport()
    reconciler.attach(transport)
    assert transport.sent == [{"event": "join-user-room", "data": {"userId": ME}}]


def test_reconnect_replays_joined_projects(reconciler: Reconciler) -> None:
    first = RecordingTransport()
    reconciler.attach(first)
    reconciler.join_project(PROJECT)
    reconciler.join_project(OTHER_PROJECT)
    reconciler.leave_project(OTHER_PROJECT)

    second = RecordingTransport()
    reconciler.attach(second)

    assert [message["event"] for message in first.sent] == [
        "join-user-room",
        "join-project",
        "join-project",
        "leave-project",
    ]
    assert second.sent == [
        {"event": "join-user-room", "data": {"userId": ME}},
        {"event": "join-project", "data": {"projectId": PROJECT}},
    ]


def test_task_event_refetches_joined_project(reconciler: Reconciler, api: FakeApi, toasts: list[Toast]) -> None:
    reconciler.join_project(PROJECT)
    api.tasks[PROJECT] = [{"id": TASK, "title": "Ship it", "status": "DONE"}]

    reconciler.handle_message(
        {
            "event": "task-updated",
            "data": {"task": {"id": TASK, "title": "Ship it", "status": "DONE"}, "updatedBy": ANN, "projectId": PROJECT},
        }
    )

    assert reconciler.state.tasks[PROJECT] == [{"id": TASK, "title": "Ship it", "status": "DONE"}]
    assert api.calls == [("tasks", PROJECT), ("tasks", PROJECT)]
    assert toasts == [Toast(event="task-updated", message='Ann Admin updated task "Ship it"')]


def test_events_for_other_projects_do_not_refetch(reconciler: Reconciler, api: FakeApi) -> None:
    reconciler.join_project(PROJECT)
    api.calls.clear()

    reconciler.handle_message(
        {"event": "task-deleted", "data": {"taskId": TASK, "deletedBy": ANN, "projectId": OTHER_PROJECT}}
    )

    assert api.calls == []


def test_own_actions_refresh_without_toast(reconciler: Reconciler, api: FakeApi, toasts: list[Toast]) -> None:
    reconciler.join_project(PROJECT)
    api.calls.clear()

    reconciler.handle_message(
        {"event": "task-created", "data": {"task": {"id": TASK, "title": "Mine"}, "createdBy": SELF, "projectId": PROJECT}}
    )

    assert api.calls == [("tasks", PROJECT)]
    assert toasts == []


def test_comment_events_refetch_open_task_only(reconciler: Reconciler, api: FakeApi, toasts: list[Toast]) -> None:
    reconciler.open_task(TASK)
    api.comments[TASK] = [{"id": "c1", "content": "Looks good"}]

    reconciler.handle_message(
        {
            "event": "comment-added",
            "data": {
                "comment": {"id": "c1", "taskId": TASK},
                "task": {"id": TASK, "title": "Ship it"},
                "addedBy": ANN,
                "projectId": PROJECT,
            },
        }
    )
    reconciler.handle_message(
        {
            "event": "comment-deleted",
            "data": {"commentId": "c9", "taskId": "elsewhere", "deletedBy": ANN, "projectId": PROJECT},
        }
    )

    assert reconciler.state.comments == [{"id": "c1", "content": "Looks good"}]
    assert api.calls == [("comments", TASK), ("comments", TASK)]
    assert [toast.message for toast in toasts] == ['Ann Admin commented on "Ship it"', "Ann Admin deleted a comment"]


def test_label_events_only_toast(reconciler: Reconciler, api: FakeApi, toasts: list[Toast]) -> None:
    reconciler.join_project(PROJECT)
    api.calls.clear()

    reconciler.handle_message(
        {"event": "label-created", "data": {"label": {"name": "bug"}, "createdBy": ANN, "projectId": PROJECT}}
    )

    assert api.calls == []
    assert toasts == [Toast(event="label-created", message='Ann Admin created label "bug"')]


def test_notification_refreshes_inbox(reconciler: Reconciler, api: FakeApi, toasts: list[Toast]) -> None:
    api.inbox = [{"id": "n1", "message": "Ann Admin assigned you a task", "isRead": False}]

    reconciler.handle_message(
        {"event": "notification", "data": {"notification": {"id": "n1", "message": "Ann Admin assigned you a task"}}}
    )

    assert reconciler.state.notifications == api.inbox
    assert reconciler.state.unread_count == 1
    assert toasts == [Toast(event="notification", message="Ann Admin assigned you a task")]


def test_unknown_and_error_frames_are_ignored(reconciler: Reconciler, api: FakeApi, toasts: list[Toast]) -> None:
    reconciler.handle_message({"event": "error", "data": {"event": "join-project", "message": "denied"}})
    reconciler.handle_message({"event": "room-joined", "data": {"room": f"project:{PROJECT}"}})
    reconciler.handle_message({"data": {}})

    assert api.calls == []
    assert toasts == []


def test_actor_of_picks_first_actor_key() -> None:
    assert actor_of({"removedBy": ANN, "task": {}}) == ANN
    assert actor_of({"task": {}}) is None


def test_api_client_unwraps_envelope_and_raises_on_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer token-1"
        if request.url.path == "/api/notifications/unread-count":
            return httpx.Response(200, json={"success": True, "code": "SUCCESS", "message": "ok", "data": {"unreadCount": 3}})
        return httpx.Response(
            404,
            json={"success": False, "code": "R001", "message": "Task not found or access denied", "data": None},
        )

    http_client = httpx.Client(base_url="http://devsync.test", transport=httpx.MockTransport(handler))
    api = DevSyncApiClient(http_client, "token-1")

    assert api.unread_count() == 3
    with pytest.raises(ApiError) as exc_info:
        api.get_task(TASK)
    assert exc_info.value.status_code == 404
    assert exc_info.value.code == "R001"
    assert exc_info.value.message == "Task not found or access denied"


def test_api_client_drops_empty_query_params() -> None:
    seen: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(
            200,
            json={"success": True, "code": "SUCCESS", "message": "ok", "data": {"notifications": [], "totalCount": 0, "hasMore": False}},
        )

    api = DevSyncApiClient(httpx.Client(base_url="http://devsync.test", transport=httpx.MockTransport(handler)), "t")
    api.list_notifications(limit=5)

    assert dict(seen[0].params) == {"limit": "5", "offset": "0"}


def test_connect_builds_client_with_configured_timeouts() -> None:
    api = connect("token-1", "http://devsync.test:8000")

    assert api.token == "token-1"
    assert str(api.http_client.base_url) == "http://devsync.test:8000"
    assert api.http_client.timeout.connect == 5.0
    api.http_client.close()


class LostAccessApi(FakeApi):
    def __init__(self, status_code: int) -> None:
        super().__init__()
        self.status_code = status_code

    def list_project_tasks(self, project_id: str) -> list[dict[str, Any]]:
        self.calls.append(("tasks", project_id))
        raise ApiError(self.status_code, "R001", "Project not found or access denied")

    def list_task_comments(self, task_id: str) -> list[dict[str, Any]]:
        self.calls.append(("comments", task_id))
        raise ApiError(self.status_code, "R001", "Task not found or access denied")


def test_refetch_after_losing_access_forgets_project(toasts: list[Toast]) -> None:
    reconciler = Reconciler(LostAccessApi(404), ME, toast=toasts.append)  # type: ignore[arg-type]
    reconciler.joined_projects.append(PROJECT)
    reconciler.state.tasks[PROJECT] = [{"id": TASK, "title": "Ship it"}]

    reconciler.handle_message(
        {"event": "task-updated", "data": {"task": {"id": TASK, "title": "Ship it"}, "updatedBy": ANN, "projectId": PROJECT}}
    )

    assert reconciler.joined_projects == []
    assert PROJECT not in reconciler.state.tasks
    assert toasts == []

    transport = RecordingTransport()
    reconciler.attach(transport)
    assert transport.sent == [{"event": "join-user-room", "data": {"userId": ME}}]


def test_comment_refetch_after_losing_access_closes_task(toasts: list[Toast]) -> None:
    reconciler = Reconciler(LostAccessApi(403), ME, toast=toasts.append)  # type: ignore[arg-type]
    reconciler.open_task_id = TASK

    reconciler.handle_message(
        {"event": "comment-deleted", "data": {"commentId": "c1", "taskId": TASK, "deletedBy": ANN, "projectId": PROJECT}}
    )

    assert reconciler.open_task_id is None
    assert reconciler.state.comments == []
    assert toasts == []


def test_server_failure_on_refetch_keeps_subscription(toasts: list[Toast]) -> None:
    reconciler = Reconciler(LostAccessApi(500), ME, toast=toasts.append)  # type: ignore[arg-type]
    reconciler.joined_projects.append(PROJECT)

    reconciler.handle_message(
        {"event": "task-deleted", "data": {"taskId": TASK, "deletedBy": ANN, "projectId": PROJECT}}
    )

    assert reconciler.joined_projects == [PROJECT]
    assert toasts == [Toast(event="task-deleted", message="Ann Admin deleted a task")]


def test_room_left_from_server_drops_project(reconciler: Reconciler) -> None:
    reconciler.join_project(PROJECT)

    reconciler.handle_message({"event": "room-left", "data": {"room": f"project:{PROJECT}"}})

    assert reconciler.joined_projects == []
    assert PROJECT not in reconciler.state.tasks
