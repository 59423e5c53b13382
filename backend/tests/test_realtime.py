from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from devsync.api.routes.realtime import UNAUTHORIZED_CLOSE_CODE
from devsync.client.api import DevSyncApiClient
from devsync.client.reconciler import Reconciler, Toast
from devsync.core.config import Settings, get_settings
from helpers import Account, create_task, project_with_members


def send(websocket: Any, event: str, data: Any = None) -> None:
    websocket.send_json({"event": event, "data": data})


def join(websocket: Any, event: str, data: Any) -> dict[str, Any]:
    send(websocket, event, data)
    reply = websocket.receive_json()
    assert reply["event"] == "room-joined", reply
    return reply["data"]


def assert_nothing_pending(websocket: Any) -> None:
    """A ping answered by the very next frame proves no other frame was queued."""
    send(websocket, "ping", {"nonce": "check"})
    assert websocket.receive_json() == {"event": "pong", "data": {"nonce": "check"}}


def socket_for(client: TestClient, account: Account) -> Any:
    return client.websocket_connect(f"/ws?token={account.token}")


def test_connection_without_token_is_closed(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws"):
            pass
    assert exc_info.value.code == UNAUTHORIZED_CLOSE_CODE


def test_connection_with_invalid_token_is_closed(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws", headers={"Authorization": "Bearer garbage"}):
            pass
    assert exc_info.value.code == UNAUTHORIZED_CLOSE_CODE


def test_bearer_header_authenticates(client: TestClient) -> None:
    setup = project_with_members(client)
    with client.websocket_connect("/ws", headers=setup.member.headers) as websocket:
        assert join(websocket, "join-user-room", setup.member.id) == {"room": f"user:{setup.member.id}"}
        assert client.app.state.registry.connection_count == 1


def test_join_requests_are_authorised(client: TestClient) -> None:
    setup = project_with_members(client)
    with socket_for(client, setup.outsider) as websocket:
        send(websocket, "join-user-room", {"userId": setup.member.id})
        denied_room = websocket.receive_json()
        assert denied_room["event"] == "error"
        assert denied_room["data"] == {"event": "join-user-room", "message": "You can only join your own user room"}

        send(websocket, "join-project", {"projectId": setup.project_id})
        denied_project = websocket.receive_json()
        assert denied_project["event"] == "error"
        assert denied_project["data"]["message"] == "Project not found or access denied"

        send(websocket, "subscribe-everything")
        assert websocket.receive_json()["data"]["message"] == "Unknown event 'subscribe-everything'"

        # The socket stays usable after refused requests.
        assert_nothing_pending(websocket)


def test_task_assignment_reaches_project_room_and_assignee_only(client: TestClient) -> None:
    setup = project_with_members(client)
    with socket_for(client, setup.member) as member_socket, socket_for(client, setup.outsider) as outsider_socket:
        join(member_socket, "join-user-room", {"userId": setup.member.id})
        join(member_socket, "join-project", {"projectId": setup.project_id})
        join(outsider_socket, "join-user-room", {"userId": setup.outsider.id})

        task = create_task(client, setup.admin, setup.project_id, title="Fix login", assigneeId=setup.member.id)

        created = member_socket.receive_json()
        assert created["event"] == "task-created"
        assert created["data"]["projectId"] == setup.project_id
        assert created["data"]["task"]["id"] == task["id"]
        assert created["data"]["createdBy"]["id"] == setup.admin.id

        notification = member_socket.receive_json()
        assert notification["event"] == "notification"
        assert notification["data"]["notification"]["type"] == "TASK_ASSIGNED"
        assert notification["data"]["notification"]["message"] == 'Ann Admin assigned you a task: "Fix login"'

        assert_nothing_pending(member_socket)
        assert_nothing_pending(outsider_socket)


def test_status_change_is_reconciled_by_refetch(client: TestClient) -> None:
    setup = project_with_members(client)
    task = create_task(client, setup.admin, setup.project_id, title="Ship it")
    toasts: list[Toast] = []
    reconciler = Reconciler(DevSyncApiClient(client, setup.member.token), setup.member.id, toast=toasts.append)

    with socket_for(client, setup.member) as websocket:
        reconciler.attach(websocket)
        assert websocket.receive_json()["event"] == "room-joined"
        reconciler.join_project(setup.project_id)
        assert websocket.receive_json()["data"] == {"room": f"project:{setup.project_id}"}
        assert reconciler.state.tasks[setup.project_id][0]["status"] == "TODO"

        response = client.put(f"/api/tasks/{task['id']}", json={"status": "DONE"}, headers=setup.admin.headers)
        assert response.status_code == 200

        message = websocket.receive_json()
        assert message["event"] == "task-updated"
        assert message["data"]["task"]["status"] == "DONE"
        assert message["data"]["changedFields"] == ["status"]
        reconciler.handle_message(message)

    assert reconciler.state.tasks[setup.project_id][0]["status"] == "DONE"
    assert toasts == [Toast(event="task-updated", message='Ann Admin updated task "Ship it"')]


def test_leave_project_stops_delivery(client: TestClient) -> None:
    setup = project_with_members(client)
    with socket_for(client, setup.member) as websocket:
        join(websocket, "join-project", setup.project_id)
        send(websocket, "leave-project", {"projectId": setup.project_id})
        assert websocket.receive_json() == {"event": "room-left", "data": {"room": f"project:{setup.project_id}"}}

        create_task(client, setup.admin, setup.project_id)

        assert_nothing_pending(websocket)


def test_disconnect_releases_subscriptions(client: TestClient) -> None:
    setup = project_with_members(client)
    registry = client.app.state.registry
    with socket_for(client, setup.member) as websocket:
        join(websocket, "join-project", {"projectId": setup.project_id})
        assert len(registry.members(f"project:{setup.project_id}")) == 1

    assert registry.members(f"project:{setup.project_id}") == ()


def test_user_channel_is_joined_on_connect(client: TestClient) -> None:
    setup = project_with_members(client)
    with socket_for(client, setup.member) as websocket:
        assert_nothing_pending(websocket)
        create_task(client, setup.admin, setup.project_id, title="Review PR", assigneeId=setup.member.id)

        frame = websocket.receive_json()
        assert frame["event"] == "notification"
        assert frame["data"]["notification"]["message"] == 'Ann Admin assigned you a task: "Review PR"'
        assert_nothing_pending(websocket)


def test_removed_project_member_stops_receiving_project_events(client: TestClient) -> None:
    setup = project_with_members(client)
    detail = client.get(f"/api/projects/{setup.project_id}", headers=setup.admin.headers).json()["data"]
    member_row = next(row for row in detail["members"] if row["userId"] == setup.member.id)
    room = f"project:{setup.project_id}"

    with socket_for(client, setup.member) as websocket:
        join(websocket, "join-project", {"projectId": setup.project_id})

        removed = client.delete(
            f"/api/projects/{setup.project_id}/members/{member_row['id']}",
            headers=setup.admin.headers,
        )
        assert removed.status_code == 200
        assert websocket.receive_json() == {"event": "room-left", "data": {"room": room}}
        assert client.get(f"/api/projects/{setup.project_id}", headers=setup.member.headers).status_code == 404

        create_task(client, setup.admin, setup.project_id, title="Secret roadmap")

        assert_nothing_pending(websocket)
        assert client.app.state.registry.members(room) == ()


def test_team_removal_with_revocation_evicts_project_subscriptions(client: TestClient) -> None:
    client.app.dependency_overrides[get_settings] = lambda: Settings(revoke_project_membership_on_team_removal=True)
    setup = project_with_members(client)
    team = client.get(f"/api/teams/{setup.team['id']}", headers=setup.admin.headers).json()["data"]
    team_row = next(row for row in team["members"] if row["userId"] == setup.member.id)

    with socket_for(client, setup.member) as websocket:
        join(websocket, "join-project", {"projectId": setup.project_id})

        removed = client.delete(f"/api/teams/{setup.team['id']}/members/{team_row['id']}", headers=setup.admin.headers)
        assert removed.status_code == 200
        assert websocket.receive_json() == {"event": "room-left", "data": {"room": f"project:{setup.project_id}"}}

        create_task(client, setup.admin, setup.project_id)

        assert_nothing_pending(websocket)
