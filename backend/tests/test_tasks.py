from fastapi.testclient import TestClient

from devsync.core.config import Settings, get_settings
from helpers import create_label, create_project, create_task, create_team, project_with_members


def test_create_task_defaults_and_detail(client: TestClient) -> None:
    setup = project_with_members(client)

    task = create_task(client, setup.member, setup.project_id, title="  Fix login  ", description="Users bounce")
    assert task["title"] == "Fix login"
    assert task["status"] == "TODO"
    assert task["priority"] == "MEDIUM"
    assert task["assigneeId"] is None
    assert task["createdBy"]["id"] == setup.member.id
    assert task["labels"] == []
    assert task["commentCount"] == 0

    detail = client.get(f"/api/tasks/{task['id']}", headers=setup.admin.headers)
    assert detail.status_code == 200
    assert detail.json()["data"]["project"]["id"] == setup.project_id


def test_assignee_must_be_project_member(client: TestClient) -> None:
    setup = project_with_members(client)

    response = client.post(
        "/api/tasks",
        json={"projectId": setup.project_id, "title": "Fix bug", "assigneeId": setup.outsider.id},
        headers=setup.admin.headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Assignee must be a project member"

    task = create_task(client, setup.admin, setup.project_id)
    reassigned = client.put(
        f"/api/tasks/{task['id']}",
        json={"assigneeId": setup.outsider.id},
        headers=setup.admin.headers,
    )
    assert reassigned.status_code == 400


def test_blank_title_is_a_validation_error(client: TestClient) -> None:
    setup = project_with_members(client)

    response = client.post(
        "/api/tasks",
        json={"projectId": setup.project_id, "title": "   "},
        headers=setup.admin.headers,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "V001"
    assert [error["field"] for error in response.json()["errors"]] == ["title"]


def test_update_trims_title_and_rejects_blank(client: TestClient) -> None:
    setup = project_with_members(client)
    task = create_task(client, setup.admin, setup.project_id, title="Draft")

    blank = client.put(f"/api/tasks/{task['id']}", json={"title": "   "}, headers=setup.admin.headers)
    assert blank.status_code == 400
    assert blank.json()["code"] == "V001"
    assert [error["field"] for error in blank.json()["errors"]] == ["title"]

    trimmed = client.put(f"/api/tasks/{task['id']}", json={"title": "  Final  "}, headers=setup.admin.headers)
    assert trimmed.status_code == 200
    assert trimmed.json()["data"]["title"] == "Final"


def test_project_tasks_are_ordered_and_filtered(client: TestClient) -> None:
    setup = project_with_members(client)
    low = create_task(client, setup.admin, setup.project_id, title="Polish copy", priority="LOW")
    urgent = create_task(client, setup.admin, setup.project_id, title="Outage", priority="URGENT")
    started = create_task(
        client,
        setup.admin,
        setup.project_id,
        title="Refactor auth",
        status="IN_PROGRESS",
        assigneeId=setup.member.id,
    )
    done = create_task(
        client,
        setup.admin,
        setup.project_id,
        title="Ship release",
        status="DONE",
        description="Tag and publish the outage fix",
        dueDate="2026-01-10T12:00:00Z",
    )

    listing = client.get(f"/api/projects/{setup.project_id}/tasks", headers=setup.member.headers)
    assert [task["id"] for task in listing.json()["data"]] == [urgent["id"], low["id"], started["id"], done["id"]]

    def filtered(**params: str) -> list[str]:
        response = client.get(f"/api/projects/{setup.project_id}/tasks", params=params, headers=setup.member.headers)
        assert response.status_code == 200, response.text
        return [task["id"] for task in response.json()["data"]]

    assert filtered(status="IN_PROGRESS") == [started["id"]]
    assert filtered(assigneeId=setup.member.id) == [started["id"]]
    assert filtered(priority="LOW") == [low["id"]]
    assert filtered(search="outage") == [urgent["id"], done["id"]]
    assert filtered(dueDate="2026-02-01T00:00:00Z") == [done["id"]]
    assert filtered(dueDate="2026-01-01T00:00:00Z") == []


def test_my_tasks_cover_assigned_and_created(client: TestClient) -> None:
    setup = project_with_members(client)
    assigned = create_task(client, setup.admin, setup.project_id, title="Assigned", assigneeId=setup.member.id)
    created = create_task(client, setup.member, setup.project_id, title="Created")
    create_task(client, setup.admin, setup.project_id, title="Unrelated")

    response = client.get("/api/tasks", headers=setup.member.headers)
    assert response.status_code == 200
    items = response.json()["data"]
    assert {item["id"] for item in items} == {assigned["id"], created["id"]}
    assert all(item["project"]["name"] == "Website" for item in items)


def test_task_update_and_explicit_nulls(client: TestClient) -> None:
    setup = project_with_members(client)
    task = create_task(client, setup.admin, setup.project_id, assigneeId=setup.member.id)

    response = client.put(
        f"/api/tasks/{task['id']}",
        json={"title": None, "status": "IN_PROGRESS", "assigneeId": None},
        headers=setup.member.headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["title"] == "Fix bug"
    assert data["status"] == "IN_PROGRESS"
    assert data["assigneeId"] is None


def test_status_may_move_backwards_unless_forward_only(client: TestClient) -> None:
    setup = project_with_members(client)
    task = create_task(client, setup.admin, setup.project_id, status="DONE")

    reopened = client.put(f"/api/tasks/{task['id']}", json={"status": "TODO"}, headers=setup.admin.headers)
    assert reopened.status_code == 200
    assert reopened.json()["data"]["status"] == "TODO"

    client.put(f"/api/tasks/{task['id']}", json={"status": "DONE"}, headers=setup.admin.headers)
    client.app.dependency_overrides[get_settings] = lambda: Settings(task_status_forward_only=True)
    blocked = client.put(f"/api/tasks/{task['id']}", json={"status": "IN_PROGRESS"}, headers=setup.admin.headers)
    assert blocked.status_code == 400
    assert blocked.json()["message"] == "Cannot move task from DONE back to IN_PROGRESS"


def test_task_delete_permissions(client: TestClient) -> None:
    setup = project_with_members(client)
    by_admin = create_task(client, setup.admin, setup.project_id, title="Admin task")
    by_member = create_task(client, setup.member, setup.project_id, title="Member task")

    denied = client.delete(f"/api/tasks/{by_admin['id']}", headers=setup.member.headers)
    assert denied.status_code == 403
    assert denied.json()["code"] == "P001"

    own = client.delete(f"/api/tasks/{by_member['id']}", headers=setup.member.headers)
    assert own.status_code == 200
    assert own.json()["data"]["deleted"] is True

    managed = client.delete(f"/api/tasks/{by_admin['id']}", headers=setup.admin.headers)
    assert managed.status_code == 200
    assert client.get(f"/api/tasks/{by_admin['id']}", headers=setup.admin.headers).status_code == 404


def test_label_round_trip(client: TestClient) -> None:
    setup = project_with_members(client)
    task = create_task(client, setup.member, setup.project_id)
    label = create_label(client, setup.admin, setup.project_id)
    assert (label["name"], label["color"]) == ("bug", "#FF0000")

    assigned = client.post(f"/api/tasks/{task['id']}/labels/{label['id']}", headers=setup.member.headers)
    assert assigned.status_code == 200
    assert [item["name"] for item in assigned.json()["data"]["labels"]] == ["bug"]

    again = client.post(f"/api/tasks/{task['id']}/labels/{label['id']}", headers=setup.member.headers)
    assert again.status_code == 400
    assert again.json()["message"] == "Label is already assigned to this task"

    removed = client.delete(f"/api/tasks/{task['id']}/labels/{label['id']}", headers=setup.member.headers)
    assert removed.status_code == 200
    assert removed.json()["data"]["labels"] == []

    missing = client.delete(f"/api/tasks/{task['id']}/labels/{label['id']}", headers=setup.member.headers)
    assert missing.status_code == 404


def test_label_from_another_project_is_rejected(client: TestClient) -> None:
    setup = project_with_members(client)
    other_project = create_project(client, setup.admin, setup.team["id"], name="Other")
    foreign_label = create_label(client, setup.admin, other_project["id"], name="infra")
    task = create_task(client, setup.admin, setup.project_id)

    response = client.post(f"/api/tasks/{task['id']}/labels/{foreign_label['id']}", headers=setup.admin.headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Label not found or does not belong to this project"


def test_label_management_rules(client: TestClient) -> None:
    setup = project_with_members(client)
    label = create_label(client, setup.admin, setup.project_id)

    duplicate = client.post(
        f"/api/projects/{setup.project_id}/labels",
        json={"name": "bug", "color": "#00FF00"},
        headers=setup.admin.headers,
    )
    assert duplicate.status_code == 400

    by_developer = client.post(
        f"/api/projects/{setup.project_id}/labels",
        json={"name": "feature", "color": "#00FF00"},
        headers=setup.member.headers,
    )
    assert by_developer.status_code == 403

    bad_color = client.post(
        f"/api/projects/{setup.project_id}/labels",
        json={"name": "feature", "color": "green"},
        headers=setup.admin.headers,
    )
    assert bad_color.status_code == 400

    task = create_task(client, setup.admin, setup.project_id)
    client.post(f"/api/tasks/{task['id']}/labels/{label['id']}", headers=setup.admin.headers)
    deleted = client.delete(f"/api/projects/{setup.project_id}/labels/{label['id']}", headers=setup.admin.headers)
    assert deleted.status_code == 200

    detail = client.get(f"/api/tasks/{task['id']}", headers=setup.admin.headers)
    assert detail.json()["data"]["labels"] == []
    assert client.get(f"/api/projects/{setup.project_id}/labels", headers=setup.member.headers).json()["data"] == []


def test_tasks_in_other_team_project_are_hidden(client: TestClient) -> None:
    setup = project_with_members(client)
    other_team = create_team(client, setup.member, "Side project")
    side = create_project(client, setup.member, other_team["id"], name="Side")
    task = create_task(client, setup.member, side["id"])

    response = client.get(f"/api/tasks/{task['id']}", headers=setup.admin.headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Task not found or access denied"


def test_task_analytics_across_my_projects(client: TestClient) -> None:
    setup = project_with_members(client)
    other_team = create_team(client, setup.outsider, "Elsewhere")
    hidden_project = create_project(client, setup.outsider, other_team["id"], name="Hidden")
    create_task(client, setup.outsider, hidden_project["id"], title="Not mine")

    create_task(client, setup.admin, setup.project_id, title="Open", priority="HIGH", assigneeId=setup.member.id)
    done = create_task(client, setup.admin, setup.project_id, title="Closed", assigneeId=setup.member.id)
    client.put(f"/api/tasks/{done['id']}", json={"status": "DONE"}, headers=setup.admin.headers)

    response = client.get("/api/tasks/analytics", params={"period": "week"}, headers=setup.member.headers)
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["period"] == "week"
    assert data["byStatus"] == {"TODO": 1, "IN_PROGRESS": 0, "DONE": 1}
    assert data["byPriority"]["HIGH"] == 1
    assert data["statistics"]["totalTasks"] == 2
    assert data["statistics"]["completedTasks"] == 1
    assert data["statistics"]["completionRate"] == 50.0
    assert data["assigneeBreakdown"] == [{"userId": setup.member.id, "name": "Bob Builder", "taskCount": 2}]
    assert len(data["completionTrend"]) == 8
    assert sum(day["count"] for day in data["completionTrend"]) == 1

    scoped = client.get(
        "/api/tasks/analytics",
        params={"projectId": hidden_project["id"]},
        headers=setup.member.headers,
    )
    assert scoped.status_code == 404

    invalid = client.get("/api/tasks/analytics", params={"period": "decade"}, headers=setup.member.headers)
    assert invalid.status_code == 400
