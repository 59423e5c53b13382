from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi.testclient import TestClient


@dataclass
class Account:
    id: str
    email: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return auth_headers(self.token)


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register(client: TestClient, email: str, first_name: str = "Test", last_name: str = "User") -> Account:
    response = client.post(
        "/api/auth/register",
        json={"email": email, "password": "changeme123", "firstName": first_name, "lastName": last_name},
    )
    assert response.status_code == 201, response.text
    data = response.json()["data"]
    return Account(id=data["user"]["id"], email=email, token=data["accessToken"])


def create_team(client: TestClient, owner: Account, name: str = "Core Team") -> dict[str, Any]:
    response = client.post("/api/teams", json={"name": name}, headers=owner.headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def add_team_member(client: TestClient, admin: Account, team_id: str, member: Account, role: str = "DEVELOPER") -> dict[str, Any]:
    response = client.post(
        f"/api/teams/{team_id}/members",
        json={"email": member.email, "role": role},
        headers=admin.headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def create_project(client: TestClient, owner: Account, team_id: str, name: str = "Website") -> dict[str, Any]:
    response = client.post("/api/projects", json={"teamId": team_id, "name": name}, headers=owner.headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def add_project_member(
    client: TestClient,
    admin: Account,
    project_id: str,
    member: Account,
    role: str = "DEVELOPER",
) -> dict[str, Any]:
    response = client.post(
        f"/api/projects/{project_id}/members",
        json={"userId": member.id, "role": role},
        headers=admin.headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def create_task(client: TestClient, actor: Account, project_id: str, title: str = "Fix bug", **fields: Any) -> dict[str, Any]:
    response = client.post("/api/tasks", json={"projectId": project_id, "title": title, **fields}, headers=actor.headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def create_label(client: TestClient, actor: Account, project_id: str, name: str = "bug", color: str = "#FF0000") -> dict[str, Any]:
    response = client.post(
        f"/api/projects/{project_id}/labels",
        json={"name": name, "color": color},
        headers=actor.headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@dataclass
class ProjectSetup:
    admin: Account
    member: Account
    outsider: Account
    team: dict[str, Any]
    project: dict[str, Any]

    @property
    def project_id(self) -> str:
        return self.project["id"]


def project_with_members(client: TestClient) -> ProjectSetup:
    """Admin owns a team and project; member is on both; outsider is on the team only."""
    admin = register(client, "ann@example.com", "Ann", "Admin")
    member = register(client, "bob@example.com", "Bob", "Builder")
    outsider = register(client, "cara@example.com", "Cara", "Outside")
    team = create_team(client, admin)
    add_team_member(client, admin, team["id"], member)
    add_team_member(client, admin, team["id"], outsider)
    project = create_project(client, admin, team["id"])
    add_project_member(client, admin, project["id"], member)
    return ProjectSetup(admin=admin, member=member, outsider=outsider, team=team, project=project)
