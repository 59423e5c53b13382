from fastapi.testclient import TestClient

from helpers import auth_headers, register


def test_register_login_and_me(client: TestClient) -> None:
    account = register(client, "Ann@Example.com", "Ann", "Admin")

    login = client.post("/api/auth/login", json={"email": "ann@example.com", "password": "changeme123"})
    assert login.status_code == 200, login.text
    body = login.json()
    assert body["success"] is True
    assert body["data"]["tokenType"] == "bearer"

    me = client.get("/api/auth/me", headers=auth_headers(body["data"]["accessToken"]))
    assert me.status_code == 200
    assert me.json()["data"]["id"] == account.id
    assert me.json()["data"]["email"] == "ann@example.com"
    assert me.json()["data"]["firstName"] == "Ann"
    assert "hashedPassword" not in me.json()["data"]


def test_duplicate_registration_conflicts(client: TestClient) -> None:
    register(client, "ann@example.com")
    response = client.post(
        "/api/auth/register",
        json={"email": "ann@example.com", "password": "changeme123", "firstName": "A", "lastName": "B"},
    )
    assert response.status_code == 409
    assert response.json()["message"] == "User with this email already exists"


def test_wrong_password_is_rejected(client: TestClient) -> None:
    register(client, "ann@example.com")
    response = client.post("/api/auth/login", json={"email": "ann@example.com", "password": "nope"})
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "code": "A003",
        "message": "Invalid email or password",
        "data": None,
    }


def test_validation_errors_are_reported_per_field(client: TestClient) -> None:
    response = client.post("/api/auth/register", json={"email": "not-an-email", "password": "123"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "V001"
    fields = {error["field"] for error in body["errors"]}
    assert {"email", "password", "firstName", "lastName"} <= fields


def test_invalid_token_is_rejected(client: TestClient) -> None:
    response = client.get("/api/auth/me", headers=auth_headers("garbage"))
    assert response.status_code == 401
    assert response.json()["code"] == "A002"
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_request_id_header_is_echoed(client: TestClient) -> None:
    response = client.get("/api/healthz", headers={"X-Request-ID": "req-123"})
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.json()["data"] == {"status": "ok"}


def test_profile_update_trims_names_and_sets_avatar(client: TestClient) -> None:
    account = register(client, "ann@example.com", "Ann", "Admin")

    response = client.put(
        "/api/auth/profile",
        json={"firstName": "  Annie ", "avatar": "https://cdn.example.com/ann.png"},
        headers=account.headers,
    )
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["firstName"] == "Annie"
    assert data["lastName"] == "Admin"
    assert data["avatar"] == "https://cdn.example.com/ann.png"

    profile = client.get("/api/auth/profile", headers=account.headers)
    assert profile.json()["data"]["firstName"] == "Annie"

    cleared = client.put("/api/auth/profile", json={"avatar": None}, headers=account.headers)
    assert cleared.json()["data"]["avatar"] is None


def test_profile_update_validates_fields(client: TestClient) -> None:
    account = register(client, "ann@example.com")

    response = client.put(
        "/api/auth/profile",
        json={"firstName": " A ", "avatar": "not a url"},
        headers=account.headers,
    )
    assert response.status_code == 400
    assert {error["field"] for error in response.json()["errors"]} == {"firstName", "avatar"}


def test_change_password(client: TestClient) -> None:
    account = register(client, "ann@example.com")

    wrong = client.put(
        "/api/auth/change-password",
        json={"currentPassword": "not-it", "newPassword": "Stronger123"},
        headers=account.headers,
    )
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Current password is incorrect"

    weak = client.put(
        "/api/auth/change-password",
        json={"currentPassword": "changeme123", "newPassword": "alllowercase"},
        headers=account.headers,
    )
    assert weak.status_code == 400
    assert [error["field"] for error in weak.json()["errors"]] == ["newPassword"]

    changed = client.put(
        "/api/auth/change-password",
        json={"currentPassword": "changeme123", "newPassword": "Stronger123"},
        headers=account.headers,
    )
    assert changed.status_code == 200
    assert changed.json()["message"] == "Password changed successfully"

    old_login = client.post("/api/auth/login", json={"email": "ann@example.com", "password": "changeme123"})
    assert old_login.status_code == 401
    new_login = client.post("/api/auth/login", json={"email": "ann@example.com", "password": "Stronger123"})
    assert new_login.status_code == 200
