"""
Test cases for the user lifecycle endpoints.
"""
import pytest
from careservices.auth.jwt import verify_token
from careservices.auth.passwords import validate_password
from conftest import bearer, login, token_headers, unique_email, worker_payload


def test_create_worker_with_generated_password(client, admin_headers):
    payload = worker_payload(city=None, hourly_rate="", start_date="2024-03-01")
    response = client.post("/users", json=payload, headers=admin_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["email"] == payload["email"]
    assert data["role"] == "carer"
    assert data["employment_type"] == "full_time"
    assert data["start_date"] == "2024-03-01"
    assert data["hourly_rate"] is None
    assert data["city"] == ""
    assert data["is_active"] is True
    assert data["employee_id"].startswith("EMP")
    assert "password_hash" not in data
    assert validate_password(data["generated_password"]).is_valid

    # The generated password is the worker's real credential
    assert login(client, payload["email"], data["generated_password"]).status_code == 200


def test_create_worker_with_custom_password(client, admin_headers):
    payload = worker_payload(auto_generate_password=False, custom_password="Custom#Pass9")
    response = client.post("/users", json=payload, headers=admin_headers)
    assert response.status_code == 201
    assert "generated_password" not in response.json()["data"]
    assert response.json()["message"] == "Worker created successfully."


def test_create_worker_rejects_weak_custom_password(client, admin_headers):
    payload = worker_payload(auto_generate_password=False, custom_password="weak")
    response = client.post("/users", json=payload, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Password validation failed"
    assert len(response.json()["details"]) == 4


def test_create_worker_requires_custom_password(client, admin_headers):
    payload = worker_payload(auto_generate_password=False)
    response = client.post("/users", json=payload, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == (
        "Custom password is required when auto_generate_password is false"
    )


def test_create_worker_missing_fields(client, admin_headers):
    payload = worker_payload()
    del payload["phone"]
    response = client.post("/users", json=payload, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"].startswith("Missing required fields")
    assert response.json()["details"] == ["phone"]


def test_create_worker_invalid_email(client, admin_headers):
    response = client.post("/users", json=worker_payload(email="not-an-email"), headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid email format"


def test_coordinator_cannot_create_admin_as_ground_worker(client):
    payload = worker_payload(worker_type="ground_worker", role="admin")
    response = client.post("/users", json=payload, headers=token_headers("coordinator"))
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid role for ground worker")


def test_office_worker_role_must_match(client, admin_headers):
    payload = worker_payload(worker_type="office_worker", role="trainee")
    response = client.post("/users", json=payload, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == (
        "Invalid role for office worker. Must be: admin, coordinator, or supervisor"
    )


def test_unknown_role_is_rejected(client, admin_headers):
    response = client.post("/users", json=worker_payload(role="janitor"), headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid role: janitor"


def test_unknown_worker_type_is_rejected(client, admin_headers):
    response = client.post("/users", json=worker_payload(worker_type="contractor"), headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid worker type")


def test_role_alias_is_stored_canonically(client, create_worker):
    worker = create_worker(role="care_worker")
    assert worker["role"] == "carer"


def test_duplicate_email_conflicts(client, admin_headers, create_worker):
    worker = create_worker()
    response = client.post(
        "/users", json=worker_payload(email=worker["email"].upper()), headers=admin_headers
    )
    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "Email already exists"}


@pytest.mark.parametrize("role", ["carer", "senior_carer", "trainee"])
def test_ground_workers_cannot_manage_users(client, role):
    headers = token_headers(role)
    assert client.get("/users", headers=headers).status_code == 403
    assert client.post("/users", json=worker_payload(), headers=headers).status_code == 403
    assert client.post("/users/1/reset-password", headers=headers).status_code == 403
    assert client.delete("/users/1", headers=headers).status_code == 403


def test_carer_reset_password_names_roles(client):
    response = client.post("/users/1/reset-password", headers=token_headers("carer"))
    assert response.status_code == 403
    assert response.json()["error"] == (
        "Access denied. Required roles: admin, coordinator, supervisor. Your role: carer"
    )


def test_list_users(client, admin_headers, create_worker):
    worker = create_worker(first_name="Aaron", city=None)
    response = client.get("/users", headers=admin_headers)
    assert response.status_code == 200
    users = response.json()["data"]

    listed = next(u for u in users if u["id"] == worker["id"])
    assert listed["city"] == ""
    assert listed["mobile"] == ""
    assert all("password_hash" not in u for u in users)
    names = [(u["first_name"], u["last_name"]) for u in users]
    assert names == sorted(names)


def test_list_users_with_trailing_slash(client, admin_headers):
    response = client.get("/users/", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert isinstance(response.json()["data"], list)


def test_update_user(client, admin_headers, create_worker):
    worker = create_worker()
    new_email = unique_email("moved")
    response = client.put(
        f"/users/{worker['id']}",
        json={"city": "Leeds", "email": new_email, "role": "senior_carer"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["city"] == "Leeds"
    assert data["email"] == new_email
    assert data["role"] == "senior_carer"
    assert data["first_name"] == worker["first_name"]


def test_update_user_role_must_match_worker_type(client, admin_headers, create_worker):
    worker = create_worker()
    response = client.put(
        f"/users/{worker['id']}",
        json={"role": "admin", "worker_type": "ground_worker"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid role for ground worker")


def test_update_user_email_conflict(client, admin_headers, create_worker):
    first = create_worker()
    second = create_worker()
    response = client.put(
        f"/users/{second['id']}", json={"email": first["email"]}, headers=admin_headers
    )
    assert response.status_code == 409


def test_update_user_without_fields(client, admin_headers, create_worker):
    worker = create_worker()
    response = client.put(f"/users/{worker['id']}", json={}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "No fields to update"


def test_update_unknown_user(client, admin_headers):
    response = client.put("/users/987654", json={"city": "York"}, headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.parametrize("user_id", ["abc", "0", "-3"])
def test_invalid_user_id(client, admin_headers, user_id):
    response = client.delete(f"/users/{user_id}", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid user ID"


def test_deactivate_user(client, admin_headers, create_worker):
    worker = create_worker(auto_generate_password=False, custom_password="Active#Pass1",
                           first_name="Dee", last_name="Activated")
    response = client.delete(f"/users/{worker['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "User Dee Activated has been deactivated"

    # Gone from listings and logins, but the row and email are kept
    users = client.get("/users", headers=admin_headers).json()["data"]
    assert worker["id"] not in [u["id"] for u in users]
    assert login(client, worker["email"], "Active#Pass1").status_code == 401
    assert client.delete(f"/users/{worker['id']}", headers=admin_headers).status_code == 404
    response = client.post("/users", json=worker_payload(email=worker["email"]), headers=admin_headers)
    assert response.status_code == 409


def test_reset_password_forces_change(client, admin_headers, create_worker):
    worker = create_worker(worker_type="office_worker", role="coordinator",
                           auto_generate_password=False, custom_password="Coord#Pass1")

    response = client.post(f"/users/{worker['id']}/reset-password", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user_id"] == worker["id"]
    assert data["email"] == worker["email"]
    assert data["name"] == f"{worker['first_name']} {worker['last_name']}"
    new_password = data["new_password"]
    assert validate_password(new_password).is_valid

    # Old password no longer works; the new one logs in flagged
    assert login(client, worker["email"], "Coord#Pass1").status_code == 401
    login_response = login(client, worker["email"], new_password)
    assert login_response.status_code == 200
    assert login_response.json()["data"]["user"]["mustChangePassword"] is True
    token = login_response.json()["data"]["token"]
    assert verify_token(token).must_change_password is True

    # Management routes stay closed until the password is rotated
    blocked = client.get("/users", headers=bearer(token))
    assert blocked.status_code == 403
    assert blocked.json()["error"] == "Password change required"
    assert client.get("/auth/me", headers=bearer(token)).status_code == 200

    changed = client.put(
        "/auth/change-password",
        json={"current_password": new_password, "new_password": "Rotated#Pass2"},
        headers=bearer(token),
    )
    assert changed.status_code == 200
    fresh_token = changed.json()["data"]["token"]
    assert client.get("/users", headers=bearer(fresh_token)).status_code == 200


def test_reset_password_unknown_user(client, admin_headers):
    response = client.post("/users/987654/reset-password", headers=admin_headers)
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "User not found"}


def test_invalid_body_is_a_validation_error(client, admin_headers):
    response = client.post("/users", json=worker_payload(start_date="not-a-date"), headers=admin_headers)
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Invalid request body"
    assert body["details"][0].startswith("start_date")


def test_token_issued_before_reset_keeps_its_claims(client, admin_headers, create_worker):
    # Tokens are stateless: the forced change applies from the next login
    worker = create_worker(worker_type="office_worker", role="supervisor",
                           auto_generate_password=False, custom_password="Super#Pass1")
    token = login(client, worker["email"], "Super#Pass1").json()["data"]["token"]

    response = client.post(f"/users/{worker['id']}/reset-password", headers=admin_headers)
    assert response.status_code == 200

    assert verify_token(token).must_change_password is False
    assert client.get("/users", headers=bearer(token)).status_code == 200
    new_password = response.json()["data"]["new_password"]
    fresh = login(client, worker["email"], new_password).json()["data"]["token"]
    assert client.get("/users", headers=bearer(fresh)).status_code == 403
