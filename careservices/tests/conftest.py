"""
Shared fixtures for the care coordination API tests.

The environment is set before any careservices module is imported so the
engine, signing key and bcrypt cost pick up the test values.
"""
import os
import tempfile
import uuid

_TEST_DIR = tempfile.mkdtemp(prefix="careservices-tests-")
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'care.db')}"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-strong-value-123456"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ADMIN_EMAIL"] = "admin@carecompany.com"
os.environ["ADMIN_PASSWORD"] = "password123"

import pytest
from fastapi.testclient import TestClient

from careservices.main import app
from careservices.auth.jwt import create_access_token

ADMIN_EMAIL = "admin@carecompany.com"
ADMIN_PASSWORD = "password123"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def token_headers(role: str, user_id: int = 9999, must_change_password: bool = False) -> dict:
    """Headers for a caller that exists only in the token."""
    token = create_access_token(
        user_id=user_id,
        email=f"{role}@example.com",
        role=role,
        must_change_password=must_change_password,
    )
    return bearer(token)


def unique_email(prefix: str = "worker") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}@example.com"


def worker_payload(**overrides) -> dict:
    payload = {
        "first_name": "Jane",
        "last_name": "Doe",
        "email": unique_email(),
        "phone": "07700 900123",
        "worker_type": "ground_worker",
        "role": "carer",
    }
    payload.update(overrides)
    return payload


def login(client: TestClient, email: str, password: str):
    return client.post("/auth/login", json={"email": email, "password": password})


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client):
    response = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert response.status_code == 200, response.text
    return bearer(response.json()["data"]["token"])


@pytest.fixture
def create_worker(client, admin_headers):
    """Create a worker through the API and return the response body."""
    def _create(**overrides):
        response = client.post("/users", json=worker_payload(**overrides), headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _create
