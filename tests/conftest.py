# tests/conftest.py
"""
Pytest configuration and fixtures.

Provides:
- An in-memory MongoDB (mongomock) swapped in for database.db per test
- FastAPI test client (lifespan not run; indexes are created by the fixture)
- Helpers to sign users up and create meetings
"""

import os
import tempfile

import mongomock
import pytest
from fastapi.testclient import TestClient

# Set test environment before imports
os.environ["SECRET_KEY"] = "test-secret"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="scheduler-uploads-")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)

import database  # noqa: E402
from main import app  # noqa: E402


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    """Fresh in-memory database for every test."""
    db = mongomock.MongoClient()["scheduler_test"]
    monkeypatch.setattr(database, "db", db)
    database.ensure_indexes()
    return db


@pytest.fixture
def client(mongo) -> TestClient:
    return TestClient(app)


@pytest.fixture
def signup(client):
    """Sign a user up and return bearer auth headers."""
    def _signup(username="alice", email="alice@example.com", password="secret123"):
        response = client.post(
            "/api/auth/signup",
            json={"username": username, "email": email, "password": password},
        )
        assert response.status_code == 201, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _signup


@pytest.fixture
def owner(signup):
    return signup()


@pytest.fixture
def create_meeting(client, owner):
    """Create a meeting for ``owner`` (or the given headers) and return the response."""
    def _create(date_time="2099-01-01T10:00:00Z", headers=None, **fields):
        payload = {
            "title": "Weekly sync",
            "link": "https://meet.example.com/abc",
            "date_time": date_time,
        }
        payload.update(fields)
        return client.post("/api/meetings", json=payload, headers=headers or owner)
    return _create


@pytest.fixture
def meeting(create_meeting):
    response = create_meeting()
    assert response.status_code == 201, response.text
    return response.json()["meeting"]
