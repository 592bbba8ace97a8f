# tests/test_meetings.py
"""
Tests for meeting CRUD endpoints.
"""

import os

import config


class TestCreateMeeting:
    """POST /api/meetings."""

    def test_create_defaults(self, create_meeting):
        response = create_meeting(title="  Kickoff  ", emails=["Ann@Example.com", "ann@example.com"])

        assert response.status_code == 201
        meeting = response.json()["meeting"]
        assert meeting["title"] == "Kickoff"
        assert meeting["status"] == "pending"
        assert meeting["category"] == "upcoming"
        assert meeting["background_color"] == "#ffffff"
        assert meeting["emails"] == ["ann@example.com"]
        assert meeting["pending_participants"] == []
        assert meeting["has_password"] is False
        assert meeting["schema_version"] == 2

    def test_validation(self, create_meeting, mongo):
        assert create_meeting(title="ab").status_code == 422
        assert create_meeting(link="ftp://example.com").status_code == 422
        assert create_meeting(link="not a link").status_code == 422
        assert create_meeting(date_time="tomorrow").status_code == 422
        assert create_meeting(emails=["not-an-email"]).status_code == 422
        assert create_meeting(emails="a@example.com").status_code == 422
        assert create_meeting(reminder=-5).status_code == 422
        assert create_meeting(category="past").status_code == 422

        assert mongo["meeting"].count_documents({}) == 0

    def test_requires_auth(self, client):
        response = client.post(
            "/api/meetings",
            json={"title": "Weekly sync", "link": "https://x.example.com", "date_time": "2099-01-01T10:00:00Z"},
        )
        assert response.status_code == 401


class TestReadUpdateDelete:
    """GET / PUT / DELETE /api/meetings/{id}."""

    def test_get_own_meeting(self, client, owner, meeting):
        response = client.get(f"/api/meetings/{meeting['id']}", headers=owner)

        assert response.status_code == 200
        assert response.json()["meeting"]["title"] == "Weekly sync"

    def test_get_is_owner_scoped(self, client, meeting, signup):
        bob = signup(username="bob", email="bob@example.com")

        response = client.get(f"/api/meetings/{meeting['id']}", headers=bob)
        assert response.status_code == 404
        assert response.json()["detail"] == "Meeting not found or not authorized"

    def test_get_bad_id(self, client, owner):
        assert client.get("/api/meetings/xyz", headers=owner).status_code == 404

    def test_update_fields(self, client, owner, meeting, mongo):
        before = mongo["meeting"].find_one()["updated_at"]

        response = client.put(
            f"/api/meetings/{meeting['id']}",
            json={"title": "Renamed", "description": "  notes ", "reminder": 15, "category": "canceled"},
            headers=owner,
        )

        assert response.status_code == 200
        data = response.json()["meeting"]
        assert data["title"] == "Renamed"
        assert data["description"] == "notes"
        assert data["reminder"] == 15
        assert data["category"] == "canceled"
        assert data["link"] == meeting["link"]
        assert mongo["meeting"].find_one()["updated_at"] >= before

    def test_update_password(self, client, owner, meeting):
        response = client.put(f"/api/meetings/{meeting['id']}", json={"password": "xyz"}, headers=owner)
        assert response.json()["meeting"]["has_password"] is True

        response = client.put(f"/api/meetings/{meeting['id']}", json={"password": ""}, headers=owner)
        assert response.json()["meeting"]["has_password"] is False

    def test_update_emails_clears_matching_pending(self, client, owner, meeting):
        client.post(f"/api/meetings/join/{meeting['id']}", json={"email": "guest@example.com"})
        client.post(f"/api/meetings/join/{meeting['id']}", json={"email": "other@example.com"})

        response = client.put(
            f"/api/meetings/{meeting['id']}", json={"emails": ["guest@example.com"]}, headers=owner
        )
        data = response.json()["meeting"]
        assert data["emails"] == ["guest@example.com"]
        assert data["pending_participants"] == ["other@example.com"]

    def test_update_validation(self, client, owner, meeting):
        assert client.put(f"/api/meetings/{meeting['id']}", json={"title": "x"}, headers=owner).status_code == 422
        assert client.put(f"/api/meetings/{meeting['id']}", json={"status": "ignored"}, headers=owner).status_code == 422

    def test_update_other_owner(self, client, meeting, signup):
        bob = signup(username="bob", email="bob@example.com")

        response = client.put(f"/api/meetings/{meeting['id']}", json={"title": "Mine now"}, headers=bob)
        assert response.status_code == 404

    def test_delete(self, client, owner, meeting, mongo):
        response = client.delete(f"/api/meetings/{meeting['id']}", headers=owner)

        assert response.status_code == 200
        assert mongo["meeting"].count_documents({}) == 0
        assert client.get(f"/api/meetings/{meeting['id']}", headers=owner).status_code == 404

    def test_delete_other_owner(self, client, meeting, signup, mongo):
        bob = signup(username="bob", email="bob@example.com")

        assert client.delete(f"/api/meetings/{meeting['id']}", headers=bob).status_code == 404
        assert mongo["meeting"].count_documents({}) == 1


class TestBanner:
    """Banner image upload."""

    def test_upload_banner(self, client, owner, meeting):
        response = client.post(
            f"/api/meetings/{meeting['id']}/banner",
            files={"banner_image": ("banner.png", b"\x89PNG fake", "image/png")},
            headers=owner,
        )

        assert response.status_code == 200
        reference = response.json()["meeting"]["banner_image"]
        assert reference.startswith("/uploads/") and reference.endswith(".png")
        assert os.path.exists(os.path.join(config.UPLOAD_DIR, os.path.basename(reference)))

        served = client.get(reference)
        assert served.status_code == 200
        assert served.content == b"\x89PNG fake"

    def test_upload_requires_owner(self, client, meeting, signup):
        bob = signup(username="bob", email="bob@example.com")

        response = client.post(
            f"/api/meetings/{meeting['id']}/banner",
            files={"banner_image": ("banner.png", b"data", "image/png")},
            headers=bob,
        )
        assert response.status_code == 404


class TestErrors:
    """Persistence failures surface as a generic 500."""

    def test_database_error(self, client, owner, monkeypatch):
        from pymongo.errors import ServerSelectionTimeoutError

        import queries

        def broken(*args, **kwargs):
            raise ServerSelectionTimeoutError("no servers")

        monkeypatch.setattr(queries, "count_documents", broken)
        response = client.get("/api/meetings", headers=owner)

        assert response.status_code == 500
        assert response.json() == {"detail": "Server error"}

    def test_unconfigured_database_is_generic(self, client, monkeypatch):
        import database

        monkeypatch.setattr(database, "db", None)
        response = client.post(
            "/api/auth/signup",
            json={"username": "alice", "email": "alice@example.com", "password": "secret123"},
        )

        assert response.status_code == 500
        assert response.json() == {"detail": "Server error"}

    def test_root_and_diagnostics(self, client, meeting):
        assert client.get("/").json() == {"message": "Meeting Scheduler API is running"}

        data = client.get("/test").json()
        assert data["backend"] == "✅ Running"
        assert data["database"] == "✅ Connected"
        assert data["schema_version"] == 2
        assert data["outdated_meetings"] == 0
        assert data["collections"]["meeting"]["documents"] == 1
        assert data["collections"]["user"]["documents"] == 1
        assert "email_1" in data["collections"]["user"]["indexes"]
        assert "owner_id_1_date_time_1" in data["collections"]["meeting"]["indexes"]

    def test_diagnostics_without_database(self, client, monkeypatch):
        import database

        monkeypatch.setattr(database, "db", None)
        data = client.get("/test").json()

        assert data["database"] == "❌ Not configured"
        assert data["collections"] == {}
