"""Tests for auth.py: signup, login, lockout, logout, password reset, profile."""

import io
from unittest.mock import patch
from urllib.parse import urlparse

import pytest

TEST_USER_ID = "user-1"
TEST_PASSWORD = "testpass123"


def login(client, email="test@example.com", password=TEST_PASSWORD):
    return client.post("/login", json={"email": email, "password": password})


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

SIGNUP = {
    "firstName": "Ada",
    "lastName": "Lovelace",
    "email": "Ada@Example.com",
    "password": "analytical",
    "profession": "student",
    "className": "BSc Maths",
    "collegeName": "Test College",
}


class TestSignup:
    def test_creates_account_and_profile(self, client, app):
        resp = client.post("/signup", json=SIGNUP)
        assert resp.status_code == 201
        user = resp.get_json()["user"]
        assert user["email"] == "ada@example.com"
        assert user["firstName"] == "Ada"
        assert user["photoURL"] is None

        # Signed in straight away
        assert client.get("/api/profile").status_code == 200
        assert user["uid"] in app.extensions["sessions"]

    def test_duplicate_email(self, client):
        resp = client.post("/signup", json={**SIGNUP, "email": "test@example.com"})
        assert resp.status_code == 409

    def test_short_password(self, client):
        resp = client.post("/signup", json={**SIGNUP, "password": "abc"})
        assert resp.status_code == 400
        assert "password" in str(resp.get_json()["details"])

    def test_bad_email(self, client):
        resp = client.post("/signup", json={**SIGNUP, "email": "not-an-email"})
        assert resp.status_code == 400

    def test_profile_failure_removes_account(self, client, app):
        with patch("auth.ProfileStore.create", side_effect=RuntimeError("store down")):
            with pytest.raises(RuntimeError):
                client.post("/signup", json=SIGNUP)
        with app.app_context():
            from database import get_db
            row = get_db().execute(
                "SELECT id FROM users WHERE email = ?", ("ada@example.com",)
            ).fetchone()
        assert row is None


class TestLogin:
    def test_success_returns_profile(self, client, app):
        resp = login(client)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["uid"] == TEST_USER_ID
        assert TEST_USER_ID in app.extensions["sessions"]

    def test_wrong_password(self, client):
        resp = login(client, password="wrong-password")
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid email or password."

    def test_unknown_email(self, client):
        assert login(client, email="ghost@example.com").status_code == 401

    def test_lockout_after_repeated_failures(self, client):
        for _ in range(5):
            login(client, password="wrong-password")
        resp = login(client)
        assert resp.status_code == 401
        assert "locked" in resp.get_json()["error"]

    def test_email_case_insensitive(self, client):
        assert login(client, email="TEST@example.com").status_code == 200

    def test_protected_route_requires_login(self, client):
        resp = client.get("/api/profile")
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "User not authenticated"}


class TestLogout:
    def test_logout_closes_session(self, auth_client, app):
        assert TEST_USER_ID in app.extensions["sessions"]
        resp = auth_client.post("/logout")
        assert resp.get_json() == {"success": True}
        assert TEST_USER_ID not in app.extensions["sessions"]
        assert auth_client.get("/api/profile").status_code == 401


class TestPasswordReset:
    def test_unknown_email_same_message(self, client):
        resp = client.post("/password-reset", json={"email": "ghost@example.com"})
        assert resp.status_code == 200
        assert "If an account exists" in resp.get_json()["message"]

    def test_full_reset_flow(self, client):
        with patch("auth.EmailService.send_password_reset") as send:
            resp = client.post("/password-reset", json={"email": "test@example.com"})
        assert resp.status_code == 200
        url = send.call_args[0][1]
        path = urlparse(url).path

        resp = client.post(path, json={"password": "brand-new-pass"})
        assert resp.status_code == 200
        assert login(client, password=TEST_PASSWORD).status_code == 401
        assert login(client, password="brand-new-pass").status_code == 200

    def test_bad_token(self, client):
        resp = client.post(f"/reset-password/{TEST_USER_ID}/nonsense", json={"password": "whatever1"})
        assert resp.status_code == 401


class TestProfile:
    def test_get_profile(self, auth_client):
        user = auth_client.get("/api/profile").get_json()["user"]
        assert user["firstName"] == "Test"
        assert user["profession"] == "student"

    def test_update_profile(self, auth_client):
        resp = auth_client.patch("/api/profile", json={"collegeName": "New College"})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["collegeName"] == "New College"

    def test_update_rejects_unknown_fields(self, auth_client):
        resp = auth_client.patch("/api/profile", json={"email": "x@example.com"})
        assert resp.status_code == 400

    def test_upload_picture(self, auth_client):
        resp = auth_client.post(
            "/api/profile/picture",
            data={"file": (io.BytesIO(PNG_BYTES), "me.png")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["photoURL"] == f"/uploads/profile-pictures/{TEST_USER_ID}/me.png"
        assert body["user"]["photoURL"] == body["photoURL"]

        served = auth_client.get(body["photoURL"])
        assert served.status_code == 200
        assert served.data == PNG_BYTES

    def test_upload_mismatched_extension(self, auth_client):
        resp = auth_client.post(
            "/api/profile/picture",
            data={"file": (io.BytesIO(PNG_BYTES), "me.jpg")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_upload_without_file(self, auth_client):
        resp = auth_client.post("/api/profile/picture", data={}, content_type="multipart/form-data")
        assert resp.status_code == 400
