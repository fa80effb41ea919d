"""
tests/test_auth_routes.py -- Integration tests for the /api/auth routes.

Coverage:
  - Registration: 201 {token} only, claims, default avatar, duplicates, field errors
  - Login: token + public profile, identical failure body for unknown email
    and wrong password, missing fields
  - Verify / me / user lookup: public projection never carries the hash
  - Profile update: selective patch, blank fields ignored, location shapes,
    username uniqueness, avatar upload limits and old-file cleanup

Fixtures used (from conftest.py):
  - api_client: (client, token, uid) for user "testuser" / testpass123
"""

from __future__ import annotations

import io
import json

from fastapi.testclient import TestClient
from jose import jwt

from conftest import TEST_PASSWORD, auth_header


def _register(client: TestClient, username: str, email: str, name: str = "Some Body", password: str = "secret1"):
    return client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password, "name": name},
    )


class TestRegister:
    def test_register_returns_only_token(self, api_client) -> None:
        client, _, _ = api_client
        resp = _register(client, "alice", "alice@example.com", name="Alice Smith")
        assert resp.status_code == 201, resp.text
        assert set(resp.json()) == {"token"}
        assert resp.headers["Cache-Control"] == "no-store"

    def test_register_token_claims(self, api_client) -> None:
        client, _, _ = api_client
        token = _register(client, "bob_1", "bob@example.com", name="Bob").json()["token"]
        claims = jwt.get_unverified_claims(token)
        assert claims["username"] == "bob_1"
        assert claims["name"] == "Bob"
        assert claims["sub"].isdigit()
        assert claims["exp"] > claims["iat"]

    def test_registered_user_gets_placeholder_avatar(self, api_client) -> None:
        client, _, _ = api_client
        token = _register(client, "carol", "carol@example.com", name="Carol King").json()["token"]
        user = client.get("/api/auth/verify", headers=auth_header(token)).json()["user"]
        assert user["profileImage"].startswith("https://ui-avatars.com/api/?name=Carol%20King")
        assert user["location"] == {"city": "", "country": ""}
        assert user["bio"] == ""

    def test_register_normalises_email(self, api_client) -> None:
        client, _, _ = api_client
        token = _register(client, "dave", "  Dave@Example.COM ").json()["token"]
        user = client.get("/api/auth/verify", headers=auth_header(token)).json()["user"]
        assert user["email"] == "dave@example.com"

    def test_duplicate_email_rejected_without_write(self, api_client) -> None:
        client, _, uid = api_client
        store = client.app.state.user_store
        before_count = store.count_users()
        before = store.get_by_id(uid)
        resp = _register(client, "someoneelse", "testuser@example.com", name="Impostor")
        assert resp.status_code == 400
        assert resp.json()["message"] == "User already exists"
        assert store.count_users() == before_count
        assert store.get_by_username("someoneelse") is None
        after = store.get_by_id(uid)
        assert after.name == before.name
        assert after.updated_at == before.updated_at
        assert after.hashed_password == before.hashed_password

    def test_duplicate_username_rejected_without_write(self, api_client) -> None:
        client, _, uid = api_client
        store = client.app.state.user_store
        before_count = store.count_users()
        before = store.get_by_id(uid)
        resp = _register(client, "testuser", "fresh@example.com", name="Impostor")
        assert resp.status_code == 400
        assert resp.json()["code"] == "duplicate_identity"
        assert store.count_users() == before_count
        assert store.get_by_email("fresh@example.com") is None
        after = store.get_by_id(uid)
        assert (after.name, after.email, after.updated_at) == (before.name, before.email, before.updated_at)

    def test_password_over_transport_cap_rejected(self, api_client) -> None:
        client, _, _ = api_client
        resp = _register(client, "longpass", "longpass@example.com", password="p" * 100)
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
        assert resp.json()["errors"][0]["field"] == "password"
        assert client.app.state.user_store.get_by_username("longpass") is None

    def test_multibyte_password_over_72_bytes_rejected(self, api_client) -> None:
        client, _, _ = api_client
        # 19 characters, 76 bytes in UTF-8.
        resp = _register(client, "emojipass", "emojipass@example.com", password="\U0001F600" * 19)
        assert resp.status_code == 400
        assert resp.json()["errors"] == [{"field": "password", "message": "Password cannot exceed 72 bytes"}]
        assert client.app.state.user_store.get_by_username("emojipass") is None

    def test_password_at_72_bytes_accepted(self, api_client) -> None:
        client, _, _ = api_client
        resp = _register(client, "maxpass", "maxpass@example.com", password="p" * 72)
        assert resp.status_code == 201, resp.text
        login = client.post("/api/auth/login", json={"email": "maxpass@example.com", "password": "p" * 72})
        assert login.status_code == 200

    def test_field_errors_are_all_reported(self, api_client) -> None:
        client, _, _ = api_client
        resp = _register(client, "ab", "not-an-email", name="X", password="123")
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "validation_error"
        fields = {e["field"] for e in body["errors"]}
        assert fields == {"username", "email", "password", "name"}

    def test_username_charset(self, api_client) -> None:
        client, _, _ = api_client
        resp = _register(client, "bad name!", "badname@example.com")
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["message"] == "Username can only contain letters, numbers, and underscores"


class TestLogin:
    def test_login_returns_token_and_profile(self, api_client) -> None:
        client, _, uid = api_client
        resp = client.post("/api/auth/login", json={"email": "testuser@example.com", "password": TEST_PASSWORD})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["token"]
        assert body["user"]["_id"] == uid
        assert body["user"]["username"] == "testuser"
        assert "hashed_password" not in body["user"]
        assert "password" not in body["user"]
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_email_is_case_insensitive(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/auth/login", json={"email": "TestUser@Example.com", "password": TEST_PASSWORD})
        assert resp.status_code == 200

    def test_unknown_email_and_wrong_password_look_identical(self, api_client) -> None:
        client, _, _ = api_client
        wrong_pw = client.post("/api/auth/login", json={"email": "testuser@example.com", "password": "nope123"})
        no_user = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "nope123"})
        assert wrong_pw.status_code == no_user.status_code == 401
        assert wrong_pw.json() == no_user.json() == {"message": "Invalid credentials", "code": "invalid_credentials"}

    def test_overlong_password_is_invalid_credentials(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/auth/login", json={"email": "testuser@example.com", "password": "p" * 100})
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_credentials"

    def test_missing_fields(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.post("/api/auth/login", json={"email": "testuser@example.com"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Email and password are required"

    def test_login_stamps_last_login(self, api_client) -> None:
        client, _, uid = api_client
        store = client.app.state.user_store
        client.post("/api/auth/login", json={"email": "testuser@example.com", "password": TEST_PASSWORD})
        assert store.get_by_id(uid).last_login is not None


class TestProfileLookups:
    def test_verify_returns_current_profile(self, api_client) -> None:
        client, token, uid = api_client
        resp = client.get("/api/auth/verify", headers=auth_header(token))
        assert resp.status_code == 200
        assert resp.json()["user"]["_id"] == uid

    def test_verify_is_repeatable(self, api_client) -> None:
        client, token, _ = api_client
        first = client.get("/api/auth/verify", headers=auth_header(token)).json()
        second = client.get("/api/auth/verify", headers=auth_header(token)).json()
        assert first == second

    def test_me(self, api_client) -> None:
        client, token, _ = api_client
        resp = client.get("/api/auth/me", headers=auth_header(token))
        assert resp.status_code == 200
        assert set(resp.json()) == {"_id", "username", "name", "email", "profileImage", "location", "bio"}

    def test_get_user_by_id(self, api_client) -> None:
        client, token, uid = api_client
        resp = client.get(f"/api/auth/user/{uid}", headers=auth_header(token))
        assert resp.status_code == 200
        assert resp.json()["username"] == "testuser"

    def test_get_missing_user(self, api_client) -> None:
        client, token, _ = api_client
        resp = client.get("/api/auth/user/999999", headers=auth_header(token))
        assert resp.status_code == 404
        assert resp.json()["message"] == "User not found"


class TestProfileUpdate:
    def _fresh(self, client: TestClient, username: str) -> str:
        return _register(client, username, f"{username}@example.com", name="Profile Person").json()["token"]

    def test_partial_update_keeps_other_fields(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "patchme")
        resp = client.put("/api/auth/profile", data={"bio": "Hello there"}, headers=auth_header(token))
        assert resp.status_code == 200, resp.text
        user = resp.json()
        assert user["bio"] == "Hello there"
        assert user["name"] == "Profile Person"
        assert user["username"] == "patchme"

    def test_blank_fields_are_ignored(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "blanks")
        client.put("/api/auth/profile", data={"bio": "Keep me"}, headers=auth_header(token))
        resp = client.put("/api/auth/profile", data={"name": "", "bio": ""}, headers=auth_header(token))
        assert resp.status_code == 200
        assert resp.json()["name"] == "Profile Person"
        assert resp.json()["bio"] == "Keep me"

    def test_location_as_json_string(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "traveller")
        location = json.dumps({"city": "Berlin", "country": "Germany"})
        resp = client.put("/api/auth/profile", data={"location": location}, headers=auth_header(token))
        assert resp.status_code == 200
        assert resp.json()["location"] == {"city": "Berlin", "country": "Germany"}

    def test_partial_location_keeps_other_part(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "mover")
        headers = auth_header(token)
        rome = {"location": json.dumps({"city": "Rome", "country": "Italy"})}
        client.put("/api/auth/profile", data=rome, headers=headers)
        resp = client.put("/api/auth/profile", data={"location": json.dumps({"city": "Berlin"})}, headers=headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["location"] == {"city": "Berlin", "country": "Italy"}
        stored = client.get("/api/auth/me", headers=headers).json()["location"]
        assert stored == {"city": "Berlin", "country": "Italy"}

    def test_null_location_part_clears_it(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "homeless")
        headers = auth_header(token)
        rome = {"location": json.dumps({"city": "Rome", "country": "Italy"})}
        client.put("/api/auth/profile", data=rome, headers=headers)
        resp = client.put("/api/auth/profile", data={"location": json.dumps({"city": None})}, headers=headers)
        assert resp.json()["location"] == {"city": "", "country": "Italy"}

    def test_deeply_nested_location_is_a_validation_error(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "nested")
        resp = client.put("/api/auth/profile", data={"location": "[" * 100000}, headers=auth_header(token))
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "location"

    def test_location_plain_string_rejected(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "plainloc")
        resp = client.put("/api/auth/profile", data={"location": "Berlin"}, headers=auth_header(token))
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "location"

    def test_bio_too_long(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "verbose")
        resp = client.put("/api/auth/profile", data={"bio": "x" * 501}, headers=auth_header(token))
        assert resp.status_code == 400
        assert resp.json()["message"] == "Bio cannot exceed 500 characters"

    def test_username_taken_by_someone_else(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "wannabe")
        resp = client.put("/api/auth/profile", data={"username": "testuser"}, headers=auth_header(token))
        assert resp.status_code == 400
        assert resp.json()["message"] == "Username is already taken"

    def test_keeping_own_username_is_fine(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "sameuser")
        resp = client.put("/api/auth/profile", data={"username": "sameuser"}, headers=auth_header(token))
        assert resp.status_code == 200

    def test_requires_auth(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.put("/api/auth/profile", data={"bio": "nope"})
        assert resp.status_code == 401


class TestAvatarUpload:
    def _fresh(self, client: TestClient, username: str) -> str:
        return _register(client, username, f"{username}@example.com", name="Avatar Person").json()["token"]

    def test_oversized_image_rejected_and_record_untouched(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "bigpic")
        before = client.get("/api/auth/me", headers=auth_header(token)).json()
        big = io.BytesIO(b"\x89PNG" + b"\0" * (6 * 1024 * 1024))
        resp = client.put(
            "/api/auth/profile",
            files={"profileImage": ("big.png", big, "image/png")},
            headers=auth_header(token),
        )
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "profileImage"
        after = client.get("/api/auth/me", headers=auth_header(token)).json()
        assert after["profileImage"] == before["profileImage"]
        # The partial file was deleted.
        leftovers = [p for p in client.app.state.avatars.root_dir.iterdir() if p.name.startswith(f"{before['_id']}-")]
        assert leftovers == []

    def test_wrong_content_type_rejected(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "textpic")
        resp = client.put(
            "/api/auth/profile",
            files={"profileImage": ("notes.txt", io.BytesIO(b"hello"), "text/plain")},
            headers=auth_header(token),
        )
        assert resp.status_code == 400
        assert "Only JPEG, PNG and GIF" in resp.json()["message"]

    def test_upload_replaces_and_removes_previous_file(self, api_client) -> None:
        client, _, _ = api_client
        token = self._fresh(client, "newpic")
        avatars = client.app.state.avatars
        image = b"\x89PNG" + b"\1" * (2 * 1024 * 1024)

        first = client.put(
            "/api/auth/profile",
            files={"profileImage": ("a.png", io.BytesIO(image), "image/png")},
            headers=auth_header(token),
        )
        assert first.status_code == 200, first.text
        first_ref = first.json()["profileImage"]
        assert first_ref.startswith("/uploads/profiles/")
        first_path = avatars.path_for(first_ref)
        assert first_path.is_file()
        assert first_path.stat().st_size == len(image)

        second = client.put(
            "/api/auth/profile",
            data={"bio": "new face"},
            files={"profileImage": ("b.gif", io.BytesIO(b"GIF89a" + b"\2" * 100), "image/gif")},
            headers=auth_header(token),
        )
        assert second.status_code == 200, second.text
        second_ref = second.json()["profileImage"]
        assert second_ref != first_ref
        assert second_ref.endswith(".gif")
        assert avatars.path_for(second_ref).is_file()
        assert not first_path.exists()
        assert second.json()["bio"] == "new face"
