"""
Tests for registration, authentication and profile endpoints.
"""

import asyncio

from fastapi.testclient import TestClient

from conftest import API, auth_headers, image_file, login, publish_video, register


class TestRegistration:
    """User registration endpoint."""

    def test_register_returns_public_profile(self, client: TestClient, storage):
        response = register(client, "alice")

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["statusCode"] == 201
        user = body["data"]
        assert user["username"] == "alice"
        assert user["email"] == "alice@example.com"
        assert user["avatar"] == storage.uploads[0]
        assert "password" not in user
        assert "refresh_token" not in user

    def test_stored_password_is_hashed(self, client: TestClient, mongo_db):
        register(client, "alice", password="plaintext1")
        stored = asyncio.run(mongo_db.users.find_one({"username": "alice"}))
        assert stored["password"] != "plaintext1"
        assert stored["password"].startswith("$2")

    def test_username_is_lowercased(self, client: TestClient):
        response = register(client, "Carol", email="carol@example.com")
        assert response.status_code == 201
        assert response.json()["data"]["username"] == "carol"

    def test_duplicate_username_conflicts(self, client: TestClient):
        register(client, "alice")
        response = register(client, "alice", email="other@example.com")
        assert response.status_code == 409
        assert response.json() == {
            "success": False,
            "code": 409,
            "message": "User with email or username already exists",
        }

    def test_duplicate_email_conflicts(self, client: TestClient):
        register(client, "alice")
        response = register(client, "alice2", email="alice@example.com")
        assert response.status_code == 409

    def test_avatar_is_required(self, client: TestClient):
        response = client.post(
            f"{API}/users/register",
            data={"username": "dave", "email": "dave@example.com", "full_name": "Dave", "password": "secret123"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Avatar file is required"

    def test_failed_upload_is_reported_as_missing_avatar(self, client: TestClient, storage):
        storage.fail_uploads = True
        response = register(client, "dave")
        assert response.status_code == 400
        assert response.json()["message"] == "Avatar file is required"

    def test_rejected_cover_image_queues_uploaded_avatar(self, client: TestClient, storage, queue, mongo_db):
        response = client.post(
            f"{API}/users/register",
            data={"username": "gina", "email": "gina@example.com", "full_name": "Gina", "password": "secret123"},
            files={"avatar": image_file(), "cover_image": ("cover.txt", b"not an image", "text/plain")},
        )
        assert response.status_code == 400
        assert queue.queued == storage.uploads
        assert len(queue.queued) == 1
        assert asyncio.run(mongo_db.users.count_documents({})) == 0

    def test_invalid_email_is_bad_request(self, client: TestClient):
        response = register(client, "erin", email="not-an-email")
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_missing_field_is_bad_request(self, client: TestClient):
        response = client.post(
            f"{API}/users/register",
            data={"username": "frank", "password": "secret123"},
            files={"avatar": image_file()},
        )
        assert response.status_code == 400


class TestLogin:
    """Login endpoint."""

    def test_wrong_password_is_unauthorized(self, client: TestClient):
        register(client, "alice")
        response = login(client, "alice", "wrong-password")
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid user credentials"

    def test_unknown_user_is_not_found(self, client: TestClient):
        response = login(client, "nobody")
        assert response.status_code == 404

    def test_login_sets_cookies_and_returns_tokens(self, client: TestClient):
        register(client, "alice")
        response = client.post(f"{API}/users/login", json={"username": "alice", "password": "secret123"})

        assert response.status_code == 200
        assert "accessToken" in response.cookies
        assert "refreshToken" in response.cookies
        data = response.json()["data"]
        assert data["accessToken"]
        assert data["refreshToken"]
        assert data["user"]["username"] == "alice"
        assert "password" not in data["user"]

    def test_login_by_email(self, client: TestClient):
        register(client, "alice")
        response = client.post(f"{API}/users/login", json={"email": "ALICE@example.com", "password": "secret123"})
        assert response.status_code == 200

    def test_login_needs_username_or_email(self, client: TestClient):
        response = client.post(f"{API}/users/login", json={"password": "secret123"})
        assert response.status_code == 400

    def test_cookie_authenticates(self, client: TestClient):
        register(client, "alice")
        client.post(f"{API}/users/login", json={"username": "alice", "password": "secret123"})
        response = client.get(f"{API}/users/me")
        assert response.status_code == 200
        assert response.json()["data"]["username"] == "alice"


class TestTokens:
    """Authentication and refresh token rotation."""

    def test_protected_route_requires_token(self, client: TestClient):
        response = client.get(f"{API}/users/me")
        assert response.status_code == 401
        assert response.json()["message"] == "Unauthorized request"

    def test_garbage_token_is_rejected(self, client: TestClient):
        response = client.get(f"{API}/users/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    def test_refresh_rotates_and_rejects_reuse(self, client: TestClient):
        register(client, "alice")
        old_refresh = login(client, "alice").json()["data"]["refreshToken"]

        response = client.post(f"{API}/users/refresh-token", json={"refreshToken": old_refresh})
        client.cookies.clear()
        assert response.status_code == 200
        new_tokens = response.json()["data"]
        assert new_tokens["refreshToken"] != old_refresh

        reused = client.post(f"{API}/users/refresh-token", json={"refreshToken": old_refresh})
        assert reused.status_code == 401

    def test_refresh_requires_token(self, client: TestClient):
        response = client.post(f"{API}/users/refresh-token")
        assert response.status_code == 400

    def test_access_token_is_not_a_refresh_token(self, client: TestClient):
        register(client, "alice")
        access = login(client, "alice").json()["data"]["accessToken"]
        response = client.post(f"{API}/users/refresh-token", json={"refreshToken": access})
        assert response.status_code == 401

    def test_logout_revokes_refresh_token(self, client: TestClient, mongo_db):
        register(client, "alice")
        tokens = login(client, "alice").json()["data"]
        headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

        response = client.post(f"{API}/users/logout", headers=headers)
        assert response.status_code == 200

        stored = asyncio.run(mongo_db.users.find_one({"username": "alice"}))
        assert "refresh_token" not in stored
        response = client.post(f"{API}/users/refresh-token", json={"refreshToken": tokens["refreshToken"]})
        assert response.status_code == 401


class TestAccount:
    """Password, details and images of the current user."""

    def test_change_password(self, client: TestClient, alice):
        response = client.post(
            f"{API}/users/change-password",
            json={"old_password": "secret123", "new_password": "newsecret456"},
            headers=alice["headers"],
        )
        assert response.status_code == 200
        assert login(client, "alice", "secret123").status_code == 401
        assert login(client, "alice", "newsecret456").status_code == 200

    def test_change_password_wrong_old_password(self, client: TestClient, alice):
        response = client.post(
            f"{API}/users/change-password",
            json={"old_password": "nope", "new_password": "newsecret456"},
            headers=alice["headers"],
        )
        assert response.status_code == 401

    def test_update_details(self, client: TestClient, alice):
        response = client.patch(
            f"{API}/users/me",
            json={"full_name": "Alice Liddell", "email": "liddell@example.com"},
            headers=alice["headers"],
        )
        assert response.status_code == 200
        assert response.json()["data"]["full_name"] == "Alice Liddell"
        assert response.json()["data"]["email"] == "liddell@example.com"

    def test_update_details_email_taken(self, client: TestClient, alice, bob):
        response = client.patch(
            f"{API}/users/me",
            json={"full_name": "Alice", "email": "bob@example.com"},
            headers=alice["headers"],
        )
        assert response.status_code == 409

    def test_avatar_replacement_queues_old_blob(self, client: TestClient, alice, queue):
        old_avatar = client.get(f"{API}/users/me", headers=alice["headers"]).json()["data"]["avatar"]

        response = client.patch(
            f"{API}/users/avatar",
            files={"avatar": image_file("new.png")},
            headers=alice["headers"],
        )
        assert response.status_code == 200
        assert response.json()["data"]["avatar"] != old_avatar
        assert queue.queued == [old_avatar]

    def test_avatar_rejects_wrong_type(self, client: TestClient, alice):
        response = client.patch(
            f"{API}/users/avatar",
            files={"avatar": ("notes.txt", b"hello", "text/plain")},
            headers=alice["headers"],
        )
        assert response.status_code == 400

    def test_cover_image(self, client: TestClient, alice):
        response = client.patch(
            f"{API}/users/cover-image",
            files={"cover_image": image_file("cover.png")},
            headers=alice["headers"],
        )
        assert response.status_code == 200
        assert response.json()["data"]["cover_image"].endswith("cover.png")


class TestChannel:
    """Channel profile and watch history."""

    def test_channel_profile_counts(self, client: TestClient, alice, bob):
        client.post(f"{API}/subscriptions/{alice['id']}", headers=bob["headers"])

        response = client.get(f"{API}/users/channel/alice", headers=bob["headers"])
        assert response.status_code == 200
        channel = response.json()["data"]
        assert channel["subscriber_count"] == 1
        assert channel["subscribed_to_count"] == 0
        assert channel["is_subscribed"] is True

        own = client.get(f"{API}/users/channel/alice", headers=alice["headers"]).json()["data"]
        assert own["is_subscribed"] is False

    def test_unknown_channel(self, client: TestClient, alice):
        response = client.get(f"{API}/users/channel/ghost", headers=alice["headers"])
        assert response.status_code == 404

    def test_watch_history_is_most_recent_first(self, client: TestClient, alice, bob):
        first = publish_video(client, alice["headers"], "First")
        second = publish_video(client, alice["headers"], "Second")

        client.post(f"{API}/videos/{first['_id']}/view", headers=bob["headers"])
        client.post(f"{API}/videos/{second['_id']}/view", headers=bob["headers"])
        client.post(f"{API}/videos/{first['_id']}/view", headers=bob["headers"])

        response = client.get(f"{API}/users/history", headers=bob["headers"])
        assert response.status_code == 200
        history = response.json()["data"]
        assert [video["title"] for video in history] == ["First", "Second"]
        assert history[0]["owner"]["username"] == "alice"

    def test_empty_watch_history(self, client: TestClient, alice):
        response = client.get(f"{API}/users/history", headers=alice["headers"])
        assert response.status_code == 200
        assert response.json()["data"] == []
