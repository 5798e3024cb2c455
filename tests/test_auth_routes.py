"""
tests/test_auth_routes.py -- Integration tests for the /auth endpoints.

These tests exercise the full stack: FastAPI routing -> session guard
dependency -> UserStore/LoginHistoryStore -> response models and the error
envelope. The TestClient keeps cookies like a browser, so a successful login
authenticates every following request until something clears the cookie.

Coverage:
  - Register: 201 + userId, 409 on duplicate username/email, 422 on bad body
    (including passwords over 72 UTF-8 bytes)
  - Login: cookie flags, no token in body, identical 401 for unknown user / wrong password
  - Guard: missing, tampered, revoked and orphaned tokens -> 401 (+ cookie cleared)
  - Logout, profile patch, change password, list/get/delete users
  - Login history bookkeeping, and that a broken ledger never blocks login
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import PASSWORD, login, register

from api.main import app
from auth.dependencies import get_login_ledger


def _set_cookie_headers(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


def _cookie_cleared(resp, name: str = "access_token") -> bool:
    return any(name in h and ("max-age=0" in h.lower() or "expires=" in h.lower()) for h in _set_cookie_headers(resp))


class TestRegister:
    def test_register_returns_201_and_user_id(self, client: TestClient) -> None:
        resp = register(client, firstname="Alice", age=30)
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert isinstance(data["userId"], int)
        assert data["message"]

    def test_duplicate_username_is_409(self, client: TestClient) -> None:
        register(client)
        resp = register(client, email="other@x.com")
        assert resp.status_code == 409
        assert resp.json()["code"] == "conflict"
        assert resp.json()["message"]

    def test_duplicate_email_is_409(self, client: TestClient) -> None:
        register(client)
        resp = register(client, username="alice2", email="A@X.com")
        assert resp.status_code == 409

    def test_short_password_is_rejected(self, client: TestClient) -> None:
        resp = register(client, password="short")
        assert resp.status_code == 422
        assert resp.json()["code"] == "request_invalid"

    def test_multibyte_password_over_72_bytes_is_rejected(self, client: TestClient) -> None:
        # 40 characters, 80 UTF-8 bytes.
        resp = register(client, password="é" * 40)
        assert resp.status_code == 422
        assert resp.json()["code"] == "request_invalid"

    def test_multibyte_password_within_72_bytes_round_trips(self, client: TestClient) -> None:
        password = "é" * 36
        assert register(client, password=password).status_code == 201
        assert login(client, password=password).status_code == 200

    def test_malformed_email_is_rejected(self, client: TestClient) -> None:
        resp = register(client, email="not-an-email")
        assert resp.status_code == 422


class TestLogin:
    def test_login_sets_httponly_lax_cookie(self, client: TestClient) -> None:
        register(client)
        resp = login(client)
        assert resp.status_code == 200, resp.text
        cookie_header = next(h for h in _set_cookie_headers(resp) if h.startswith("access_token="))
        lowered = cookie_header.lower()
        assert "httponly" in lowered
        assert "samesite=lax" in lowered
        assert "max-age=604800" in lowered
        assert resp.headers["cache-control"] == "no-store"

    def test_login_body_has_user_but_no_secrets(self, client: TestClient) -> None:
        register(client)
        resp = login(client)
        data = resp.json()
        assert data["user"]["username"] == "alice"
        assert "hashed_password" not in data["user"]
        assert "password" not in data["user"]
        token = client.cookies.get("access_token")
        assert token and token not in resp.text

    def test_wrong_password_and_unknown_user_look_identical(self, client: TestClient) -> None:
        register(client)
        client.cookies.clear()
        wrong_password = login(client, password="wrongpassword")
        unknown_user = login(client, username="nobody")
        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json()
        assert wrong_password.json()["code"] == "invalid_credentials"
        assert "access_token" not in client.cookies


class TestSessionScenario:
    def test_register_login_me_logout_me(self, client: TestClient) -> None:
        assert register(client).status_code == 201
        assert login(client).status_code == 200

        me = client.get("/auth/me")
        assert me.status_code == 200
        body = me.json()
        assert body["username"] == "alice"
        assert body["email"] == "a@x.com"
        assert isinstance(body["id"], int)

        out = client.post("/auth/logout")
        assert out.status_code == 200
        assert _cookie_cleared(out)
        assert "access_token" not in client.cookies

        after = client.get("/auth/me")
        assert after.status_code == 401
        assert after.json()["code"] == "unauthenticated"

    def test_logout_without_session_succeeds(self, client: TestClient) -> None:
        resp = client.post("/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["message"]


class TestSessionGuard:
    def test_missing_cookie_is_401(self, client: TestClient) -> None:
        assert client.get("/auth/me").status_code == 401
        assert client.get("/auth/users").status_code == 401

    def test_tampered_cookie_is_401_and_cleared(self, client: TestClient) -> None:
        register(client)
        login(client)
        token = client.cookies.get("access_token")
        client.cookies.clear()
        header, payload, signature = token.split(".")
        client.cookies.set("access_token", ".".join([header, payload, signature[::-1]]))
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert _cookie_cleared(resp)

    def test_garbage_cookie_is_401_and_cleared(self, client: TestClient) -> None:
        client.cookies.set("access_token", "not-a-jwt")
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert _cookie_cleared(resp)

    def test_token_for_deleted_user_is_rejected(self, client: TestClient, stores) -> None:
        user_store, _ledger = stores
        user_id = register(client).json()["userId"]
        login(client)
        user_store.delete_user(user_id)
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert _cookie_cleared(resp)


class TestProfile:
    def test_patch_me_updates_only_given_fields(self, client: TestClient) -> None:
        register(client, firstname="Alice", lastname="Smith")
        login(client)
        resp = client.patch("/auth/me", json={"phone": "555-0100"})
        assert resp.status_code == 200, resp.text
        user = resp.json()["user"]
        assert user["phone"] == "555-0100"
        assert user["firstname"] == "Alice"
        assert user["lastname"] == "Smith"
        assert client.get("/auth/me").json()["phone"] == "555-0100"

    def test_patch_me_with_no_fields_is_400(self, client: TestClient) -> None:
        register(client)
        login(client)
        resp = client.patch("/auth/me", json={})
        assert resp.status_code == 400
        assert resp.json()["code"] == "no_fields"

    def test_patch_me_ignores_identity_fields(self, client: TestClient) -> None:
        register(client)
        login(client)
        resp = client.patch("/auth/me", json={"username": "mallory"})
        assert resp.status_code == 400
        assert client.get("/auth/me").json()["username"] == "alice"


class TestChangePassword:
    def test_change_password_invalidates_old_cookie(self, client: TestClient) -> None:
        register(client)
        login(client)
        old_token = client.cookies.get("access_token")

        resp = client.patch(
            "/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "evenlonger2"},
        )
        assert resp.status_code == 200, resp.text
        assert _cookie_cleared(resp)

        client.cookies.clear()
        client.cookies.set("access_token", old_token)
        stale = client.get("/auth/me")
        assert stale.status_code == 401
        assert stale.json()["code"] == "unauthenticated"

        client.cookies.clear()
        assert login(client).status_code == 401
        assert login(client, password="evenlonger2").status_code == 200
        assert client.get("/auth/me").status_code == 200

    def test_multibyte_new_password_over_72_bytes_is_rejected(self, client: TestClient) -> None:
        register(client)
        login(client)
        resp = client.patch(
            "/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "é" * 40},
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "request_invalid"
        assert client.get("/auth/me").status_code == 200

    def test_wrong_current_password_is_401(self, client: TestClient) -> None:
        register(client)
        login(client)
        resp = client.patch(
            "/auth/change-password",
            json={"currentPassword": "notmypassword", "newPassword": "evenlonger2"},
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_credentials"
        # The session itself is still valid.
        assert client.get("/auth/me").status_code == 200


class TestUsers:
    def test_list_users_hides_password_hashes(self, client: TestClient) -> None:
        register(client)
        register(client, username="bob", email="b@x.com")
        login(client)
        resp = client.get("/auth/users")
        assert resp.status_code == 200
        users = resp.json()
        assert [u["username"] for u in users] == ["alice", "bob"]
        assert all("hashed_password" not in u and "session_version" not in u for u in users)

    def test_get_user_by_id(self, client: TestClient) -> None:
        bob_id = register(client, username="bob", email="b@x.com").json()["userId"]
        register(client)
        login(client)
        assert client.get(f"/auth/user/{bob_id}").json()["username"] == "bob"
        assert client.get("/auth/user/99999").status_code == 404

    def test_user_id_outside_integer_range_is_422(self, client: TestClient) -> None:
        register(client)
        login(client)
        for path in ("/auth/user/99999999999999999999", "/auth/user/0"):
            resp = client.get(path)
            assert resp.status_code == 422
            assert resp.json()["code"] == "request_invalid"
        assert client.delete("/auth/user/99999999999999999999").status_code == 422

    def test_delete_other_user_is_403(self, client: TestClient) -> None:
        bob_id = register(client, username="bob", email="b@x.com").json()["userId"]
        register(client)
        login(client)
        resp = client.delete(f"/auth/user/{bob_id}")
        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"
        assert client.get(f"/auth/user/{bob_id}").status_code == 200

    def test_delete_self_ends_session(self, client: TestClient) -> None:
        user_id = register(client).json()["userId"]
        login(client)
        resp = client.delete(f"/auth/user/{user_id}")
        assert resp.status_code == 200
        assert _cookie_cleared(resp)
        assert client.get("/auth/me").status_code == 401
        assert login(client).status_code == 401


class TestLoginHistory:
    def test_login_and_logout_are_recorded(self, client: TestClient) -> None:
        register(client)
        login(client)
        entries = client.get("/auth/login-history").json()
        assert len(entries) == 1
        assert entries[0]["logged_out_at"] is None

        client.post("/auth/logout")
        login(client)
        entries = client.get("/auth/login-history").json()
        assert len(entries) == 2
        newest, oldest = entries
        assert newest["logged_out_at"] is None
        assert oldest["logged_out_at"] is not None

    def test_logged_in_users_lists_everyone(self, client: TestClient) -> None:
        register(client)
        register(client, username="bob", email="b@x.com")
        login(client, username="bob")
        client.post("/auth/logout")
        login(client)
        entries = client.get("/auth/logged-in-users").json()
        assert len({e["user_id"] for e in entries}) == 2

    def test_ledger_failure_does_not_block_login_or_logout(self, client: TestClient) -> None:
        class BrokenLedger:
            def record_login(self, user_id, timestamp=None):
                raise RuntimeError("ledger down")

            def record_logout(self, user_id, timestamp=None):
                raise RuntimeError("ledger down")

        register(client)
        app.dependency_overrides[get_login_ledger] = lambda: BrokenLedger()
        assert login(client).status_code == 200
        assert client.get("/auth/me").status_code == 200
        assert client.post("/auth/logout").status_code == 200
