"""
tests/test_api_routes.py -- Integration tests for the auth and user-management routes.

These tests exercise the full stack: FastAPI routing -> AuthGate/RoleGuard
dependencies -> CredentialService -> UserStore -> response envelope and
boundary error translation. Unit testing individual route functions would
miss dependency injection, exception handlers and cookie handling.

Fixtures used (from conftest.py):
  - api: ApiContext with a TestClient, an admin account
    (admin@example.com / adminpw1) and its token, and the FakeMailer.

The TestClient keeps cookies between requests, so an autouse fixture clears
them before every test.
"""

from __future__ import annotations

import re

import pytest

from api.main import app
from tests.conftest import ApiContext, make_settings


@pytest.fixture(autouse=True)
def _fresh_cookies(api: ApiContext):
    api.client.cookies.clear()
    api.mailer.fail = False
    yield
    api.client.cookies.clear()


def _admin(api: ApiContext) -> dict:
    return {"Authorization": f"Bearer {api.admin_token}"}


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _register(api: ApiContext, email: str, password: str = "validpw", role: str = "user") -> str:
    resp = api.client.post(
        "/api/v1/auth/register",
        json={"name": "Test", "email": email, "password": password, "role": role},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


def _set_cookie(resp) -> str:
    return "; ".join(v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie")


# ---------------------------------------------------------------------------
# Register / login / logout
# ---------------------------------------------------------------------------


class TestRegisterLogin:
    def test_register_returns_token_and_cookie(self, api: ApiContext):
        resp = api.client.post(
            "/api/v1/auth/register",
            json={"name": "A", "email": "A@X.com", "password": "validpw", "role": "user"},
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["success"] is True
        assert api.signer.verify(body["token"])
        cookie = _set_cookie(resp)
        assert cookie.startswith(f"token={body['token']}")
        assert "httponly" in cookie.lower()
        assert resp.headers["cache-control"] == "no-store"
        assert api.store.find_by_email("a@x.com") is not None

    def test_login_scenario(self, api: ApiContext):
        _register(api, "scenario@x.com")
        ok = api.client.post("/api/v1/auth/login", json={"email": "scenario@x.com", "password": "validpw"})
        assert ok.status_code == 200
        assert ok.json()["success"] is True

        bad = api.client.post("/api/v1/auth/login", json={"email": "SCENARIO@X.com", "password": "wrong"})
        assert bad.status_code == 400
        assert bad.json() == {"success": False, "code": "invalid_credentials", "error": "Invalid credentials."}

    def test_unknown_email_matches_wrong_password(self, api: ApiContext):
        _register(api, "enum@x.com")
        wrong_pw = api.client.post("/api/v1/auth/login", json={"email": "enum@x.com", "password": "nope1"})
        unknown = api.client.post("/api/v1/auth/login", json={"email": "ghost@x.com", "password": "nope1"})
        assert wrong_pw.status_code == unknown.status_code == 400
        assert wrong_pw.json() == unknown.json()

    def test_login_missing_fields(self, api: ApiContext):
        resp = api.client.post("/api/v1/auth/login", json={"email": "a@x.com"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "missing_credentials"

    def test_register_duplicate_email(self, api: ApiContext):
        _register(api, "dup@x.com")
        resp = api.client.post(
            "/api/v1/auth/register",
            json={"name": "B", "email": "DUP@x.com", "password": "validpw"},
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "duplicate_email"

    def test_register_validation_error_lists_fields(self, api: ApiContext):
        resp = api.client.post(
            "/api/v1/auth/register",
            json={"name": "B", "email": "v@x.com", "password": "abc", "role": "root"},
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["code"] == "validation_error"
        assert {e["field"] for e in body["error"]} == {"role", "password"}

    def test_malformed_body_uses_envelope(self, api: ApiContext):
        resp = api.client.post("/api/v1/auth/login", json={"email": ["not", "a", "string"], "password": "x"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    def test_logout_is_idempotent(self, api: ApiContext):
        first = api.client.get("/api/v1/auth/logout")
        second = api.client.post("/api/v1/auth/logout", headers=_admin(api))
        third = api.client.get("/api/v1/auth/logout")
        for resp in (first, second, third):
            assert resp.status_code == 200
            assert resp.json() == {"success": True, "data": {}}
            assert _set_cookie(resp).startswith("token=none")


# ---------------------------------------------------------------------------
# AuthGate through HTTP
# ---------------------------------------------------------------------------


class TestAuthGate:
    def test_me_requires_token(self, api: ApiContext):
        resp = api.client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["code"] == "unauthenticated"

    def test_me_with_bearer(self, api: ApiContext):
        resp = api.client.get("/api/v1/auth/me", headers=_admin(api))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["email"] == "admin@example.com"
        assert data["role"] == "admin"
        assert "hashed_password" not in data
        assert "reset_token_hash" not in data

    def test_me_with_cookie(self, api: ApiContext):
        token = _register(api, "cookie@x.com")
        api.client.cookies.clear()
        api.client.cookies.set("token", token)
        resp = api.client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["data"]["email"] == "cookie@x.com"

    def test_forged_and_garbage_tokens_look_the_same(self, api: ApiContext):
        garbage = api.client.get("/api/v1/auth/me", headers=_bearer("garbage"))
        header, payload, _sig = api.admin_token.split(".")
        forged = api.client.get("/api/v1/auth/me", headers=_bearer(f"{header}.{payload}.AAAA"))
        assert garbage.status_code == forged.status_code == 401
        assert garbage.json() == forged.json()

    def test_deleted_user_token_rejected(self, api: ApiContext):
        token = _register(api, "ghost-to-be@x.com")
        user = api.store.find_by_email("ghost-to-be@x.com")
        api.store.delete_by_id(user.id)
        resp = api.client.get("/api/v1/auth/me", headers=_bearer(token))
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Update details / password
# ---------------------------------------------------------------------------


class TestAccountUpdates:
    def test_update_details(self, api: ApiContext):
        token = _register(api, "details@x.com")
        resp = api.client.put(
            "/api/v1/auth/updatedetails",
            json={"name": "Renamed", "email": "Details.New@X.com"},
            headers=_bearer(token),
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()["data"]
        assert data["name"] == "Renamed"
        assert data["email"] == "details.new@x.com"

    def test_update_password(self, api: ApiContext):
        token = _register(api, "pw@x.com")
        resp = api.client.put(
            "/api/v1/auth/updatepassword",
            json={"currentPassword": "validpw", "newPassword": "newpass"},
            headers=_bearer(token),
        )
        assert resp.status_code == 200, resp.text
        assert api.signer.verify(resp.json()["token"])
        login = api.client.post("/api/v1/auth/login", json={"email": "pw@x.com", "password": "newpass"})
        assert login.status_code == 200

    def test_update_password_wrong_current(self, api: ApiContext):
        token = _register(api, "pw2@x.com")
        resp = api.client.put(
            "/api/v1/auth/updatepassword",
            json={"currentPassword": "wrong", "newPassword": "newpass"},
            headers=_bearer(token),
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "incorrect_password"


# ---------------------------------------------------------------------------
# Forgot / reset password
# ---------------------------------------------------------------------------


class TestPasswordReset:
    def test_forgot_then_reset(self, api: ApiContext):
        _register(api, "reset@x.com")
        resp = api.client.post("/api/v1/auth/forgotpassword", json={"email": "Reset@X.com"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "data": "Email sent"}

        body = api.mailer.sent[-1].body
        match = re.search(r"http://testserver/api/v1/auth/resetpassword/([0-9a-f]{40})", body)
        assert match, body

        reset = api.client.put(f"/api/v1/auth/resetpassword/{match.group(1)}", json={"password": "brandnew"})
        assert reset.status_code == 200, reset.text
        assert reset.json()["success"] is True
        assert _set_cookie(reset).startswith("token=")

        login = api.client.post("/api/v1/auth/login", json={"email": "reset@x.com", "password": "brandnew"})
        assert login.status_code == 200

    def test_forgot_with_foreign_host_sends_nothing(self, api: ApiContext):
        _register(api, "hosted@x.com")
        sent_before = len(api.mailer.sent)
        resp = api.client.post(
            "/api/v1/auth/forgotpassword",
            json={"email": "hosted@x.com"},
            headers={"Host": "evil.example"},
        )
        assert resp.status_code == 400
        assert len(api.mailer.sent) == sent_before
        assert all("evil.example" not in m.body for m in api.mailer.sent)
        assert api.store.find_by_email("hosted@x.com").reset_token_hash is None

    def test_forgot_uses_configured_public_url(self, api: ApiContext, monkeypatch):
        _register(api, "public@x.com")
        configured = make_settings(public_base_url="https://id.example.com/")
        monkeypatch.setattr(app.state, "settings", configured)
        resp = api.client.post("/api/v1/auth/forgotpassword", json={"email": "public@x.com"})
        assert resp.status_code == 200
        assert re.search(
            r"https://id\.example\.com/api/v1/auth/resetpassword/[0-9a-f]{40}", api.mailer.sent[-1].body
        )

    def test_forgot_unknown_email(self, api: ApiContext):
        resp = api.client.post("/api/v1/auth/forgotpassword", json={"email": "nobody@x.com"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    def test_forgot_delivery_failure_rolls_back(self, api: ApiContext):
        _register(api, "nomail@x.com")
        api.mailer.fail = True
        resp = api.client.post("/api/v1/auth/forgotpassword", json={"email": "nomail@x.com"})
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "code": "email_failed", "error": "Email could not be sent."}
        user = api.store.find_by_email("nomail@x.com")
        assert user.reset_token_hash is None
        assert user.reset_token_expire is None

    def test_reset_with_bad_token(self, api: ApiContext):
        resp = api.client.put(f"/api/v1/auth/resetpassword/{'f' * 40}", json={"password": "brandnew"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_token"


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


class TestUserManagement:
    def test_requires_authentication(self, api: ApiContext):
        assert api.client.get("/api/v1/users").status_code == 401

    def test_plain_user_forbidden(self, api: ApiContext):
        token = _register(api, "plain@x.com")
        resp = api.client.get("/api/v1/users", headers=_bearer(token))
        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"

    def test_crud_round(self, api: ApiContext):
        created = api.client.post(
            "/api/v1/users",
            json={"name": "Made", "email": "Made@X.com", "password": "validpw", "role": "user"},
            headers=_admin(api),
        )
        assert created.status_code == 201, created.text
        user_id = created.json()["data"]["id"]
        assert created.json()["data"]["email"] == "made@x.com"

        fetched = api.client.get(f"/api/v1/users/{user_id}", headers=_admin(api))
        assert fetched.status_code == 200
        assert fetched.json()["data"]["name"] == "Made"

        updated = api.client.put(
            f"/api/v1/users/{user_id}",
            json={"role": "admin", "password": "ignored1"},
            headers=_admin(api),
        )
        assert updated.status_code == 200
        assert updated.json()["data"]["role"] == "admin"
        still_old = api.client.post("/api/v1/auth/login", json={"email": "made@x.com", "password": "validpw"})
        assert still_old.status_code == 200

        deleted = api.client.delete(f"/api/v1/users/{user_id}", headers=_admin(api))
        assert deleted.status_code == 200
        assert deleted.json() == {"success": True, "data": {}}

        missing = api.client.get(f"/api/v1/users/{user_id}", headers=_admin(api))
        assert missing.status_code == 404

    def test_list_users_pagination(self, api: ApiContext):
        for i in range(3):
            _register(api, f"page{i}@x.com")
        resp = api.client.get("/api/v1/users", params={"page": 1, "limit": 2}, headers=_admin(api))
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["count"] == 2
        assert body["total"] >= 4
        assert body["pagination"]["next"] == {"page": 2, "limit": 2}
        assert body["pagination"]["prev"] is None

    def test_list_users_bad_limit(self, api: ApiContext):
        resp = api.client.get("/api/v1/users", params={"limit": 0}, headers=_admin(api))
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
