"""
HTTP-level tests: cookies, error bodies, guards and the admin surface.
"""
from models.audit_log import AuditLog
from security import totp

from conftest import NEW_PASSWORD, PASSWORD, WRONG_PASSWORD


def _login(client, email="user@x.com", password=PASSWORD, role="student"):
    return client.post("/auth/login", json={"email": email, "password": password, "role": role})


class TestAuthRoutes:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json() == {"status": "ok"}
        assert resp.headers["Cache-Control"] == "no-store"

    def test_register_verify_login_sets_cookies(self, client, outbox):
        resp = client.post("/auth/register", json={
            "full_name": "Jamie Rivera", "email": "new@x.com", "password": PASSWORD, "role": "student",
        })
        assert resp.status_code == 201
        assert resp.get_json()["verification_sent"] is True

        resp = client.post("/auth/verify-email", json={"email": "new@x.com", "otp": outbox.last_code()})
        assert resp.status_code == 200

        resp = _login(client, email="new@x.com")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["email"] == "new@x.com"
        assert client.get_cookie("accessToken") is not None
        assert client.get_cookie("refreshToken") is not None
        cookies = resp.headers.getlist("Set-Cookie")
        assert any(c.startswith("refreshToken=") and "HttpOnly" in c for c in cookies)

        resp = client.get("/auth/me")
        assert resp.status_code == 200
        assert resp.get_json()["user"]["email"] == "new@x.com"

    def test_error_body_shape(self, client, make_user):
        make_user()
        resp = client.post("/auth/login", json={"email": "user@x.com", "password": WRONG_PASSWORD,
                                                "role": "student"},
                           headers={"X-Request-ID": "req-123"})
        assert resp.status_code == 401
        body = resp.get_json()
        assert body["error"] == "Invalid user credentials"
        assert body["kind"] == "INVALID_CREDENTIALS"
        assert body["request_id"] == "req-123"
        assert resp.headers["X-Request-ID"] == "req-123"

    def test_lockout_response(self, client, make_user):
        make_user()
        for _ in range(4):
            assert _login(client, password=WRONG_PASSWORD).status_code == 401
        resp = _login(client, password=WRONG_PASSWORD)
        assert resp.status_code == 429
        assert resp.get_json()["retry_after_minutes"] == 10

        resp = _login(client)
        assert resp.status_code == 429
        assert resp.get_json()["kind"] == "RATE_LIMITED"

    def test_role_mismatch_is_forbidden(self, client, make_user):
        make_user(role="recruiter")
        resp = _login(client, role="student")
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "ROLE_MISMATCH"

    def test_refresh_rotates_cookie_and_reuse_is_rejected(self, client, make_user):
        make_user()
        _login(client)
        original = client.get_cookie("refreshToken").value

        resp = client.post("/auth/refresh-token")
        assert resp.status_code == 200
        rotated = client.get_cookie("refreshToken").value
        assert rotated != original

        client.set_cookie("refreshToken", original)
        resp = client.post("/auth/refresh-token")
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Security alert: session reuse detected. Please sign in again."
        assert client.get_cookie("refreshToken") is None
        assert client.get_cookie("accessToken") is None
        assert client.get("/auth/me").status_code == 401

        resp = client.post("/auth/refresh-token", json={"refresh_token": rotated})
        assert resp.status_code == 403

    def test_refresh_without_token(self, client):
        resp = client.post("/auth/refresh-token")
        assert resp.status_code == 401

    def test_logout_clears_cookies(self, client, make_user):
        make_user()
        _login(client)
        resp = client.post("/auth/logout")
        assert resp.status_code == 200
        assert client.get_cookie("refreshToken") is None
        assert client.get("/auth/me").status_code == 401

    def test_change_password(self, client, make_user):
        make_user()
        _login(client)
        resp = client.post("/auth/change-password",
                           json={"old_password": PASSWORD, "new_password": NEW_PASSWORD})
        assert resp.status_code == 200

        resp = client.post("/auth/change-password",
                           json={"old_password": NEW_PASSWORD, "new_password": PASSWORD})
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "PASSWORD_REUSED"

    def test_change_password_requires_login(self, client):
        resp = client.post("/auth/change-password",
                           json={"old_password": PASSWORD, "new_password": NEW_PASSWORD})
        assert resp.status_code == 401

    def test_weak_password_lists_every_rule(self, client, outbox):
        resp = client.post("/auth/register", json={
            "full_name": "Jamie Rivera", "email": "new@x.com", "password": "abc", "role": "student",
        })
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "WEAK_PASSWORD"
        assert len(body["details"]) == 4

    def test_forgot_and_reset_password(self, client, make_user, outbox):
        make_user()
        assert client.post("/auth/forgot-password", json={"email": "user@x.com"}).status_code == 200
        code = outbox.last_code()
        assert client.post("/auth/verify-otp", json={"email": "user@x.com", "otp": code}).status_code == 200

        resp = client.post("/auth/reset-password",
                           json={"email": "user@x.com", "otp": code, "new_password": NEW_PASSWORD})
        assert resp.status_code == 200
        assert _login(client, password=NEW_PASSWORD).status_code == 200

    def test_authenticator_flow(self, client, make_user):
        make_user()
        _login(client)
        secret = client.post("/auth/2fa/authenticator/setup").get_json()["secret"]
        resp = client.post("/auth/2fa/authenticator/confirm", json={"code": totp.generate_code(secret)})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["two_factor_method"] == "authenticator"

        client.post("/auth/logout")
        resp = _login(client)
        body = resp.get_json()
        assert body["requires_verification"] is True
        assert body["method"] == "authenticator"
        assert "access_token" not in body
        assert client.get_cookie("accessToken") is None

        # challenge travels in its own cookie
        resp = client.post("/auth/verify-login-otp",
                           json={"email": "user@x.com", "otp": totp.generate_code(secret)})
        assert resp.status_code == 200
        assert client.get_cookie("accessToken") is not None

    def test_non_text_fields_are_rejected(self, client, make_user, outbox):
        make_user()
        resp = client.post("/auth/login", json={"email": 12345, "password": PASSWORD, "role": "student"})
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "VALIDATION"

        resp = client.post("/auth/register", json={
            "full_name": 42, "email": "new@x.com", "password": PASSWORD, "role": "student",
        })
        assert resp.status_code == 400

        assert client.post("/auth/login", json=["user@x.com"]).status_code == 400
        assert client.post("/auth/refresh-token", json={"refresh_token": 7}).status_code == 401

    def test_numeric_login_code_is_rejected(self, client, make_user, outbox):
        make_user()
        _login(client)
        assert client.post("/auth/toggle-2fa", json={"enabled": True}).status_code == 200
        client.post("/auth/logout")

        assert _login(client).get_json()["method"] == "email"
        resp = client.post("/auth/verify-login-otp", json={"email": "user@x.com", "otp": 123456})
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "VALIDATION"

        resp = client.post("/auth/verify-login-otp", json={"email": "user@x.com", "otp": outbox.last_code()})
        assert resp.status_code == 200

    def test_password_strength(self, client):
        resp = client.post("/auth/password-strength", json={"password": "abc"})
        assert resp.status_code == 200
        assert resp.get_json()["valid"] is False

    def test_login_rate_limit_per_ip(self, app, client, make_user):
        make_user()
        app.config["LOGIN_RATE_MAX_REQUESTS"] = 2
        assert _login(client).status_code == 200
        assert _login(client).status_code == 200
        resp = _login(client)
        assert resp.status_code == 429
        assert resp.get_json()["retry_after_seconds"] > 0


class TestAdminRoutes:

    def test_requires_admin(self, client, make_user):
        user = make_user()
        assert client.get(f"/admin/users/{user.id}/sessions").status_code == 401
        _login(client)
        assert client.get(f"/admin/users/{user.id}/sessions").status_code == 403
        assert AuditLog.query.filter_by(action="AUTH_FORBIDDEN").count() == 1

    def test_sessions_and_flag_suspicious(self, app, make_user):
        target = make_user()
        make_user(email="admin@x.com", role="admin")

        victim_client = app.test_client()
        _login(victim_client)
        admin = app.test_client()
        _login(admin, email="admin@x.com", role="admin")

        resp = admin.get(f"/admin/users/{target.id}/sessions")
        assert resp.status_code == 200
        assert len(resp.get_json()["sessions"]) == 1

        resp = admin.post(f"/admin/users/{target.id}/flag-suspicious")
        assert resp.get_json()["revoked_sessions"] == 1
        assert victim_client.post("/auth/refresh-token").status_code == 403

    def test_unlock(self, client, make_user):
        make_user()
        make_user(email="admin@x.com", role="admin")
        for _ in range(5):
            _login(client, password=WRONG_PASSWORD)
        assert _login(client).status_code == 429

        _login(client, email="admin@x.com", role="admin")
        resp = client.post("/admin/login-attempts/unlock", json={"email": "user@x.com"})
        assert resp.status_code == 200
        assert resp.get_json()["was_locked"] is True
        assert _login(client).status_code == 200
