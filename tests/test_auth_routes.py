"""Register / login / logout / session resolution through the HTTP surface."""

from datetime import datetime, timedelta, timezone

from conftest import bearer
from core.config import settings
from core.security import (
    SESSION_COOKIE_NAME,
    SessionClaims,
    get_token_issuer,
    hash_password,
    verify_password,
)
from models.audit_log import AuditLog
from models.user import User


def _actions(db, user_id):
    db.expire_all()
    return [
        row.action
        for row in db.query(AuditLog).filter(AuditLog.user_id == user_id).order_by(AuditLog.id)
    ]


# -- register ----------------------------------------------------------------


def test_register_returns_user_token_and_cookie(client, db):
    res = client.post(
        "/auth/register",
        json={"email": "a@x.com", "password": "secret1", "displayName": "A"},
    )

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["user"]["email"] == "a@x.com"
    assert body["user"]["displayName"] == "A"
    assert "passwordHash" not in body["user"]
    assert body["token"]

    cookie = res.headers["set-cookie"]
    assert cookie.startswith(f"{SESSION_COOKIE_NAME}=")
    assert "HttpOnly" in cookie
    assert "Max-Age=604800" in cookie
    assert "Path=/" in cookie
    assert "samesite=lax" in cookie.lower()

    claims = get_token_issuer().verify(body["token"])
    assert claims == SessionClaims(user_id=body["user"]["id"], email="a@x.com")
    assert _actions(db, body["user"]["id"]) == ["USER_REGISTERED"]


def test_register_duplicate_email_is_rejected(client, db):
    payload = {"email": "a@x.com", "password": "secret1", "displayName": "A"}
    assert client.post("/auth/register", json=payload).status_code == 200
    client.cookies.clear()

    res = client.post("/auth/register", json=payload)

    assert res.status_code == 400
    assert res.json()["detail"] == "User already exists"
    assert "set-cookie" not in res.headers
    assert "token" not in res.json()
    assert db.query(User).filter(User.email == "a@x.com").count() == 1


def test_register_normalizes_email_case(client, db):
    res = client.post(
        "/auth/register",
        json={"email": "  Mixed@Example.COM ", "password": "secret1", "displayName": "M"},
    )
    assert res.status_code == 200
    assert res.json()["user"]["email"] == "mixed@example.com"

    client.cookies.clear()
    dup = client.post(
        "/auth/register",
        json={"email": "mixed@example.com", "password": "secret1", "displayName": "M"},
    )
    assert dup.status_code == 400
    assert dup.json()["detail"] == "User already exists"


def test_register_validation_errors_are_reported_per_field(client, db):
    res = client.post(
        "/auth/register",
        json={"email": "not-an-email", "password": "123", "displayName": "   "},
    )

    assert res.status_code == 400
    body = res.json()
    assert body["detail"] == "Invalid input"
    fields = {err["field"] for err in body["errors"]}
    assert {"email", "password", "displayName"} <= fields
    assert db.query(User).count() == 0


def test_register_missing_body_is_validation_error(client):
    res = client.post("/auth/register", json={})
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid input"


def test_register_then_login_succeeds(client, register_user):
    user, _ = register_user(email="b@example.com", password="secret1")

    res = client.post("/auth/login", json={"email": "B@example.com", "password": "secret1"})

    assert res.status_code == 200
    body = res.json()
    assert body["user"] == user
    assert get_token_issuer().verify(body["token"]).user_id == user["id"]
    assert res.headers["set-cookie"].startswith(f"{SESSION_COOKIE_NAME}=")


# -- login -------------------------------------------------------------------


def test_login_records_audit_and_last_login(client, db, register_user):
    user, _ = register_user()

    res = client.post("/auth/login", json={"email": "user@example.com", "password": "secret1"})

    assert res.status_code == 200
    assert _actions(db, user["id"]) == ["USER_REGISTERED", "USER_LOGIN"]
    assert db.get(User, user["id"]).last_login_at is not None


def test_login_failures_are_indistinguishable(client, db, register_user):
    user, _ = register_user()

    wrong_password = client.post(
        "/auth/login", json={"email": "user@example.com", "password": "wrong-pass"}
    )
    unknown_email = client.post(
        "/auth/login", json={"email": "nobody@example.com", "password": "secret1"}
    )

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json() == {"detail": "Invalid credentials"}
    assert "set-cookie" not in wrong_password.headers
    assert _actions(db, user["id"]) == ["USER_REGISTERED"]


def test_login_with_malformed_email_is_validation_error(client):
    res = client.post("/auth/login", json={"email": "nope", "password": "secret1"})
    assert res.status_code == 400


# -- session resolution ------------------------------------------------------


def test_me_with_bearer_header(client, register_user):
    user, token = register_user()

    res = client.get("/auth/me", headers=bearer(token))

    assert res.status_code == 200
    body = res.json()
    assert body["id"] == user["id"]
    assert body["emailVerified"] is False
    assert "passwordHash" not in body


def test_me_with_session_cookie(client, register_user):
    user, token = register_user()
    client.cookies.set(SESSION_COOKIE_NAME, token)

    res = client.get("/auth/me")

    assert res.status_code == 200
    assert res.json()["id"] == user["id"]


def test_bearer_header_is_checked_before_cookie(client, register_user):
    first, first_token = register_user(email="first@example.com")
    second, second_token = register_user(email="second@example.com")
    client.cookies.set(SESSION_COOKIE_NAME, first_token)

    res = client.get("/auth/me", headers=bearer(second_token))

    assert res.json()["id"] == second["id"]


def test_me_without_session_is_unauthorized(client):
    res = client.get("/auth/me")
    assert res.status_code == 401
    assert res.json()["detail"] == "Authentication required"


def test_expired_token_is_unauthorized(client, register_user):
    user, _ = register_user()
    old = get_token_issuer().issue(
        SessionClaims(user_id=user["id"], email=user["email"]),
        issued_at=datetime.now(timezone.utc) - timedelta(days=8),
    )

    assert client.get("/auth/me", headers=bearer(old)).status_code == 401


def test_invalid_and_missing_tokens_look_the_same(client):
    missing = client.get("/auth/me")
    garbage = client.get("/auth/me", headers=bearer("garbage"))
    assert missing.json() == garbage.json()


def test_token_of_deleted_user_is_unauthorized(client, db, register_user):
    user, token = register_user()
    db.query(User).filter(User.id == user["id"]).delete()
    db.commit()

    assert client.get("/auth/me", headers=bearer(token)).status_code == 401


# -- logout ------------------------------------------------------------------


def test_logout_without_session_succeeds_silently(client, db):
    res = client.post("/auth/logout")

    assert res.status_code == 200
    assert res.json() == {"success": True}
    assert "Max-Age=0" in res.headers["set-cookie"]
    assert db.query(AuditLog).count() == 0


def test_logout_with_session_clears_cookie_and_audits_once(client, db, register_user):
    user, token = register_user()
    client.cookies.set(SESSION_COOKIE_NAME, token)

    res = client.post("/auth/logout")

    assert res.status_code == 200
    cookie = res.headers["set-cookie"]
    assert cookie.startswith(f"{SESSION_COOKIE_NAME}=")
    assert "Max-Age=0" in cookie
    assert "Path=/" in cookie
    assert _actions(db, user["id"]).count("USER_LOGOUT") == 1


def test_token_stays_valid_after_logout(client, register_user):
    _, token = register_user()
    client.post("/auth/logout", headers=bearer(token))

    assert client.get("/auth/me", headers=bearer(token)).status_code == 200


# -- profile & password ------------------------------------------------------


def test_update_profile(client, db, register_user):
    user, token = register_user()

    res = client.put("/auth/profile", json={"displayName": "  New Name "}, headers=bearer(token))

    assert res.status_code == 200
    assert res.json()["displayName"] == "New Name"
    assert "PROFILE_UPDATED" in _actions(db, user["id"])


def test_change_password(client, db, register_user):
    user, token = register_user(password="secret1")

    bad = client.put(
        "/auth/change-password",
        json={"oldPassword": "wrong1", "newPassword": "secret2"},
        headers=bearer(token),
    )
    assert bad.status_code == 400

    ok = client.put(
        "/auth/change-password",
        json={"oldPassword": "secret1", "newPassword": "secret2"},
        headers=bearer(token),
    )
    assert ok.status_code == 200

    assert client.post(
        "/auth/login", json={"email": user["email"], "password": "secret1"}
    ).status_code == 401
    assert client.post(
        "/auth/login", json={"email": user["email"], "password": "secret2"}
    ).status_code == 200
    assert "PASSWORD_CHANGED" in _actions(db, user["id"])


def test_activity_lists_own_entries_newest_first(client, register_user):
    user, token = register_user()
    register_user(email="other@example.com")
    client.post("/auth/login", json={"email": user["email"], "password": "secret1"})
    client.cookies.clear()

    res = client.get("/auth/activity", headers=bearer(token))

    assert res.status_code == 200
    actions = [e["action"] for e in res.json()["entries"]]
    assert actions == ["USER_LOGIN", "USER_REGISTERED"]


# -- failure boundary --------------------------------------------------------


def test_audit_failure_aborts_registration(client, db, monkeypatch):
    def _broken(*args, **kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr("core.audit.record", _broken)

    res = client.post(
        "/auth/register",
        json={"email": "a@x.com", "password": "secret1", "displayName": "A"},
    )

    assert res.status_code == 500
    assert res.json() == {"detail": "Registration failed"}
    assert "set-cookie" not in res.headers
    assert db.query(User).count() == 0


def test_register_duplicate_caught_by_unique_index(client, db, monkeypatch):
    def _sign_up_concurrently(plain):
        # Another request claims the address between the lookup and the insert
        db.add(User(email="race@example.com", display_name="Other", password_hash=hash_password(plain)))
        db.commit()
        return hash_password(plain)

    monkeypatch.setattr("auth.router.hash_password", _sign_up_concurrently)

    res = client.post(
        "/auth/register",
        json={"email": "race@example.com", "password": "secret1", "displayName": "Late"},
    )

    assert res.status_code == 400
    assert res.json() == {"detail": "User already exists"}
    assert "set-cookie" not in res.headers
    db.expire_all()
    assert db.query(User).filter(User.email == "race@example.com").count() == 1
    assert db.query(AuditLog).count() == 0


# -- cookie flags ------------------------------------------------------------


def test_session_cookie_not_secure_outside_production(client, register_user):
    register_user()

    res = client.post("/auth/login", json={"email": "user@example.com", "password": "secret1"})

    assert "Secure" not in res.headers["set-cookie"]


def test_session_cookie_secure_in_production(client, register_user, monkeypatch):
    register_user()
    monkeypatch.setattr(settings, "environment", "production")

    login = client.post("/auth/login", json={"email": "user@example.com", "password": "secret1"})
    logout = client.post("/auth/logout")

    assert login.status_code == logout.status_code == 200
    assert "Secure" in login.headers["set-cookie"]
    assert "Secure" in logout.headers["set-cookie"]
    assert "Max-Age=0" in logout.headers["set-cookie"]


# -- timing ------------------------------------------------------------------


def test_unknown_email_still_runs_a_full_password_check(client, monkeypatch, register_user):
    register_user()
    checked = []

    def _spy(plain, stored_hash):
        checked.append(stored_hash)
        return verify_password(plain, stored_hash)

    monkeypatch.setattr("auth.router.verify_password", _spy)

    unknown = client.post("/auth/login", json={"email": "nobody@example.com", "password": "secret1"})
    wrong = client.post("/auth/login", json={"email": "user@example.com", "password": "wrong-pass"})

    assert unknown.status_code == wrong.status_code == 401
    assert len(checked) == 2
    assert all(h.startswith("$pbkdf2-sha256$") for h in checked)
