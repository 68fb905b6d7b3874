"""Password reset and email verification flows."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import bearer
from core import mailer
from core.config import settings
from core.security import EMAIL_VERIFICATION_TOKEN, SessionClaims, get_token_issuer
from models.audit_log import AuditLog
from models.password_reset import PasswordReset


@pytest.fixture
def outbox(monkeypatch):
    """Capture outgoing mail as ``(kind, email, token)`` tuples."""
    sent = []
    monkeypatch.setattr(
        "auth.router.send_password_reset_email",
        lambda email, token: sent.append(("reset", email, token)),
    )
    monkeypatch.setattr(
        "auth.router.send_verification_email",
        lambda email, token: sent.append(("verify", email, token)),
    )
    return sent


# -- password reset ----------------------------------------------------------


def test_forgot_password_answers_the_same_for_unknown_email(client, outbox, register_user):
    register_user()

    known = client.post("/auth/forgot-password", json={"email": "user@example.com"})
    unknown = client.post("/auth/forgot-password", json={"email": "ghost@example.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert [kind for kind, _, _ in outbox if kind == "reset"] == ["reset"]


def test_reset_password_with_mailed_token(client, db, outbox, register_user):
    user, _ = register_user(password="secret1")
    client.post("/auth/forgot-password", json={"email": user["email"]})
    token = next(tok for kind, _, tok in outbox if kind == "reset")

    # Only a digest is stored
    assert db.query(PasswordReset).filter(PasswordReset.reset_token == token).count() == 0

    res = client.post("/auth/reset-password", json={"token": token, "password": "brand-new"})
    assert res.status_code == 200

    assert client.post(
        "/auth/login", json={"email": user["email"], "password": "brand-new"}
    ).status_code == 200

    # Single use
    again = client.post("/auth/reset-password", json={"token": token, "password": "another1"})
    assert again.status_code == 400

    actions = {row.action for row in db.query(AuditLog).filter(AuditLog.user_id == user["id"])}
    assert {"PASSWORD_RESET_REQUESTED", "PASSWORD_RESET"} <= actions


def test_reset_password_rejects_expired_token(client, db, outbox, register_user):
    user, _ = register_user()
    client.post("/auth/forgot-password", json={"email": user["email"]})
    token = next(tok for kind, _, tok in outbox if kind == "reset")

    reset = db.query(PasswordReset).filter(PasswordReset.user_id == user["id"]).one()
    reset.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()

    res = client.post("/auth/reset-password", json={"token": token, "password": "brand-new"})

    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid or expired reset token"


def test_reset_password_rejects_unknown_token(client):
    res = client.post("/auth/reset-password", json={"token": "nope", "password": "brand-new"})
    assert res.status_code == 400


def test_new_reset_request_replaces_previous_one(client, db, outbox, register_user):
    user, _ = register_user()
    client.post("/auth/forgot-password", json={"email": user["email"]})
    client.post("/auth/forgot-password", json={"email": user["email"]})
    first, second = [tok for kind, _, tok in outbox if kind == "reset"]

    assert db.query(PasswordReset).filter(PasswordReset.user_id == user["id"]).count() == 1
    assert client.post(
        "/auth/reset-password", json={"token": first, "password": "brand-new"}
    ).status_code == 400
    assert client.post(
        "/auth/reset-password", json={"token": second, "password": "brand-new"}
    ).status_code == 200


# -- email verification ------------------------------------------------------


def test_registration_mails_a_verification_token(client, outbox):
    res = client.post(
        "/auth/register",
        json={"email": "v@example.com", "password": "secret1", "displayName": "V"},
    )
    user = res.json()["user"]
    token = next(tok for kind, _, tok in outbox if kind == "verify")

    claims = get_token_issuer().verify(token, token_type=EMAIL_VERIFICATION_TOKEN)
    assert claims == SessionClaims(user_id=user["id"], email="v@example.com")
    # Not usable as a session
    assert client.get("/auth/me", headers=bearer(token)).status_code == 401


def test_verify_email_marks_user_verified(client, db, outbox, register_user):
    user, session_token = register_user()
    token = next(tok for kind, _, tok in outbox if kind == "verify")

    res = client.post("/auth/verify-email", json={"token": token})

    assert res.status_code == 200
    me = client.get("/auth/me", headers=bearer(session_token)).json()
    assert me["emailVerified"] is True

    # Verifying twice is harmless and audited once
    assert client.post("/auth/verify-email", json={"token": token}).status_code == 200
    db.expire_all()
    count = (
        db.query(AuditLog)
        .filter(AuditLog.user_id == user["id"], AuditLog.action == "EMAIL_VERIFIED")
        .count()
    )
    assert count == 1


def test_verify_email_rejects_session_token(client, register_user):
    _, session_token = register_user()

    res = client.post("/auth/verify-email", json={"token": session_token})

    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid or expired verification token"


# -- delivery placeholder ----------------------------------------------------


@pytest.fixture
def log_lines(monkeypatch):
    lines = []
    monkeypatch.setattr(mailer.logger, "info", lambda msg, *args: lines.append(msg % args))
    return lines


def test_mail_link_is_logged_at_info_outside_production(log_lines):
    mailer.send_password_reset_email("a@example.com", "tok123")

    assert any("token=tok123" in line for line in log_lines)


def test_mail_link_is_not_logged_in_production(log_lines, monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")

    mailer.send_verification_email("a@example.com", "tok123")

    assert log_lines
    assert not any("tok123" in line for line in log_lines)
