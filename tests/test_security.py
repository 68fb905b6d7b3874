"""Password hashing, session tokens and credential extraction."""

from datetime import datetime, timedelta, timezone

from starlette.requests import Request

from core.security import (
    EMAIL_VERIFICATION_TOKEN,
    SESSION_COOKIE_NAME,
    SessionClaims,
    TokenIssuer,
    TokenStatus,
    credential_from_request,
    hash_password,
    verify_password,
)

SECRET = "unit-test-secret-0123456789abcdef0123456789abcdef"


def _issuer(secret=SECRET):
    return TokenIssuer(secret, timedelta(days=7))


def _request(headers=None):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


# -- hashing -----------------------------------------------------------------


def test_hash_is_salted_and_verifies():
    first = hash_password("secret1")
    second = hash_password("secret1")

    assert first.startswith("$pbkdf2-sha256$")
    assert first != second
    assert verify_password("secret1", first)
    assert verify_password("secret1", second)


def test_verify_rejects_wrong_password():
    stored = hash_password("secret1")
    assert verify_password("secret2", stored) is False


def test_verify_returns_false_for_garbage_hash():
    assert verify_password("secret1", "not-a-hash") is False


# -- tokens ------------------------------------------------------------------


def test_issue_then_verify_returns_same_claims():
    issuer = _issuer()
    claims = SessionClaims(user_id=42, email="a@x.com")

    token = issuer.issue(claims)

    assert issuer.verify(token) == claims
    assert issuer.inspect(token).status is TokenStatus.VALID


def test_token_issued_six_days_ago_is_still_valid():
    issuer = _issuer()
    claims = SessionClaims(user_id=1, email="a@x.com")
    issued = datetime.now(timezone.utc) - timedelta(days=6)

    assert issuer.verify(issuer.issue(claims, issued_at=issued)) == claims


def test_token_older_than_seven_days_is_expired():
    issuer = _issuer()
    issued = datetime.now(timezone.utc) - timedelta(days=7, minutes=1)
    token = issuer.issue(SessionClaims(user_id=1, email="a@x.com"), issued_at=issued)

    assert issuer.verify(token) is None
    assert issuer.inspect(token).status is TokenStatus.EXPIRED


def test_token_signed_with_other_secret_is_rejected():
    token = _issuer("another-secret-0123456789abcdef0123456789abcdef").issue(
        SessionClaims(user_id=1, email="a@x.com")
    )
    result = _issuer().inspect(token)

    assert result.status is TokenStatus.BAD_SIGNATURE
    assert result.claims is None
    assert _issuer().verify(token) is None


def test_tampered_payload_is_rejected():
    issuer = _issuer()
    header, payload, signature = issuer.issue(SessionClaims(user_id=1, email="a@x.com")).split(".")
    forged = issuer.issue(SessionClaims(user_id=2, email="b@x.com")).split(".")[1]

    assert issuer.verify(f"{header}.{forged}.{signature}") is None


def test_malformed_token_is_rejected():
    issuer = _issuer()
    assert issuer.inspect("garbage").status is TokenStatus.MALFORMED
    assert issuer.inspect("").status is TokenStatus.MALFORMED
    assert issuer.verify("a.b.c") is None


def test_verification_token_is_not_a_session_token():
    issuer = _issuer()
    claims = SessionClaims(user_id=1, email="a@x.com")
    token = issuer.issue(claims, token_type=EMAIL_VERIFICATION_TOKEN)

    assert issuer.verify(token) is None
    assert issuer.verify(token, token_type=EMAIL_VERIFICATION_TOKEN) == claims
    assert issuer.verify(issuer.issue(claims), token_type=EMAIL_VERIFICATION_TOKEN) is None


# -- credential extraction ---------------------------------------------------


def test_credential_absent():
    assert credential_from_request(_request()) is None


def test_credential_from_bearer_header():
    assert credential_from_request(_request({"Authorization": "Bearer abc"})) == "abc"


def test_credential_from_cookie():
    req = _request({"Cookie": f"{SESSION_COOKIE_NAME}=xyz"})
    assert credential_from_request(req) == "xyz"


def test_bearer_header_wins_over_cookie():
    req = _request({
        "Authorization": "Bearer from-header",
        "Cookie": f"{SESSION_COOKIE_NAME}=from-cookie",
    })
    assert credential_from_request(req) == "from-header"


def test_non_bearer_header_falls_back_to_cookie():
    req = _request({
        "Authorization": "Basic dXNlcjpwYXNz",
        "Cookie": f"{SESSION_COOKIE_NAME}=from-cookie",
    })
    assert credential_from_request(req) == "from-cookie"
