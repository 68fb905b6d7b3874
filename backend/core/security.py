# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Central security module.  All cryptographic primitives and auth guards live
here.  No other module should touch raw crypto directly.

Responsibilities
----------------
1. Password hashing / verification          (passlib pbkdf2_sha256)
2. Session token issue / verification       (PyJWT / HS256)
3. Session resolution from a request        (Bearer header, then cookie)
4. FastAPI dependency guards                (get_optional_user, get_current_user)
5. Session cookie helpers

Session tokens are self-contained.  There is no server-side revocation list:
logout only clears the cookie, and a token stays valid until ``exp``.
"""

import enum
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import jwt as _jwt        # PyJWT
from passlib.hash import pbkdf2_sha256 as _pbkdf2
from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from auth.schemas import UserSummary
from core.config import Settings, settings
from core.logger import logger
from database import get_db
from models.user import User

SESSION_COOKIE_NAME = "auth-token"

# Token "typ" claims.  A token of one type never verifies as another.
SESSION_TOKEN = "session"
EMAIL_VERIFICATION_TOKEN = "email_verification"

# ---------------------------------------------------------------------------
# 1.  pbkdf2_sha256 – password hashing
# ---------------------------------------------------------------------------
# Pure Python, salt embedded in the hash string.  The round count comes from
# PASSWORD_HASH_ROUNDS (600 000 by default).
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """
    Hash a plaintext password with PBKDF2-SHA256.

    Returns the full passlib hash string, e.g. ``"$pbkdf2-sha256$600000$..."``.
    A fresh salt is drawn on every call, so hashing the same password twice
    gives two different strings.
    """
    return _pbkdf2.using(rounds=settings.password_hash_rounds).hash(plain)


def verify_password(plain: str, stored_hash: str) -> bool:
    """
    Constant-time verification of a plaintext password against a hash
    produced by :func:`hash_password`.

    Returns False on a mismatch and on a stored value that is not a
    pbkdf2_sha256 hash at all.
    """
    try:
        return _pbkdf2.verify(plain, stored_hash)
    except (ValueError, TypeError):
        logger.warning("Stored password hash is not a valid pbkdf2_sha256 hash")
        return False


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """
    A hash of a random password at the configured round count.  Login checks
    unknown emails against it so both failure paths cost one full verify.
    """
    return hash_password(secrets.token_urlsafe(16))


# ---------------------------------------------------------------------------
# 2.  JWT – session tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    email: str


class TokenStatus(str, enum.Enum):
    VALID = "valid"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenVerification:
    """Outcome of :meth:`TokenIssuer.inspect`.  ``claims`` is set only when
    ``status`` is VALID."""

    status: TokenStatus
    claims: Optional[SessionClaims] = None

    @property
    def ok(self) -> bool:
        return self.status is TokenStatus.VALID


class TokenIssuer:
    """
    Signs and verifies HS256 tokens carrying ``{user_id, email}``.

    One instance is built from the settings at start-up (see
    :data:`token_issuer`) and handed to the endpoints through
    :func:`get_token_issuer`.  Rotating ``secret_key`` invalidates every
    token issued under the old key.
    """

    algorithm = "HS256"

    def __init__(self, secret_key: str, lifetime: timedelta):
        if not secret_key:
            raise RuntimeError("SECRET_KEY must be set")
        self._secret_key = secret_key
        self.lifetime = lifetime

    @classmethod
    def from_settings(cls, cfg: Settings) -> "TokenIssuer":
        return cls(cfg.secret_key, timedelta(minutes=cfg.access_token_expire_minutes))

    def issue(
        self,
        claims: SessionClaims,
        issued_at: Optional[datetime] = None,
        lifetime: Optional[timedelta] = None,
        token_type: str = SESSION_TOKEN,
    ) -> str:
        """Sign *claims*.  ``exp`` is ``issued_at + lifetime``."""
        issued_at = issued_at or datetime.now(timezone.utc)
        payload = {
            "user_id": claims.user_id,
            "email": claims.email,
            "typ": token_type,
            "iat": issued_at,
            "exp": issued_at + (lifetime or self.lifetime),
        }
        return _jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def inspect(self, token: str, token_type: str = SESSION_TOKEN) -> TokenVerification:
        """
        Check signature, expiry and shape of *token*, reporting which check
        failed.  Only for internal use and logging; callers facing a client
        should use :meth:`verify`.
        """
        try:
            payload = _jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except _jwt.ExpiredSignatureError:
            return TokenVerification(TokenStatus.EXPIRED)
        except _jwt.InvalidSignatureError:
            return TokenVerification(TokenStatus.BAD_SIGNATURE)
        except _jwt.InvalidTokenError:
            return TokenVerification(TokenStatus.MALFORMED)

        user_id = payload.get("user_id")
        email = payload.get("email")
        if (
            payload.get("typ") != token_type
            or not isinstance(user_id, int)
            or isinstance(user_id, bool)
            or not isinstance(email, str)
        ):
            return TokenVerification(TokenStatus.MALFORMED)

        return TokenVerification(TokenStatus.VALID, SessionClaims(user_id=user_id, email=email))

    def verify(self, token: str, token_type: str = SESSION_TOKEN) -> Optional[SessionClaims]:
        """Return the claims of a valid token, or None.  Malformed, forged
        and expired tokens are indistinguishable here."""
        result = self.inspect(token, token_type)
        if not result.ok:
            logger.info("Rejected %s token: %s", token_type, result.status.value)
            return None
        return result.claims


token_issuer = TokenIssuer.from_settings(settings)


def get_token_issuer() -> TokenIssuer:
    """FastAPI dependency.  Override in tests to swap the signing secret."""
    return token_issuer


# ---------------------------------------------------------------------------
# 3.  Session resolution
# ---------------------------------------------------------------------------


def credential_from_request(request: Request) -> Optional[str]:
    """
    Return the bearer credential of *request*: the ``Authorization: Bearer``
    header first, then the session cookie.  None when neither is present.
    """
    scheme, _, value = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.cookies.get(SESSION_COOKIE_NAME) or None


def resolve_session_user(
    request: Request, db: Session, issuer: TokenIssuer
) -> Optional[UserSummary]:
    """
    Resolve *request* to the user it is authenticated as.

    Returns None for an anonymous request, for an invalid or expired token,
    and for a token whose user no longer exists.  The user row is re-read on
    every call; the claims are only trusted for the id.
    """
    token = credential_from_request(request)
    if token is None:
        return None

    claims = issuer.verify(token)
    if claims is None:
        return None

    row = (
        db.query(User.id, User.email, User.display_name)
        .filter(User.id == claims.user_id)
        .first()
    )
    if row is None:
        logger.info("Session token for missing user_id=%s", claims.user_id)
        return None
    return UserSummary(id=row.id, email=row.email, display_name=row.display_name)


# ---------------------------------------------------------------------------
# 4.  FastAPI dependency guards
# ---------------------------------------------------------------------------


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Optional[UserSummary]:
    """Dependency: the session user, or None for anonymous callers."""
    return resolve_session_user(request, db, issuer)


def get_current_user(
    user: Optional[UserSummary] = Depends(get_optional_user),
) -> UserSummary:
    """
    Dependency: like :func:`get_optional_user` but anonymous access is an
    error.  Raises 401 without saying why the session was rejected.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


# ---------------------------------------------------------------------------
# 5.  Session cookie
# ---------------------------------------------------------------------------


def set_session_cookie(response: Response, token: str, issuer: TokenIssuer) -> None:
    """Attach *token* as the http-only session cookie."""
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=int(issuer.lifetime.total_seconds()),
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    """Expire the session cookie immediately.  The token itself stays valid."""
    response.set_cookie(
        SESSION_COOKIE_NAME,
        "",
        max_age=0,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


# -- IP Address extraction ----------------------------------------------------


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address from the request.
    Checks X-Forwarded-For header first (for proxies), then falls back to client host.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (original client)
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"
