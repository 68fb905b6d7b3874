# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Auth endpoints – registration, login/logout, profile, password management,
email verification and the caller's own activity trail.

Security notes
--------------
* Login returns the *same* error whether the email doesn't exist or the
  password is wrong.  This prevents user-enumeration attacks.
* forgot-password answers identically for known and unknown addresses.
* Logout only clears the cookie.  Tokens are self-contained and remain
  valid until they expire.
* change-password verifies the old password before accepting the new one,
  so a stolen (but not yet expired) token alone cannot reset the password.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import as_utc, get_db
from core import audit
from core.audit import AuditAction, TargetType
from core.config import settings
from core.errors import endpoint_guard
from core.logger import logger
from core.mailer import send_password_reset_email, send_verification_email
from core.security import (
    EMAIL_VERIFICATION_TOKEN,
    SessionClaims,
    TokenIssuer,
    clear_session_cookie,
    dummy_password_hash,
    get_client_ip,
    get_current_user,
    get_optional_user,
    get_token_issuer,
    hash_password,
    set_session_cookie,
    verify_password,
)
from models.audit_log import AuditLog
from models.password_reset import PasswordReset
from models.user import User
from auth.schemas import (
    AuditEntryListResponse,
    AuditEntryRow,
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileResponse,
    RegisterRequest,
    ResetPasswordRequest,
    SuccessResponse,
    UpdateProfileRequest,
    UserSummary,
    VerifyEmailRequest,
)

router = APIRouter(prefix="/auth", tags=["auth"])

# Generic message used for both "no such email" and "wrong password"
_LOGIN_FAIL = "Invalid credentials"
_USER_EXISTS = "User already exists"
_RESET_SENT = "If an account exists for this email, a reset link has been sent"


def _reset_digest(token: str) -> str:
    # Only the digest is stored, so a leaked table cannot be replayed
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _load_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


def _start_session(user: User, response: Response, issuer: TokenIssuer) -> AuthResponse:
    token = issuer.issue(SessionClaims(user_id=user.id, email=user.email))
    set_session_cookie(response, token, issuer)
    return AuthResponse(user=UserSummary.model_validate(user), token=token)


# ---------------------------------------------------------------------------
# POST /auth/register
# ---------------------------------------------------------------------------


@router.post("/register", response_model=AuthResponse)
def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Create an account, start a session and send the verification mail."""
    with endpoint_guard("Registration failed"):
        if db.query(User.id).filter(User.email == body.email).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_USER_EXISTS)

        user = User(
            email=body.email,
            display_name=body.display_name,
            password_hash=hash_password(body.password),
            email_verified=False,
        )
        db.add(user)
        try:
            db.flush()  # get user.id; the unique index catches concurrent sign-ups
        except IntegrityError:
            db.rollback()
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_USER_EXISTS)

        audit.record(
            db, user.id, AuditAction.USER_REGISTERED, TargetType.USER, user.id,
            request_ip=get_client_ip(request),
        )
        db.commit()
        logger.info("Registered user_id=%s", user.id)

        verification_token = issuer.issue(
            SessionClaims(user_id=user.id, email=user.email),
            lifetime=timedelta(minutes=settings.email_verification_expire_minutes),
            token_type=EMAIL_VERIFICATION_TOKEN,
        )
        send_verification_email(user.email, verification_token)

        return _start_session(user, response, issuer)


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=AuthResponse)
def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Authenticate and return a signed session token."""
    with endpoint_guard("Login failed"):
        user = db.query(User).filter(User.email == body.email).first()

        # Unified failure path – no information leaks about whether the email
        # exists, neither in the answer nor in how long it takes
        stored_hash = user.password_hash if user else dummy_password_hash()
        password_ok = verify_password(body.password, stored_hash)
        if not user or not password_ok:
            logger.info("Failed login attempt from %s", get_client_ip(request))
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_LOGIN_FAIL)

        user.last_login_at = datetime.now(timezone.utc)
        audit.record(
            db, user.id, AuditAction.USER_LOGIN, TargetType.USER, user.id,
            request_ip=get_client_ip(request),
        )
        db.commit()

        return _start_session(user, response, issuer)


# ---------------------------------------------------------------------------
# POST /auth/logout
# ---------------------------------------------------------------------------


@router.post("/logout", response_model=SuccessResponse)
def logout(
    request: Request,
    response: Response,
    current_user: Optional[UserSummary] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """
    Clear the session cookie.  Succeeds for anonymous callers too; only a
    resolved session produces a USER_LOGOUT entry.
    """
    with endpoint_guard("Logout failed"):
        if current_user is not None:
            audit.record(
                db, current_user.id, AuditAction.USER_LOGOUT, TargetType.USER, current_user.id,
                request_ip=get_client_ip(request),
            )
            db.commit()

        clear_session_cookie(response)
        return SuccessResponse(success=True)


# ---------------------------------------------------------------------------
# GET /auth/me
# ---------------------------------------------------------------------------


@router.get("/me", response_model=ProfileResponse)
def me(
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Return the authenticated user's profile (no secrets)."""
    with endpoint_guard("Failed to get user profile"):
        return _load_user(db, current_user.id)


# ---------------------------------------------------------------------------
# PUT /auth/profile
# ---------------------------------------------------------------------------


@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    body: UpdateProfileRequest,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to update profile"):
        user = _load_user(db, current_user.id)
        user.display_name = body.display_name
        audit.record(
            db, user.id, AuditAction.PROFILE_UPDATED, TargetType.USER, user.id,
            details={"displayName": body.display_name},
            request_ip=get_client_ip(request),
        )
        db.commit()
        db.refresh(user)
        return user


# ---------------------------------------------------------------------------
# PUT /auth/change-password
# ---------------------------------------------------------------------------


@router.put("/change-password")
def change_password(
    body: ChangePasswordRequest,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Change the authenticated user's password after re-checking the old one."""
    with endpoint_guard("Failed to change password"):
        user = _load_user(db, current_user.id)
        if not verify_password(body.old_password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Old password is incorrect",
            )

        user.password_hash = hash_password(body.new_password)
        audit.record(
            db, user.id, AuditAction.PASSWORD_CHANGED, TargetType.USER, user.id,
            request_ip=get_client_ip(request),
        )
        db.commit()

        return {"detail": "Password changed successfully"}


# ---------------------------------------------------------------------------
# POST /auth/forgot-password
# ---------------------------------------------------------------------------


@router.post("/forgot-password")
def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Issue a single-use reset token and mail it.  The answer is the same
    whether or not the address belongs to an account.
    """
    with endpoint_guard("Failed to request password reset"):
        user = db.query(User).filter(User.email == body.email).first()
        if user:
            token = secrets.token_urlsafe(32)
            # One outstanding reset per user
            db.query(PasswordReset).filter(PasswordReset.user_id == user.id).delete()
            db.add(PasswordReset(
                user_id=user.id,
                reset_token=_reset_digest(token),
                expires_at=datetime.now(timezone.utc)
                + timedelta(minutes=settings.password_reset_expire_minutes),
            ))
            audit.record(
                db, user.id, AuditAction.PASSWORD_RESET_REQUESTED, TargetType.USER, user.id,
                request_ip=get_client_ip(request),
            )
            db.commit()
            send_password_reset_email(user.email, token)

        return {"detail": _RESET_SENT}


# ---------------------------------------------------------------------------
# POST /auth/reset-password
# ---------------------------------------------------------------------------


@router.post("/reset-password")
def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Set a new password using a token from forgot-password."""
    with endpoint_guard("Failed to reset password"):
        reset = (
            db.query(PasswordReset)
            .filter(PasswordReset.reset_token == _reset_digest(body.token))
            .first()
        )
        if not reset or as_utc(reset.expires_at) <= datetime.now(timezone.utc):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid or expired reset token",
            )

        user = db.query(User).filter(User.id == reset.user_id).first()
        if not user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid or expired reset token",
            )

        user.password_hash = hash_password(body.password)
        db.query(PasswordReset).filter(PasswordReset.user_id == user.id).delete()
        audit.record(
            db, user.id, AuditAction.PASSWORD_RESET, TargetType.USER, user.id,
            request_ip=get_client_ip(request),
        )
        db.commit()

        return {"detail": "Password reset successfully"}


# ---------------------------------------------------------------------------
# POST /auth/verify-email
# ---------------------------------------------------------------------------


@router.post("/verify-email")
def verify_email(
    body: VerifyEmailRequest,
    request: Request,
    db: Session = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Mark the address carried by a verification token as verified."""
    with endpoint_guard("Failed to verify email"):
        claims = issuer.verify(body.token, token_type=EMAIL_VERIFICATION_TOKEN)
        user = db.query(User).filter(User.id == claims.user_id).first() if claims else None

        # A token minted for an address the user has since changed is stale
        if not user or user.email != claims.email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid or expired verification token",
            )

        if not user.email_verified:
            user.email_verified = True
            audit.record(
                db, user.id, AuditAction.EMAIL_VERIFIED, TargetType.USER, user.id,
                request_ip=get_client_ip(request),
            )
            db.commit()

        return {"detail": "Email verified"}


# ---------------------------------------------------------------------------
# GET /auth/activity
# ---------------------------------------------------------------------------


@router.get("/activity", response_model=AuditEntryListResponse)
def activity(
    limit: int = Query(50, ge=1, le=500),
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Return the caller's own audit entries, newest first."""
    with endpoint_guard("Failed to fetch activity"):
        rows = (
            db.query(AuditLog)
            .filter(AuditLog.user_id == current_user.id)
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .limit(limit)
            .all()
        )
        return AuditEntryListResponse(entries=[AuditEntryRow.model_validate(r) for r in rows])
