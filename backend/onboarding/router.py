# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Onboarding endpoints – phone verification by one-time code, personal
profile, address, step validation and completion.

Every endpoint acts on the caller's own onboarding record, which is created
on the first write.  One-time codes are six digits, stored only as an HMAC
keyed with SECRET_KEY, valid for OTP_EXPIRE_MINUTES and cleared once used.
"""

import hashlib
import hmac
import math
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import as_utc, get_db
from core import audit
from core.audit import AuditAction, TargetType
from core.config import settings
from core.errors import endpoint_guard
from core.mailer import send_phone_otp
from core.security import get_client_ip, get_current_user
from models.onboarding import OnboardingProfile
from auth.schemas import SuccessResponse, UserSummary
from onboarding.schemas import (
    AddressData,
    AddressRequest,
    AddressStep,
    OnboardingCompleteResponse,
    OnboardingProfileRequest,
    OnboardingStatusResponse,
    OnboardingSteps,
    OtpSentResponse,
    PhoneData,
    PhoneStep,
    ProfileCompleteRequest,
    ProfileData,
    ProfileStep,
    SendOtpRequest,
    StepValidationResponse,
    ValidateStepRequest,
    VerifyOtpRequest,
)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])
profile_router = APIRouter(prefix="/profile", tags=["onboarding"])

_PHONE_IN_USE = "Phone number is already in use"
_BAD_OTP = "Invalid or expired OTP"

# Fields the profile step asks for, by wire name
_PROFILE_FIELDS = (
    ("title", "title"),
    ("full_name", "fullName"),
    ("gender", "gender"),
    ("date_of_birth", "dateOfBirth"),
    ("blood_group", "bloodGroup"),
    ("education", "education"),
    ("occupation", "occupation"),
    ("marital_status", "maritalStatus"),
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _otp_digest(code: str) -> str:
    return hmac.new(
        settings.secret_key.encode("utf-8"), code.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def _new_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _load(db: Session, user_id: int) -> Optional[OnboardingProfile]:
    return db.query(OnboardingProfile).filter(OnboardingProfile.user_id == user_id).first()


def _load_or_create(db: Session, user_id: int) -> OnboardingProfile:
    record = _load(db, user_id)
    if record is None:
        record = OnboardingProfile(user_id=user_id)
        db.add(record)
    return record


def _phone_taken(db: Session, phone_number: str, user_id: int) -> bool:
    return db.query(OnboardingProfile.id).filter(
        OnboardingProfile.phone_number == phone_number,
        OnboardingProfile.user_id != user_id,
    ).first() is not None


def _issue_code(record: OnboardingProfile, phone_number: str) -> str:
    code = _new_code()
    now = datetime.now(timezone.utc)
    record.pending_phone_number = phone_number
    record.otp_digest = _otp_digest(code)
    record.otp_expires_at = now + timedelta(minutes=settings.otp_expire_minutes)
    record.otp_sent_at = now
    return code


def _profile_done(record: Optional[OnboardingProfile]) -> bool:
    return bool(record and record.full_name and record.gender and record.date_of_birth)


def _address_done(record: Optional[OnboardingProfile]) -> bool:
    return bool(record and record.city)


def _missing_fields(record: Optional[OnboardingProfile], step: str) -> List[str]:
    if step == "phone":
        return [] if record and record.phone_number else ["phoneNumber"]
    if step == "profile":
        return [wire for attr, wire in _PROFILE_FIELDS if not getattr(record, attr, None)]
    return [] if _address_done(record) else ["address.city"]


def _apply_profile(record: OnboardingProfile, body: OnboardingProfileRequest) -> None:
    for field, value in body.model_dump().items():
        setattr(record, field, value)


def _apply_address(record: OnboardingProfile, body: AddressRequest) -> None:
    record.street = body.street
    record.city = body.city
    record.state = body.state
    record.country = body.country
    record.postal_code = body.postal_code
    record.formatted_address = body.display()
    record.latitude = body.coordinates.lat if body.coordinates else None
    record.longitude = body.coordinates.lng if body.coordinates else None


def _completion(record: OnboardingProfile) -> OnboardingCompleteResponse:
    return OnboardingCompleteResponse(
        onboarding_complete=record.onboarding_complete,
        profile_complete=record.profile_complete,
    )


# ---------------------------------------------------------------------------
# GET /onboarding/status
# ---------------------------------------------------------------------------


@router.get("/status", response_model=OnboardingStatusResponse)
def onboarding_status(
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Where the caller stands in each step, and which step comes next."""
    with endpoint_guard("Failed to get onboarding status"):
        record = _load(db, current_user.id)
        has_phone = bool(record and record.phone_number)

        current_step = "phone"
        if has_phone:
            current_step = "profile"
            if record.full_name and record.city:
                current_step = "complete"

        return OnboardingStatusResponse(
            onboarding_complete=bool(record and record.onboarding_complete),
            profile_complete=bool(record and record.profile_complete),
            current_step=current_step,
            steps=OnboardingSteps(
                phone=PhoneStep(
                    completed=has_phone,
                    data=PhoneData(phone_number=record.phone_number) if has_phone else None,
                ),
                profile=ProfileStep(
                    completed=_profile_done(record),
                    data=ProfileData.model_validate(record) if record else None,
                ),
                address=AddressStep(
                    completed=_address_done(record),
                    data=AddressData.model_validate(record) if _address_done(record) else None,
                ),
            ),
        )


# ---------------------------------------------------------------------------
# POST /onboarding/send-otp
# ---------------------------------------------------------------------------


@router.post("/send-otp", response_model=OtpSentResponse)
def send_otp(
    body: SendOtpRequest,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Text a fresh code to *phoneNumber*, replacing any outstanding one."""
    with endpoint_guard("Failed to send OTP"):
        if _phone_taken(db, body.phone_number, current_user.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_PHONE_IN_USE)

        record = _load_or_create(db, current_user.id)
        code = _issue_code(record, body.phone_number)
        audit.record(
            db, current_user.id, AuditAction.PHONE_OTP_SENT, TargetType.USER, current_user.id,
            details={"phoneNumber": body.phone_number},
            request_ip=get_client_ip(request),
        )
        db.commit()
        send_phone_otp(body.phone_number, code)

        return OtpSentResponse(
            detail="OTP sent successfully",
            expires_in=settings.otp_expire_minutes * 60,
        )


# ---------------------------------------------------------------------------
# POST /onboarding/resend-otp
# ---------------------------------------------------------------------------


@router.post("/resend-otp", response_model=OtpSentResponse)
def resend_otp(
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """New code for the pending number, at most once per cooldown period."""
    with endpoint_guard("Failed to resend OTP"):
        record = _load(db, current_user.id)
        if not record or not record.pending_phone_number:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No pending phone verification found",
            )

        if record.otp_sent_at:
            elapsed = (datetime.now(timezone.utc) - as_utc(record.otp_sent_at)).total_seconds()
            remaining = math.ceil(settings.otp_resend_cooldown_seconds - elapsed)
            if remaining > 0:
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"Please wait {remaining} seconds before requesting a new OTP",
                )

        phone_number = record.pending_phone_number
        code = _issue_code(record, phone_number)
        audit.record(
            db, current_user.id, AuditAction.PHONE_OTP_SENT, TargetType.USER, current_user.id,
            details={"phoneNumber": phone_number, "resend": True},
            request_ip=get_client_ip(request),
        )
        db.commit()
        send_phone_otp(phone_number, code)

        return OtpSentResponse(
            detail="New OTP sent successfully",
            expires_in=settings.otp_expire_minutes * 60,
        )


# ---------------------------------------------------------------------------
# POST /onboarding/verify-otp
# ---------------------------------------------------------------------------


@router.post("/verify-otp", response_model=PhoneData)
def verify_otp(
    body: VerifyOtpRequest,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Confirm the pending number with its code.  A code works once."""
    with endpoint_guard("Failed to verify OTP"):
        record = _load(db, current_user.id)
        if (
            not record
            or not record.pending_phone_number
            or not record.otp_digest
            or as_utc(record.otp_expires_at) <= datetime.now(timezone.utc)
            or not hmac.compare_digest(record.otp_digest, _otp_digest(body.otp))
        ):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_BAD_OTP)

        phone_number = record.pending_phone_number
        if _phone_taken(db, phone_number, current_user.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_PHONE_IN_USE)

        record.phone_number = phone_number
        record.pending_phone_number = None
        record.otp_digest = None
        record.otp_expires_at = None
        try:
            db.flush()  # the unique index catches a concurrent claim of the number
        except IntegrityError:
            db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_PHONE_IN_USE)

        audit.record(
            db, current_user.id, AuditAction.PHONE_VERIFIED, TargetType.USER, current_user.id,
            details={"phoneNumber": phone_number},
            request_ip=get_client_ip(request),
        )
        db.commit()
        return PhoneData(phone_number=phone_number)


# ---------------------------------------------------------------------------
# PUT /onboarding/profile
# ---------------------------------------------------------------------------


@router.put("/profile", response_model=ProfileData)
def save_profile(
    body: OnboardingProfileRequest,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to save profile"):
        record = _load_or_create(db, current_user.id)
        _apply_profile(record, body)
        audit.record(
            db, current_user.id, AuditAction.ONBOARDING_PROFILE_SAVED, TargetType.USER,
            current_user.id, request_ip=get_client_ip(request),
        )
        db.commit()
        return ProfileData.model_validate(record)


# ---------------------------------------------------------------------------
# POST /onboarding/save-address
# ---------------------------------------------------------------------------


@router.post("/save-address", response_model=AddressData)
def save_address(
    body: AddressRequest,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with endpoint_guard("Failed to save address"):
        record = _load_or_create(db, current_user.id)
        _apply_address(record, body)
        audit.record(
            db, current_user.id, AuditAction.ONBOARDING_ADDRESS_SAVED, TargetType.USER,
            current_user.id, details={"city": body.city},
            request_ip=get_client_ip(request),
        )
        db.commit()
        return AddressData.model_validate(record)


# ---------------------------------------------------------------------------
# POST /onboarding/validate-step
# ---------------------------------------------------------------------------


@router.post("/validate-step", response_model=StepValidationResponse)
def validate_step(
    body: ValidateStepRequest,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Report which fields a step still lacks.  Writes nothing."""
    with endpoint_guard("Failed to validate step"):
        missing = _missing_fields(_load(db, current_user.id), body.step)
        return StepValidationResponse(
            is_valid=not missing,
            missing_fields=missing,
            can_proceed=not missing,
        )


# ---------------------------------------------------------------------------
# POST /onboarding/complete
# ---------------------------------------------------------------------------


@router.post("/complete", response_model=OnboardingCompleteResponse)
def complete_onboarding(
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Mark onboarding and profile complete.  Needs a verified phone, a profile
    with name, gender and date of birth, and an address with a city.
    """
    with endpoint_guard("Failed to complete onboarding"):
        record = _load(db, current_user.id)
        errors = []
        if not (record and record.phone_number):
            errors.append({"field": "phoneNumber", "message": "Phone number verification is required"})
        if not _profile_done(record):
            errors.append({"field": "profile", "message": "Complete profile information is required"})
        if not _address_done(record):
            errors.append({"field": "address", "message": "Address information is required"})
        if errors:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"detail": "Onboarding incomplete", "errors": errors},
            )

        record.onboarding_complete = True
        record.profile_complete = True
        audit.record(
            db, current_user.id, AuditAction.ONBOARDING_COMPLETED, TargetType.USER,
            current_user.id, request_ip=get_client_ip(request),
        )
        db.commit()
        return _completion(record)


# ---------------------------------------------------------------------------
# POST /onboarding/reset
# ---------------------------------------------------------------------------


@router.post("/reset", response_model=SuccessResponse)
def reset_onboarding(
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Discard every onboarding answer, verified phone included."""
    with endpoint_guard("Failed to reset onboarding"):
        db.query(OnboardingProfile).filter(
            OnboardingProfile.user_id == current_user.id
        ).delete()
        audit.record(
            db, current_user.id, AuditAction.ONBOARDING_RESET, TargetType.USER,
            current_user.id, request_ip=get_client_ip(request),
        )
        db.commit()
        return SuccessResponse(success=True)


# ---------------------------------------------------------------------------
# POST /profile/complete  – profile and address in one go
# ---------------------------------------------------------------------------


@profile_router.post("/complete", response_model=OnboardingCompleteResponse)
def complete_profile(
    body: ProfileCompleteRequest,
    request: Request,
    current_user: UserSummary = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Save profile and address together and mark both flags complete.  Phone
    verification is not required on this path.
    """
    with endpoint_guard("Failed to complete profile"):
        record = _load_or_create(db, current_user.id)
        _apply_profile(record, body.profile)
        _apply_address(record, body.address)
        record.onboarding_complete = True
        record.profile_complete = True
        audit.record(
            db, current_user.id, AuditAction.PROFILE_COMPLETED, TargetType.USER,
            current_user.id, request_ip=get_client_ip(request),
        )
        db.commit()
        return _completion(record)
