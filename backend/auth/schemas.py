# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the auth endpoints."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128


def normalize_email(value: Any) -> Any:
    """Lower-case and strip an email before it is validated or looked up."""
    if isinstance(value, str):
        return value.strip().lower()
    return value


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python.  Both accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# -- Requests --------------------------------------------------------------


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    display_name: str = Field(min_length=1, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v: Any) -> Any:
        return normalize_email(v)

    @field_validator("display_name")
    @classmethod
    def strip_display_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Display name must not be blank")
        return v


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v: Any) -> Any:
        return normalize_email(v)


class ChangePasswordRequest(CamelModel):
    old_password: str
    new_password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)


class UpdateProfileRequest(CamelModel):
    display_name: str = Field(min_length=1, max_length=255)

    @field_validator("display_name")
    @classmethod
    def strip_display_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Display name must not be blank")
        return v


class ForgotPasswordRequest(CamelModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v: Any) -> Any:
        return normalize_email(v)


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)


class VerifyEmailRequest(CamelModel):
    token: str = Field(min_length=1)


# -- Responses -------------------------------------------------------------


class UserSummary(CamelModel):
    """The only user fields that leave the persistence layer."""

    id: int
    email: str
    display_name: str


class AuthResponse(CamelModel):
    user: UserSummary
    token: str


class ProfileResponse(UserSummary):
    email_verified: bool
    created_at: datetime


class SuccessResponse(CamelModel):
    success: bool = True


class AuditEntryRow(CamelModel):
    id: int
    action: str
    target_type: str
    target_id: str
    details: Optional[Any] = None
    request_ip: Optional[str] = None
    timestamp: datetime


class AuditEntryListResponse(CamelModel):
    entries: List[AuditEntryRow]
