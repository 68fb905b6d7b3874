# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the onboarding endpoints."""

from datetime import date
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from auth.schemas import CamelModel

# International format, e.g. +14155550123
PHONE_PATTERN = r"^\+[1-9]\d{1,14}$"

OnboardingStep = Literal["phone", "profile", "address"]


# -- Requests --------------------------------------------------------------


class SendOtpRequest(CamelModel):
    phone_number: str = Field(pattern=PHONE_PATTERN)

    @field_validator("phone_number", mode="before")
    @classmethod
    def strip_phone(cls, v):
        return v.strip() if isinstance(v, str) else v


class VerifyOtpRequest(CamelModel):
    otp: str = Field(pattern=r"^\d{6}$")


class OnboardingProfileRequest(CamelModel):
    title: Optional[str] = Field(default=None, max_length=32)
    full_name: str = Field(min_length=1, max_length=255)
    gender: Literal["male", "female", "other"]
    date_of_birth: date
    blood_group: Optional[str] = Field(default=None, max_length=8)
    education: Optional[str] = Field(default=None, max_length=255)
    occupation: Optional[str] = Field(default=None, max_length=255)
    marital_status: Optional[str] = Field(default=None, max_length=32)

    @field_validator("full_name")
    @classmethod
    def strip_full_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Full name must not be blank")
        return v


class Coordinates(CamelModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class AddressRequest(CamelModel):
    street: str = Field(default="", max_length=255)
    city: str = Field(min_length=1, max_length=255)
    state: str = Field(default="", max_length=255)
    country: str = Field(default="", max_length=255)
    postal_code: str = Field(default="", max_length=32)
    coordinates: Optional[Coordinates] = None
    formatted_address: Optional[str] = Field(default=None, max_length=1024)

    def display(self) -> str:
        """``formatted_address`` if given, else "City, State, Country"."""
        if self.formatted_address:
            return self.formatted_address
        return ", ".join(part for part in (self.city, self.state, self.country) if part)


class ProfileCompleteRequest(CamelModel):
    profile: OnboardingProfileRequest
    address: AddressRequest


class ValidateStepRequest(CamelModel):
    step: OnboardingStep


# -- Responses -------------------------------------------------------------


class OtpSentResponse(CamelModel):
    detail: str
    expires_in: int   # seconds


class PhoneData(CamelModel):
    phone_number: str


class ProfileData(CamelModel):
    title: Optional[str] = None
    full_name: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    blood_group: Optional[str] = None
    education: Optional[str] = None
    occupation: Optional[str] = None
    marital_status: Optional[str] = None


class AddressData(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    formatted_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class PhoneStep(CamelModel):
    completed: bool
    data: Optional[PhoneData] = None


class ProfileStep(CamelModel):
    completed: bool
    data: Optional[ProfileData] = None


class AddressStep(CamelModel):
    completed: bool
    data: Optional[AddressData] = None


class OnboardingSteps(CamelModel):
    phone: PhoneStep
    profile: ProfileStep
    address: AddressStep


class OnboardingStatusResponse(CamelModel):
    onboarding_complete: bool
    profile_complete: bool
    current_step: Literal["phone", "profile", "complete"]
    steps: OnboardingSteps


class StepValidationResponse(CamelModel):
    is_valid: bool
    missing_fields: List[str]
    can_proceed: bool


class OnboardingCompleteResponse(CamelModel):
    onboarding_complete: bool
    profile_complete: bool
