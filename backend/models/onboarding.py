# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""OnboardingProfile ORM model – verified phone, personal profile, address."""

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Float, ForeignKey
from sqlalchemy.sql import func

from database import Base


class OnboardingProfile(Base):
    __tablename__ = "onboarding_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # One row per user, created on the first onboarding write
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    # -- phone verification --------------------------------------------
    phone_number = Column(String(20), unique=True, nullable=True)   # verified, E.164
    pending_phone_number = Column(String(20), nullable=True)
    otp_digest = Column(String(64), nullable=True)                   # HMAC-SHA256 of the code
    otp_expires_at = Column(DateTime(timezone=True), nullable=True)
    otp_sent_at = Column(DateTime(timezone=True), nullable=True)

    # -- personal profile ----------------------------------------------
    title = Column(String(32), nullable=True)
    full_name = Column(String(255), nullable=True)
    gender = Column(String(16), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    blood_group = Column(String(8), nullable=True)
    education = Column(String(255), nullable=True)
    occupation = Column(String(255), nullable=True)
    marital_status = Column(String(32), nullable=True)

    # -- address ---------------------------------------------------------
    street = Column(String(255), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(255), nullable=True)
    country = Column(String(255), nullable=True)
    postal_code = Column(String(32), nullable=True)
    formatted_address = Column(String(1024), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    onboarding_complete = Column(Boolean, nullable=False, default=False)
    profile_complete = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
