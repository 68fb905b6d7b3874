# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Audit recorder.

Entries are added to the caller's session and flushed, never committed
here: the caller's ``db.commit()`` makes the primary change and its audit
entry durable together.  A failure to write the entry therefore aborts the
primary action.  Nothing in the code base updates or deletes an entry.
"""

import enum
from typing import Any, Optional

from sqlalchemy.orm import Session

from core.logger import logger
from models.audit_log import AuditLog


class AuditAction(str, enum.Enum):
    USER_REGISTERED = "USER_REGISTERED"
    USER_LOGIN = "USER_LOGIN"
    USER_LOGOUT = "USER_LOGOUT"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
    PASSWORD_RESET = "PASSWORD_RESET"
    EMAIL_VERIFIED = "EMAIL_VERIFIED"
    PROFILE_UPDATED = "PROFILE_UPDATED"
    FAMILY_TREE_CREATED = "FAMILY_TREE_CREATED"
    FAMILY_TREE_UPDATED = "FAMILY_TREE_UPDATED"
    FAMILY_TREE_DELETED = "FAMILY_TREE_DELETED"
    MEMBER_CREATED = "MEMBER_CREATED"
    MEMBER_UPDATED = "MEMBER_UPDATED"
    MEMBER_DELETED = "MEMBER_DELETED"
    RELATIONSHIP_CREATED = "RELATIONSHIP_CREATED"
    RELATIONSHIP_UPDATED = "RELATIONSHIP_UPDATED"
    RELATIONSHIP_DELETED = "RELATIONSHIP_DELETED"
    PHONE_OTP_SENT = "PHONE_OTP_SENT"
    PHONE_VERIFIED = "PHONE_VERIFIED"
    ONBOARDING_PROFILE_SAVED = "ONBOARDING_PROFILE_SAVED"
    ONBOARDING_ADDRESS_SAVED = "ONBOARDING_ADDRESS_SAVED"
    ONBOARDING_COMPLETED = "ONBOARDING_COMPLETED"
    ONBOARDING_RESET = "ONBOARDING_RESET"
    PROFILE_COMPLETED = "PROFILE_COMPLETED"


class TargetType(str, enum.Enum):
    USER = "USER"
    FAMILY_TREE = "FAMILY_TREE"
    MEMBER = "MEMBER"
    RELATIONSHIP = "RELATIONSHIP"


def record(
    db: Session,
    actor_user_id: int,
    action: AuditAction,
    target_type: TargetType,
    target_id: Any,
    details: Optional[Any] = None,
    request_ip: Optional[str] = None,
) -> AuditLog:
    """Append one audit entry to the current transaction."""
    entry = AuditLog(
        user_id=actor_user_id,
        action=AuditAction(action).value,
        target_type=TargetType(target_type).value,
        target_id=str(target_id),
        details=details,
        request_ip=request_ip,
    )
    db.add(entry)
    db.flush()
    logger.info(
        "audit %s by user_id=%s on %s:%s",
        entry.action, actor_user_id, entry.target_type, entry.target_id,
    )
    return entry
