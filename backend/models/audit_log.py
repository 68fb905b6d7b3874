# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""AuditLog ORM model – append-only trail of security-relevant actions."""

from sqlalchemy import Column, Integer, String, JSON, DateTime
from sqlalchemy.sql import func

from database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Acting user.  Weak reference: no FK so entries outlive their actor.
    user_id = Column(Integer, nullable=False, index=True)
    action = Column(String(64), nullable=False, index=True)   # e.g. "USER_LOGIN"
    target_type = Column(String(32), nullable=False)          # e.g. "FAMILY_TREE"
    target_id = Column(String(64), nullable=False)
    details = Column(JSON, nullable=True)
    request_ip = Column(String(45), nullable=True)            # fits IPv6
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
