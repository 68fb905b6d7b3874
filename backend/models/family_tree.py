# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""FamilyTree, Member and Relationship ORM models."""

import secrets

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from database import Base


def _new_share_link() -> str:
    return secrets.token_urlsafe(16)


class FamilyTree(Base):
    __tablename__ = "family_trees"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    share_link = Column(String(64), unique=True, nullable=False, default=_new_share_link)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Member(Base):
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Cascade delete: removing a tree removes its members atomically.
    family_tree_id = Column(
        Integer,
        ForeignKey("family_trees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    gender = Column(String(16), nullable=True)  # male / female / other
    birth_date = Column(Date, nullable=True)
    death_date = Column(Date, nullable=True)
    bio = Column(Text, nullable=True)
    profile_image_url = Column(String(2048), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Relationship(Base):
    __tablename__ = "relationships"
    __table_args__ = (
        UniqueConstraint("member1_id", "member2_id", "relationship_type", name="uq_relationship"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    family_tree_id = Column(
        Integer,
        ForeignKey("family_trees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    member1_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    member2_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    relationship_type = Column(String(16), nullable=False)  # parent / child / spouse / sibling
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
