# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Bootstrap script – creates a demo account with a small public family tree.

Run once after the initial migration:
    python bin/seed_demo.py

The script reads DEMO_USER_EMAIL and DEMO_USER_PASSWORD from etc/app.conf.
Running it again is a no-op once the account exists.
"""

import sys
import os
from datetime import date

# ---------------------------------------------------------------------------
# Path setup so backend modules are importable
# ---------------------------------------------------------------------------
# bin/seed_demo.py  →  ../  →  project root
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_BACKEND_DIR  = os.path.join(_PROJECT_ROOT, "backend")
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from core import audit                                      # noqa: E402
from core.audit import AuditAction, TargetType              # noqa: E402
from core.config import settings                            # noqa: E402
from core.logger import logger                              # noqa: E402
from core.security import hash_password                     # noqa: E402
from database import SessionLocal                           # noqa: E402
from models.family_tree import FamilyTree, Member, Relationship  # noqa: E402
from models.user import User                                # noqa: E402

# (first, last, gender, birth)
_DEMO_MEMBERS = [
    ("Arthur", "Hale", "male", date(1931, 3, 14)),
    ("Edith", "Hale", "female", date(1934, 9, 2)),
    ("Margaret", "Hale", "female", date(1958, 6, 21)),
    ("Thomas", "Hale", "male", date(1961, 1, 5)),
]

# (index1, index2, type) into _DEMO_MEMBERS
_DEMO_RELATIONSHIPS = [
    (0, 1, "spouse"),
    (0, 2, "parent"),
    (1, 2, "parent"),
    (0, 3, "parent"),
    (1, 3, "parent"),
    (2, 3, "sibling"),
]


def seed():
    email = settings.demo_user_email.strip().lower()
    if not email or not settings.demo_user_password:
        logger.warning("DEMO_USER_EMAIL or DEMO_USER_PASSWORD not set in etc/app.conf – nothing to do.")
        return

    db = SessionLocal()
    try:
        if db.query(User).filter(User.email == email).first():
            logger.info("Demo user '%s' already exists – skipping.", email)
            return

        user = User(
            email=email,
            display_name="Demo User",
            password_hash=hash_password(settings.demo_user_password),
            email_verified=True,
        )
        db.add(user)
        db.flush()
        audit.record(db, user.id, AuditAction.USER_REGISTERED, TargetType.USER, user.id)

        tree = FamilyTree(
            user_id=user.id,
            name="The Hale Family",
            description="Sample tree created by seed_demo.py",
            is_public=True,
        )
        db.add(tree)
        db.flush()
        audit.record(db, user.id, AuditAction.FAMILY_TREE_CREATED, TargetType.FAMILY_TREE, tree.id)

        members = []
        for first, last, gender, born in _DEMO_MEMBERS:
            member = Member(
                family_tree_id=tree.id,
                first_name=first,
                last_name=last,
                gender=gender,
                birth_date=born,
            )
            db.add(member)
            members.append(member)
        db.flush()

        for i, j, kind in _DEMO_RELATIONSHIPS:
            db.add(Relationship(
                family_tree_id=tree.id,
                member1_id=members[i].id,
                member2_id=members[j].id,
                relationship_type=kind,
            ))

        db.commit()
        logger.info("Demo user '%s' created with public tree share link %s", email, tree.share_link)
    finally:
        db.close()


if __name__ == "__main__":
    seed()
