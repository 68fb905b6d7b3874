"""Audit recorder."""

import pytest

from core import audit
from core.audit import AuditAction, TargetType
from models.audit_log import AuditLog


def test_record_appends_entry(db):
    entry = audit.record(
        db, 7, AuditAction.USER_LOGIN, TargetType.USER, 7,
        details={"via": "test"}, request_ip="10.0.0.1",
    )
    db.commit()

    row = db.query(AuditLog).one()
    assert row.id == entry.id
    assert row.user_id == 7
    assert row.action == "USER_LOGIN"
    assert row.target_type == "USER"
    assert row.target_id == "7"
    assert row.details == {"via": "test"}
    assert row.request_ip == "10.0.0.1"
    assert row.timestamp is not None


def test_record_accepts_plain_strings_from_the_vocabulary(db):
    audit.record(db, 1, "FAMILY_TREE_CREATED", "FAMILY_TREE", 3)
    db.commit()

    assert db.query(AuditLog).one().action == "FAMILY_TREE_CREATED"


def test_record_rejects_unknown_action(db):
    with pytest.raises(ValueError):
        audit.record(db, 1, "USER_EXPLODED", TargetType.USER, 1)
    assert db.query(AuditLog).count() == 0


def test_record_does_not_commit(db):
    audit.record(db, 1, AuditAction.USER_LOGOUT, TargetType.USER, 1)
    db.rollback()

    assert db.query(AuditLog).count() == 0
