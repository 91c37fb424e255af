"""
Tests for app/services/audit_service.py — the post-commit audit sink.
"""

import pytest
from sqlalchemy.exc import OperationalError

from app.models.approval import ApprovalApplication
from app.models.audit import AuditLog
from app.models import db
from app.services import application_service, audit_service
from app.services.audit_service import list_audit_entries, record_audit
from app.services.transition_service import act


def test_record_audit_persists_row(group, admin):
    log = record_audit(
        entity_type="approval_route",
        entity_id=5,
        action="approval_route.create",
        group_id=group.id,
        actor_member_id=admin.id,
        after={"name": "R"},
    )
    assert log.id is not None
    assert AuditLog.query.one().diff == {"before": None, "after": {"name": "R"}}


@pytest.mark.parametrize("entity_type, action", [
    ("approval_step", "approval_route.create"),
    ("approval_route", "approval_route.rename"),
])
def test_unknown_entity_or_action_is_refused(group, entity_type, action):
    with pytest.raises(ValueError, match="Unknown audit"):
        record_audit(
            entity_type=entity_type, entity_id=1, action=action,
            group_id=group.id, actor_member_id=None,
        )
    assert AuditLog.query.count() == 0


def test_list_filters_by_entity(group, admin):
    for entity_id in (1, 2):
        record_audit(
            entity_type="approval_application",
            entity_id=entity_id,
            action="approval_application.create",
            group_id=group.id,
            actor_member_id=admin.id,
        )
    record_audit(
        entity_type="approval_route",
        entity_id=1,
        action="approval_route.create",
        group_id=group.id,
        actor_member_id=admin.id,
    )

    entries = list_audit_entries(group.id, entity_type="approval_application", entity_id=2)
    assert [(e["entity_type"], e["entity_id"]) for e in entries] == [("approval_application", "2")]
    assert len(list_audit_entries(group.id)) == 3


def test_sink_failure_does_not_undo_transition(
    group, member, accountant, expense_template, monkeypatch, caplog,
):
    application = application_service.create_application(
        group.id, expense_template["id"], member.id, "T", {"amount": 1, "category": "travel"},
    )

    def broken_write(**kwargs):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk full"))

    monkeypatch.setattr(audit_service, "write_audit", broken_write)
    result = act(group.id, application["id"], accountant.id, "ACCOUNTANT", "approve")

    assert result["current_step"] == 2
    db.session.expire_all()
    assert db.session.get(ApprovalApplication, application["id"]).current_step == 2
    assert AuditLog.query.filter_by(action="approval_application.approve").count() == 0
    assert "Audit write failed" in caplog.text
