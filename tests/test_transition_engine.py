"""
Tests for app/services/transition_service.py — sequential approve / reject.

Scenarios:
  A  [ACCOUNTANT, ADMIN]: accountant approves → step 2 IN_PROGRESS
  B  continuing A: admin rejects → application REJECTED, nothing left to reset
  C  [ADMIN]: admin approves → application APPROVED
  D  amount below min → no application is created
  E  3 steps, reject at step 2 → step 1 stays APPROVED, step 3 reset to WAITING
     (also when a later step was already APPROVED before the reject)
Plus: idempotence of a second act, role checks without admin bypass,
state invariants, comments and audit rows.
"""

import pytest

from app.core.exceptions import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from app.models import db
from app.models.approval import ApprovalApplication, ApprovalAssignment
from app.models.audit import AuditLog
from app.models.base import utcnow
from app.services import application_service, route_service, template_service
from app.services.transition_service import act

AMOUNT_FORM = {"items": [{"id": "amount", "label": "Amount", "type": "number", "min": 0}]}


@pytest.fixture()
def make_application(group, admin, member):
    """Factory: file an application on a fresh route with the given roles."""

    def _make(*roles, amount=10):
        route = route_service.create_route(
            group.id, "Route", [{"approverRole": r} for r in roles], actor_member_id=admin.id,
        )
        tpl = template_service.create_template(group.id, "Form", AMOUNT_FORM, route["id"])
        return application_service.create_application(
            group.id, tpl["id"], member.id, "Request", {"amount": amount},
        )

    return _make


def _statuses(application):
    return [a["status"] for a in application["assignments"]]


def _assert_invariant(application_id):
    app_ = db.session.get(ApprovalApplication, application_id)
    in_progress = [a for a in app_.assignments if a.status == "IN_PROGRESS"]
    if app_.status == "PENDING":
        assert len(in_progress) == 1
        assert in_progress[0].step_order == app_.current_step
    else:
        assert app_.current_step is None
        assert in_progress == []


# ═════════════════════════════════════════════════════════════════════════════
# Scenarios
# ═════════════════════════════════════════════════════════════════════════════

class TestScenarios:
    def test_a_approve_advances_to_next_step(self, group, accountant, make_application):
        app_ = make_application("ACCOUNTANT", "ADMIN")
        assert _statuses(app_) == ["IN_PROGRESS", "WAITING"]

        result = act(group.id, app_["id"], accountant.id, "ACCOUNTANT", "approve", "  looks fine ")

        assert result["status"] == "PENDING"
        assert result["current_step"] == 2
        assert _statuses(result) == ["APPROVED", "IN_PROGRESS"]
        first = result["assignments"][0]
        assert first["assigned_to"] == {"id": accountant.id, "display_name": "Ava Accountant"}
        assert first["comment"] == "looks fine"
        assert first["acted_at"] is not None
        assert result["assignments"][1]["assigned_to_id"] is None
        _assert_invariant(app_["id"])

    def test_b_reject_at_last_step(self, group, accountant, admin, make_application):
        app_ = make_application("ACCOUNTANT", "ADMIN")
        act(group.id, app_["id"], accountant.id, "ACCOUNTANT", "approve")

        result = act(group.id, app_["id"], admin.id, "ADMIN", "reject", "Over budget")

        assert result["status"] == "REJECTED"
        assert result["current_step"] is None
        assert _statuses(result) == ["APPROVED", "REJECTED"]
        assert result["assignments"][1]["comment"] == "Over budget"
        _assert_invariant(app_["id"])

    def test_c_single_step_approval_completes(self, group, admin, make_application):
        app_ = make_application("ADMIN")
        result = act(group.id, app_["id"], admin.id, "ADMIN", "approve")
        assert result["status"] == "APPROVED"
        assert result["current_step"] is None
        assert _statuses(result) == ["APPROVED"]
        _assert_invariant(app_["id"])

    def test_d_invalid_amount_creates_nothing(self, make_application):
        with pytest.raises(ValidationError, match="Amount must be at least 0"):
            make_application("ADMIN", amount=-5)
        assert ApprovalApplication.query.count() == 0
        assert ApprovalAssignment.query.count() == 0

    def test_e_reject_mid_route_resets_downstream(
        self, group, accountant, auditor, make_application,
    ):
        app_ = make_application("ACCOUNTANT", "AUDITOR", "ADMIN")
        act(group.id, app_["id"], accountant.id, "ACCOUNTANT", "approve", "ok")

        result = act(group.id, app_["id"], auditor.id, "AUDITOR", "reject", "missing receipt")

        assert result["status"] == "REJECTED"
        assert result["current_step"] is None
        assert _statuses(result) == ["APPROVED", "REJECTED", "WAITING"]
        first, _, third = result["assignments"]
        assert first["comment"] == "ok"
        assert first["assigned_to_id"] == accountant.id
        assert third["assigned_to_id"] is None
        assert third["acted_at"] is None
        assert third["comment"] is None
        _assert_invariant(app_["id"])

    def test_reject_clears_later_steps_whatever_their_state(
        self, group, accountant, admin, make_application,
    ):
        app_ = make_application("ACCOUNTANT", "AUDITOR", "ADMIN")
        third_row = ApprovalAssignment.query.filter_by(application_id=app_["id"], step_order=3).one()
        third_row.status = "APPROVED"
        third_row.assigned_to_id = admin.id
        third_row.acted_at = utcnow()
        third_row.comment = "pre-approved"
        db.session.commit()

        result = act(group.id, app_["id"], accountant.id, "ACCOUNTANT", "reject")

        assert _statuses(result) == ["REJECTED", "WAITING", "WAITING"]
        third = result["assignments"][2]
        assert third["assigned_to_id"] is None
        assert third["acted_at"] is None
        assert third["comment"] is None
        _assert_invariant(app_["id"])


# ═════════════════════════════════════════════════════════════════════════════
# Guards
# ═════════════════════════════════════════════════════════════════════════════

class TestGuards:
    def test_second_act_on_same_step_is_invalid_state(self, group, admin, make_application):
        app_ = make_application("ADMIN")
        act(group.id, app_["id"], admin.id, "ADMIN", "approve")
        with pytest.raises(InvalidStateError, match="cannot be processed"):
            act(group.id, app_["id"], admin.id, "ADMIN", "approve")
        with pytest.raises(InvalidStateError):
            act(group.id, app_["id"], admin.id, "ADMIN", "reject")

    def test_rejected_application_cannot_be_processed(self, group, admin, make_application):
        app_ = make_application("ADMIN", "ADMIN")
        act(group.id, app_["id"], admin.id, "ADMIN", "reject")
        with pytest.raises(InvalidStateError):
            act(group.id, app_["id"], admin.id, "ADMIN", "approve")

    def test_admin_has_no_bypass(self, group, admin, make_application):
        app_ = make_application("ACCOUNTANT")
        with pytest.raises(ForbiddenError):
            act(group.id, app_["id"], admin.id, "ADMIN", "approve")
        reloaded = application_service.get_application(group.id, app_["id"])
        assert _statuses(reloaded) == ["IN_PROGRESS"]

    def test_role_of_later_step_cannot_skip_ahead(self, group, auditor, make_application):
        app_ = make_application("ACCOUNTANT", "AUDITOR")
        with pytest.raises(ForbiddenError):
            act(group.id, app_["id"], auditor.id, "AUDITOR", "approve")

    def test_unknown_action_checked_before_lookup(self, group, admin):
        with pytest.raises(ValidationError, match="approve"):
            act(group.id, 9999, admin.id, "ADMIN", "escalate")

    def test_foreign_application_not_found(self, group, other_group, admin, make_application):
        app_ = make_application("ADMIN")
        with pytest.raises(NotFoundError):
            act(other_group.id, app_["id"], admin.id, "ADMIN", "approve")

    def test_claim_lost_to_concurrent_caller(self, group, admin, make_application, monkeypatch):
        app_ = make_application("ADMIN")
        # Simulate another request claiming the step between read and write
        assignment_id = ApprovalAssignment.query.filter_by(application_id=app_["id"]).one().id
        original = db.session.execute

        def racing_execute(statement, *args, **kwargs):
            if getattr(statement, "is_dml", False) and statement.table.name == "approval_assignments":
                db.session.connection().exec_driver_sql(
                    "UPDATE approval_assignments SET status = 'APPROVED' WHERE id = ?",
                    (assignment_id,),
                )
            return original(statement, *args, **kwargs)

        monkeypatch.setattr(db.session, "execute", racing_execute)
        with pytest.raises(InvalidStateError):
            act(group.id, app_["id"], admin.id, "ADMIN", "approve")
        monkeypatch.undo()

        reloaded = db.session.get(ApprovalApplication, app_["id"])
        assert reloaded.status == "PENDING"
        assert reloaded.current_step == 1


class TestCommentsAndAudit:
    def test_blank_comment_stored_as_null(self, group, admin, make_application):
        app_ = make_application("ADMIN")
        result = act(group.id, app_["id"], admin.id, "ADMIN", "approve", "   ")
        assert result["assignments"][0]["comment"] is None

    def test_transitions_are_audited_with_snapshots(self, group, accountant, admin, make_application):
        app_ = make_application("ACCOUNTANT", "ADMIN")
        act(group.id, app_["id"], accountant.id, "ACCOUNTANT", "approve")
        act(group.id, app_["id"], admin.id, "ADMIN", "reject")

        approve_log = AuditLog.query.filter_by(action="approval_application.approve").one()
        assert approve_log.actor_member_id == accountant.id
        assert approve_log.diff["before"]["current_step"] == 1
        assert approve_log.diff["after"]["current_step"] == 2

        reject_log = AuditLog.query.filter_by(action="approval_application.reject").one()
        assert reject_log.diff["after"]["status"] == "REJECTED"

    def test_failed_guard_writes_no_audit(self, group, admin, make_application):
        app_ = make_application("ACCOUNTANT")
        with pytest.raises(ForbiddenError):
            act(group.id, app_["id"], admin.id, "ADMIN", "approve")
        assert AuditLog.query.filter_by(entity_type="approval_application").count() == 1
