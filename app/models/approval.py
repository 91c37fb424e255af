"""
Approval Workflow Engine
Approval domain models.

Models:
    - ApprovalRoute: named, ordered list of approval steps (reusable).
    - ApprovalStep: one stage of a route (approver role, requireAll, conditions).
    - ApprovalTemplate: a form schema bound to a route; what applicants pick.
    - ApprovalApplication: one submission progressing through its route.
    - ApprovalAssignment: per-step, per-application approval status.

State machines:
    Application  PENDING → APPROVED | REJECTED              (terminal)
    Assignment   WAITING → IN_PROGRESS → APPROVED | REJECTED
                 REJECTED/any downstream → WAITING          (reset on rejection)

Invariant: an application is PENDING exactly when current_step equals the
step_order of its single IN_PROGRESS assignment; terminal applications have
current_step = NULL and no IN_PROGRESS assignment.
"""

from app.models import db
from app.models.base import GroupScopedModel, iso, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

APPLICATION_PENDING = "PENDING"
APPLICATION_APPROVED = "APPROVED"
APPLICATION_REJECTED = "REJECTED"

APPLICATION_STATUSES = frozenset({APPLICATION_PENDING, APPLICATION_APPROVED, APPLICATION_REJECTED})

ASSIGNMENT_WAITING = "WAITING"
ASSIGNMENT_IN_PROGRESS = "IN_PROGRESS"
ASSIGNMENT_APPROVED = "APPROVED"
ASSIGNMENT_REJECTED = "REJECTED"

ASSIGNMENT_STATUSES = frozenset({
    ASSIGNMENT_WAITING, ASSIGNMENT_IN_PROGRESS, ASSIGNMENT_APPROVED, ASSIGNMENT_REJECTED,
})

ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTIONS = frozenset({ACTION_APPROVE, ACTION_REJECT})


def _status_check(values, name):
    allowed = ",".join(f"'{v}'" for v in sorted(values))
    return db.CheckConstraint(f"status IN ({allowed})", name=name)


# ═════════════════════════════════════════════════════════════════════════════
# Routes & steps
# ═════════════════════════════════════════════════════════════════════════════

class ApprovalRoute(GroupScopedModel):
    __tablename__ = "approval_routes"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)

    steps = db.relationship(
        "ApprovalStep",
        back_populates="route",
        order_by="ApprovalStep.step_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    templates = db.relationship(
        "ApprovalTemplate", back_populates="route", lazy="dynamic", passive_deletes="all",
    )

    def to_dict(self, include_steps=True):
        d = {
            "id": self.id,
            "group_id": self.group_id,
            "name": self.name,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_steps:
            d["steps"] = [s.to_dict() for s in self.steps]
        return d

    def __repr__(self):
        return f"<ApprovalRoute {self.id}: {self.name}>"


class ApprovalStep(db.Model):
    __tablename__ = "approval_steps"
    __table_args__ = (
        db.UniqueConstraint("route_id", "step_order", name="uq_approval_step_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    route_id = db.Column(
        db.Integer,
        db.ForeignKey("approval_routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_order = db.Column(db.Integer, nullable=False, comment="1-based, contiguous within a route")
    approver_role = db.Column(db.String(50), nullable=False)
    require_all = db.Column(
        db.Boolean, nullable=False, default=True,
        comment="Stored only; no quorum rule consults it yet",
    )
    conditions = db.Column(db.JSON, nullable=True, comment="Opaque payload, never evaluated")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    route = db.relationship("ApprovalRoute", back_populates="steps")

    def to_dict(self):
        return {
            "id": self.id,
            "route_id": self.route_id,
            "step_order": self.step_order,
            "approver_role": self.approver_role,
            "require_all": self.require_all,
            "conditions": self.conditions,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════════

class ApprovalTemplate(GroupScopedModel):
    __tablename__ = "approval_templates"
    __table_args__ = (
        db.Index("ix_approval_template_group_active", "group_id", "is_active"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    fields = db.Column(db.JSON, nullable=False, comment="Canonical form schema {items, instructions?, version?}")
    route_id = db.Column(
        db.Integer,
        db.ForeignKey("approval_routes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    route = db.relationship("ApprovalRoute", back_populates="templates")

    def to_summary(self):
        return {
            "id": self.id,
            "name": self.name,
            "fields": self.fields,
            "route": {"id": self.route.id, "name": self.route.name} if self.route else None,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "group_id": self.group_id,
            "name": self.name,
            "description": self.description,
            "fields": self.fields,
            "route_id": self.route_id,
            "route": self.route.to_dict() if self.route else None,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Applications & assignments
# ═════════════════════════════════════════════════════════════════════════════

class ApprovalApplication(GroupScopedModel):
    __tablename__ = "approval_applications"
    __table_args__ = (
        db.Index("ix_approval_application_group_status", "group_id", "status"),
        _status_check(APPLICATION_STATUSES, "ck_approval_application_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("approval_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    applicant_id = db.Column(
        db.Integer,
        db.ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(255), nullable=False)
    data = db.Column(db.JSON, nullable=False, comment="Validated, type-coerced form values")
    status = db.Column(
        db.String(20), nullable=False, default=APPLICATION_PENDING,
        comment="PENDING | APPROVED | REJECTED",
    )
    current_step = db.Column(db.Integer, nullable=True, comment="step_order awaiting action; NULL when terminal")

    template = db.relationship("ApprovalTemplate")
    applicant = db.relationship("Member", foreign_keys=[applicant_id])
    assignments = db.relationship(
        "ApprovalAssignment",
        back_populates="application",
        order_by="ApprovalAssignment.step_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def current_assignment(self):
        if self.current_step is None:
            return None
        for a in self.assignments:
            if a.step_order == self.current_step:
                return a
        return None

    def snapshot(self) -> dict:
        """State-only view used for audit before/after diffs."""
        return {
            "status": self.status,
            "current_step": self.current_step,
            "assignments": [
                {"step_order": a.step_order, "status": a.status, "assigned_to_id": a.assigned_to_id}
                for a in self.assignments
            ],
        }

    def to_dict(self):
        return {
            "id": self.id,
            "group_id": self.group_id,
            "template_id": self.template_id,
            "template": self.template.to_summary() if self.template else None,
            "applicant_id": self.applicant_id,
            "applicant": self.applicant.to_summary() if self.applicant else None,
            "title": self.title,
            "data": self.data,
            "status": self.status,
            "current_step": self.current_step,
            "assignments": [a.to_dict() for a in self.assignments],
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ApprovalApplication {self.id}: {self.status} step={self.current_step}>"


class ApprovalAssignment(db.Model):
    __tablename__ = "approval_assignments"
    __table_args__ = (
        db.Index("ix_approval_assignment_app_step", "application_id", "step_order"),
        _status_check(ASSIGNMENT_STATUSES, "ck_approval_assignment_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer,
        db.ForeignKey("approval_applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_id = db.Column(
        db.Integer,
        db.ForeignKey("approval_steps.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_order = db.Column(db.Integer, nullable=False)
    approver_role = db.Column(db.String(50), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default=ASSIGNMENT_WAITING,
        comment="WAITING | IN_PROGRESS | APPROVED | REJECTED",
    )
    assigned_to_id = db.Column(
        db.Integer,
        db.ForeignKey("members.id", ondelete="SET NULL"),
        nullable=True,
    )
    acted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    application = db.relationship("ApprovalApplication", back_populates="assignments")
    assigned_to = db.relationship("Member", foreign_keys=[assigned_to_id])

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "step_id": self.step_id,
            "step_order": self.step_order,
            "approver_role": self.approver_role,
            "status": self.status,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to": self.assigned_to.to_summary() if self.assigned_to else None,
            "acted_at": iso(self.acted_at),
            "comment": self.comment,
        }
