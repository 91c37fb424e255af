"""
Approval Workflow Engine
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for approval mutations.
"""

import json
from datetime import datetime, timezone

from app.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "approval_route",
    "approval_template",
    "approval_application",
}

AUDIT_ACTIONS = {
    "approval_route.create",
    "approval_route.delete",
    "approval_template.create",
    "approval_template.activate",
    "approval_template.deactivate",
    "approval_application.create",
    "approval_application.approve",
    "approval_application.reject",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every approval mutation.

    One row per action. ``diff_json`` carries the before/after snapshot.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_group", "group_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(
        db.Integer,
        db.ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=True,
    )
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="approval_route | approval_template | approval_application",
    )
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(
        db.String(60), nullable=False,
        comment="approval_application.approve | approval_route.delete | …",
    )
    actor_member_id = db.Column(
        db.Integer,
        db.ForeignKey("members.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    diff_json = db.Column(db.Text, default="{}", comment="JSON: {before, after}")
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_member_id": self.actor_member_id,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    group_id: int | None = None,
    actor_member_id: int | None = None,
    before: dict | None = None,
    after: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.

    Raises:
        ValueError: unknown entity type or action.
    """
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity type: {entity_type}")
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")
    log = AuditLog(
        group_id=group_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_member_id=actor_member_id,
        diff_json=json.dumps({"before": before, "after": after}, default=str, ensure_ascii=False),
    )
    db.session.add(log)
    db.session.flush()
    return log
