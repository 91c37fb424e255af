"""
Audit sink for approval mutations.

record_audit() is called by the approval services only AFTER their business
transaction has committed.  It writes and commits the audit row in its own
unit of work; if that fails the session is rolled back and the failure is
logged, but the already-committed transition stands.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.models.audit import AuditLog, write_audit

logger = logging.getLogger(__name__)


def record_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    group_id: int | None,
    actor_member_id: int | None,
    before: dict | None = None,
    after: dict | None = None,
) -> AuditLog | None:
    """Append and commit one audit row. Returns None if the sink failed."""
    try:
        log = write_audit(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            group_id=group_id,
            actor_member_id=actor_member_id,
            before=before,
            after=after,
        )
        db.session.commit()
        return log
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Audit write failed action=%s entity=%s/%s", action, entity_type, entity_id,
            extra={"group_id": group_id},
        )
        return None


def list_audit_entries(group_id: int, entity_type: str | None = None, entity_id=None) -> list[dict]:
    """Return a group's audit rows, newest first."""
    q = AuditLog.query.filter_by(group_id=group_id)
    if entity_type:
        q = q.filter_by(entity_type=entity_type)
    if entity_id is not None:
        q = q.filter_by(entity_id=str(entity_id))
    return [row.to_dict() for row in q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).all()]
