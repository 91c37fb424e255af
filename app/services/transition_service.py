"""
Assignment Transition Engine — approve / reject the current step.

Only the assignment whose step_order equals the application's current_step
may act, and only a member holding that step's approver_role may act on it.
There is no admin bypass.

Transitions:
    approve  current → APPROVED; the next step (smallest higher step_order)
             becomes IN_PROGRESS, or the application completes as APPROVED.
    reject   current → REJECTED; every later assignment is reset to WAITING
             with actor, timestamp and comment cleared; the application ends
             as REJECTED.

Concurrency:
    The application row is read FOR UPDATE and the current assignment is
    claimed with ``UPDATE ... WHERE status = 'IN_PROGRESS'``.  A caller that
    loses the race updates zero rows and gets InvalidStateError; nothing it
    did is committed.
"""

import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import ForbiddenError, InvalidStateError, ValidationError
from app.models import db
from app.models.approval import (
    ACTION_APPROVE,
    ACTIONS,
    APPLICATION_APPROVED,
    APPLICATION_PENDING,
    APPLICATION_REJECTED,
    ASSIGNMENT_APPROVED,
    ASSIGNMENT_IN_PROGRESS,
    ASSIGNMENT_REJECTED,
    ASSIGNMENT_WAITING,
    ApprovalApplication,
    ApprovalAssignment,
)
from app.models.base import utcnow
from app.services.audit_service import record_audit
from app.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

NOT_PROCESSABLE = "This application cannot be processed"


def _clean_comment(comment):
    if not isinstance(comment, str):
        return None
    return comment.strip() or None


def _claim(assignment_id: int, status: str, actor_member_id: int, comment, now) -> bool:
    """Move an IN_PROGRESS assignment to *status*; False if someone got there first."""
    result = db.session.execute(
        update(ApprovalAssignment)
        .where(
            ApprovalAssignment.id == assignment_id,
            ApprovalAssignment.status == ASSIGNMENT_IN_PROGRESS,
        )
        .values(
            status=status,
            assigned_to_id=actor_member_id,
            acted_at=now,
            comment=comment,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _locked_current_assignment(group_id: int, application_id: int, actor_role: str):
    """Run the ordered preconditions and return (application, assignment)."""
    application = get_scoped(ApprovalApplication, application_id, group_id=group_id, for_update=True)
    if application.status != APPLICATION_PENDING or application.current_step is None:
        raise InvalidStateError(NOT_PROCESSABLE, current_state=application.status)

    assignment = application.current_assignment
    if assignment is None or assignment.status != ASSIGNMENT_IN_PROGRESS:
        raise InvalidStateError(
            NOT_PROCESSABLE,
            current_state=assignment.status if assignment else None,
        )
    if actor_role != assignment.approver_role:
        logger.warning(
            "Approval denied app=%s step=%s role=%s required=%s",
            application_id, assignment.step_order, actor_role, assignment.approver_role,
        )
        raise ForbiddenError(
            "You are not allowed to act on this approval step",
            required_role=assignment.approver_role,
        )
    return application, assignment


def act(
    group_id: int,
    application_id: int,
    actor_member_id: int,
    actor_role: str,
    action,
    comment=None,
) -> dict:
    """Approve or reject the application's current step.

    Args:
        group_id: Caller's group; applications of other groups are not found.
        application_id: Target application.
        actor_member_id: Member acting; recorded on the assignment.
        actor_role: Caller's role; must equal the step's approver_role.
        action: "approve" or "reject".
        comment: Optional note; trimmed, blank stored as NULL.

    Returns:
        The updated application payload.

    Raises:
        ValidationError: unknown action.
        NotFoundError: no such application in the group.
        InvalidStateError: application terminal or step already acted on.
        ForbiddenError: role mismatch.
    """
    if action not in ACTIONS:
        raise ValidationError("action must be 'approve' or 'reject'")
    comment = _clean_comment(comment)

    try:
        application, current = _locked_current_assignment(group_id, application_id, actor_role)
        before = application.snapshot()
        current_order = current.step_order
        now = utcnow()

        if action == ACTION_APPROVE:
            if not _claim(current.id, ASSIGNMENT_APPROVED, actor_member_id, comment, now):
                raise InvalidStateError(NOT_PROCESSABLE, current_state=ASSIGNMENT_APPROVED)
            following = [a for a in application.assignments if a.step_order > current_order]
            if following:
                nxt = min(following, key=lambda a: a.step_order)
                db.session.execute(
                    update(ApprovalAssignment)
                    .where(ApprovalAssignment.id == nxt.id)
                    .values(status=ASSIGNMENT_IN_PROGRESS, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                application.current_step = nxt.step_order
            else:
                application.current_step = None
                application.status = APPLICATION_APPROVED
        else:
            if not _claim(current.id, ASSIGNMENT_REJECTED, actor_member_id, comment, now):
                raise InvalidStateError(NOT_PROCESSABLE, current_state=ASSIGNMENT_REJECTED)
            db.session.execute(
                update(ApprovalAssignment)
                .where(
                    ApprovalAssignment.application_id == application.id,
                    ApprovalAssignment.step_order > current_order,
                )
                .values(
                    status=ASSIGNMENT_WAITING,
                    assigned_to_id=None,
                    acted_at=None,
                    comment=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            application.current_step = None
            application.status = APPLICATION_REJECTED

        db.session.commit()
    except (InvalidStateError, ForbiddenError):
        db.session.rollback()
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Approval transition failed app=%s action=%s", application_id, action)
        raise

    result = application.to_dict()
    logger.info(
        "ApprovalApplication id=%s %s at step=%s by member=%s -> %s",
        application_id, action, current_order, actor_member_id, application.status,
    )
    record_audit(
        entity_type="approval_application",
        entity_id=application_id,
        action=f"approval_application.{action}",
        group_id=group_id,
        actor_member_id=actor_member_id,
        before=before,
        after=application.snapshot(),
    )
    return result
