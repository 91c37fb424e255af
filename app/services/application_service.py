"""
Application Lifecycle Manager — filing approval applications.

An application is created PENDING together with one assignment per route
step in a single transaction: the first step IN_PROGRESS, every later one
WAITING.  Submitted values are validated against the template's stored form
schema and only the cleaned values are persisted.

Transitions after creation live in transition_service.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import NoStepsError, ValidationError
from app.models import db
from app.models.approval import (
    APPLICATION_PENDING,
    ASSIGNMENT_IN_PROGRESS,
    ASSIGNMENT_WAITING,
    ApprovalApplication,
    ApprovalAssignment,
    ApprovalRoute,
    ApprovalTemplate,
)
from app.services.audit_service import record_audit
from app.services.form_schema import DEFAULT_FORM_SCHEMA, parse_form_schema, validate_form_data
from app.services.helpers.scoped_queries import get_scoped, require_id

logger = logging.getLogger(__name__)

QUICK_TEMPLATE_NAME = "General request"


# ── Reads ────────────────────────────────────────────────────────────────────

def list_applications(group_id: int) -> list[dict]:
    """All applications of the group, newest first."""
    rows = (
        ApprovalApplication.query_for_group(group_id)
        .order_by(ApprovalApplication.created_at.desc(), ApprovalApplication.id.desc())
        .all()
    )
    return [a.to_dict() for a in rows]


def get_application(group_id: int, application_id: int) -> dict:
    return get_scoped(ApprovalApplication, application_id, group_id=group_id).to_dict()


def list_pending_for_role(group_id: int, role: str) -> list[dict]:
    """Pending applications whose current step waits on *role*, oldest first."""
    rows = (
        ApprovalApplication.query_for_group(group_id)
        .join(
            ApprovalAssignment,
            (ApprovalAssignment.application_id == ApprovalApplication.id)
            & (ApprovalAssignment.step_order == ApprovalApplication.current_step),
        )
        .filter(
            ApprovalApplication.status == APPLICATION_PENDING,
            ApprovalAssignment.status == ASSIGNMENT_IN_PROGRESS,
            ApprovalAssignment.approver_role == role,
        )
        .order_by(ApprovalApplication.created_at.asc(), ApprovalApplication.id.asc())
        .all()
    )
    return [a.to_dict() for a in rows]


# ── Creation ─────────────────────────────────────────────────────────────────

def _clean_title(title) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title is required")
    return title.strip()


def _validated_data(schema, raw_data) -> dict:
    result = validate_form_data(schema, raw_data if raw_data is not None else {})
    if not result.ok:
        raise ValidationError(" ".join(result.errors), details={"fields": result.errors})
    return result.cleaned


def _persist(template: ApprovalTemplate, applicant_id: int, title: str, data: dict) -> ApprovalApplication:
    """Write the application and its assignments; caller holds the transaction."""
    steps = template.route.steps
    application = ApprovalApplication(
        group_id=template.group_id,
        template=template,
        applicant_id=applicant_id,
        title=title,
        data=data,
        status=APPLICATION_PENDING,
        current_step=steps[0].step_order,
    )
    application.assignments = [
        ApprovalAssignment(
            step_id=step.id,
            step_order=step.step_order,
            approver_role=step.approver_role,
            status=ASSIGNMENT_IN_PROGRESS if i == 0 else ASSIGNMENT_WAITING,
        )
        for i, step in enumerate(steps)
    ]
    db.session.add(application)
    return application


def _commit_and_audit(application: ApprovalApplication, actor_member_id: int) -> dict:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    result = application.to_dict()
    logger.info(
        "ApprovalApplication created id=%s group=%s template=%s steps=%d",
        application.id, application.group_id, application.template_id, len(application.assignments),
    )
    record_audit(
        entity_type="approval_application",
        entity_id=application.id,
        action="approval_application.create",
        group_id=application.group_id,
        actor_member_id=actor_member_id,
        after=application.snapshot(),
    )
    return result


def create_application(group_id: int, template_id, applicant_id: int, title, raw_data) -> dict:
    """File an application against an active template of the group.

    Raises:
        NotFoundError: template missing, inactive, or owned by another group.
        NoStepsError: the template's route has no steps.
        ValidationError: blank title or form data that fails the schema.
    """
    template_id = require_id(template_id, "templateId is required")
    template = get_scoped(ApprovalTemplate, template_id, group_id=group_id, is_active=True)
    if not template.route or not template.route.steps:
        raise NoStepsError(route_id=template.route_id)

    data = _validated_data(parse_form_schema(template.fields), raw_data)
    title = _clean_title(title)

    application = _persist(template, applicant_id, title, data)
    return _commit_and_audit(application, applicant_id)


def _quick_template(route: ApprovalRoute) -> ApprovalTemplate:
    """Find or stage the group's active general-request template for *route*."""
    template = (
        ApprovalTemplate.query_for_group(route.group_id)
        .filter_by(route_id=route.id, name=QUICK_TEMPLATE_NAME, is_active=True)
        .order_by(ApprovalTemplate.id.asc())
        .first()
    )
    if template is None:
        template = ApprovalTemplate(
            group_id=route.group_id,
            name=QUICK_TEMPLATE_NAME,
            description="Created automatically for requests filed directly against a route",
            fields=parse_form_schema(DEFAULT_FORM_SCHEMA).to_dict(),
            route=route,
            is_active=True,
        )
        db.session.add(template)
        db.session.flush()
        logger.info("Quick template staged for route=%s group=%s", route.id, route.group_id)
    return template


def create_quick_application(group_id: int, route_id, applicant_id: int, title, raw_data) -> dict:
    """File an application straight against a route using the common form.

    The general-request template is created in the same transaction as the
    application, so a failed filing leaves no template behind.
    """
    route = get_scoped(ApprovalRoute, route_id, group_id=group_id)
    if not route.steps:
        raise NoStepsError(route_id=route.id)

    data = _validated_data(DEFAULT_FORM_SCHEMA, raw_data)
    title = _clean_title(title)

    try:
        template = _quick_template(route)
        application = _persist(template, applicant_id, title, data)
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return _commit_and_audit(application, applicant_id)
