"""
Template Registry — application form templates bound to approval routes.

A template pairs a canonical form schema with one route of the same group.
Once created, its schema and route are never edited; retiring a template is
done by deactivating it, which hides it from applicants without touching the
applications already filed against it.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import ValidationError
from app.models import db
from app.models.approval import ApprovalRoute, ApprovalTemplate
from app.services.audit_service import record_audit
from app.services.form_schema import build_initial_values, parse_form_schema
from app.services.helpers.scoped_queries import get_scoped, require_id

logger = logging.getLogger(__name__)


def _ordered(query):
    return query.order_by(ApprovalTemplate.created_at.desc(), ApprovalTemplate.id.desc())


def list_templates(group_id: int) -> list[dict]:
    """All templates of the group, inactive ones included (admin view)."""
    return [t.to_dict() for t in _ordered(ApprovalTemplate.query_for_group(group_id)).all()]


def list_active_templates(group_id: int) -> list[dict]:
    """Templates an applicant may file against."""
    q = ApprovalTemplate.query_for_group(group_id).filter_by(is_active=True)
    return [t.to_dict() for t in _ordered(q).all()]


def get_template(group_id: int, template_id: int) -> dict:
    """Template payload plus the values a blank form starts from."""
    template = get_scoped(ApprovalTemplate, template_id, group_id=group_id)
    result = template.to_dict()
    result["initial_values"] = build_initial_values(template.fields)
    return result


def create_template(
    group_id: int,
    name,
    fields_raw,
    route_id,
    description=None,
    *,
    actor_member_id: int | None = None,
) -> dict:
    """Parse the form schema, resolve the route and persist an active template.

    Raises:
        ValidationError: blank name or missing route id.
        SchemaError: malformed form schema.
        NotFoundError: route missing or owned by another group.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Template name is required")
    route_id = require_id(route_id, "routeId is required")

    schema = parse_form_schema(fields_raw)
    route = get_scoped(ApprovalRoute, route_id, group_id=group_id)

    template = ApprovalTemplate(
        group_id=group_id,
        name=name.strip(),
        description=(description.strip() or None) if isinstance(description, str) else None,
        fields=schema.to_dict(),
        route_id=route.id,
        is_active=True,
    )
    db.session.add(template)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    result = template.to_dict()
    logger.info("ApprovalTemplate created id=%s group=%s route=%s", template.id, group_id, route.id)
    record_audit(
        entity_type="approval_template",
        entity_id=template.id,
        action="approval_template.create",
        group_id=group_id,
        actor_member_id=actor_member_id,
        after=result,
    )
    return result


def set_template_active(
    group_id: int,
    template_id: int,
    is_active,
    *,
    actor_member_id: int | None = None,
) -> dict:
    """Activate or deactivate a template. A no-op change is not audited."""
    if not isinstance(is_active, bool):
        raise ValidationError("isActive must be a boolean")

    template = get_scoped(ApprovalTemplate, template_id, group_id=group_id)
    if template.is_active == is_active:
        return template.to_dict()

    template.is_active = is_active
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    action = "approval_template.activate" if is_active else "approval_template.deactivate"
    logger.info("ApprovalTemplate id=%s %s", template_id, "activated" if is_active else "deactivated")
    record_audit(
        entity_type="approval_template",
        entity_id=template_id,
        action=action,
        group_id=group_id,
        actor_member_id=actor_member_id,
        before={"is_active": not is_active},
        after={"is_active": is_active},
    )
    return template.to_dict()
