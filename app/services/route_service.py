"""
Route Registry — approval routes and their ordered steps.

Centralises all ORM queries and mutations for ApprovalRoute / ApprovalStep so
that the blueprint stays HTTP-only.  Every db.session.commit() in this module
is intentional and owns the transaction.

Rules:
    - A route has at least one step.
    - step_order is the 1-based position in the submitted list, nothing else.
    - conditions is stored verbatim and never interpreted here.
    - A route referenced by any template cannot be deleted.
"""

import logging
from collections.abc import Mapping

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.approval import ApprovalRoute, ApprovalStep, ApprovalTemplate
from app.services.audit_service import record_audit
from app.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def normalize_steps(raw_steps) -> list[dict]:
    """Validate a raw step list and return normalised step dicts.

    Problems in individual steps are aggregated into one ValidationError.
    """
    if not isinstance(raw_steps, list):
        raise ValidationError("steps must be an array")
    if not raw_steps:
        raise ValidationError("At least one approval step is required")

    errors = []
    steps = []
    for index, raw in enumerate(raw_steps, 1):
        if not isinstance(raw, Mapping):
            errors.append(f"Step {index} is invalid")
            continue
        role = raw.get("approverRole", raw.get("approver_role"))
        if not isinstance(role, str) or not role.strip():
            errors.append(f"Step {index} requires an approverRole")
            continue
        require_all = raw.get("requireAll", raw.get("require_all", True))
        steps.append({
            "step_order": index,
            "approver_role": role.strip(),
            "require_all": require_all if isinstance(require_all, bool) else True,
            "conditions": raw.get("conditions") or None,
        })
    if errors:
        raise ValidationError("; ".join(errors), details={"steps": errors})
    return steps


def list_routes(group_id: int) -> list[dict]:
    """Return the group's routes, newest first, steps ascending by step_order."""
    routes = (
        ApprovalRoute.query_for_group(group_id)
        .order_by(ApprovalRoute.created_at.desc(), ApprovalRoute.id.desc())
        .all()
    )
    return [r.to_dict() for r in routes]


def get_route(group_id: int, route_id: int) -> ApprovalRoute:
    return get_scoped(ApprovalRoute, route_id, group_id=group_id)


def create_route(group_id: int, name, steps, *, actor_member_id: int | None = None) -> dict:
    """Persist a route with its steps in one transaction.

    Args:
        group_id: Owning group.
        name: Route display name.
        steps: Raw list of {approverRole, requireAll?, conditions?}.
        actor_member_id: Administrator performing the change (audit only).

    Returns:
        Serialized route with ordered steps.

    Raises:
        ValidationError: empty name, empty step list or malformed steps.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Route name is required")
    normalised = normalize_steps(steps)

    route = ApprovalRoute(group_id=group_id, name=name.strip())
    route.steps = [ApprovalStep(**s) for s in normalised]
    db.session.add(route)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    result = route.to_dict()
    logger.info("ApprovalRoute created id=%s group=%s steps=%d", route.id, group_id, len(normalised))
    record_audit(
        entity_type="approval_route",
        entity_id=route.id,
        action="approval_route.create",
        group_id=group_id,
        actor_member_id=actor_member_id,
        after=result,
    )
    return result


def _route_in_use(route_id: int) -> ConflictError:
    return ConflictError(
        "ApprovalRoute", route_id, "This approval route is used by a template and cannot be deleted",
    )


def count_template_references(route: ApprovalRoute) -> int:
    return ApprovalTemplate.query.filter_by(route_id=route.id).count()


def delete_route(group_id: int, route_id: int, *, actor_member_id: int | None = None) -> None:
    """Delete a route and its steps.

    Raises:
        NotFoundError: unknown id or another group's route.
        ConflictError: at least one template still uses the route.
    """
    route = get_scoped(ApprovalRoute, route_id, group_id=group_id)
    references = count_template_references(route)
    if references:
        logger.warning("ApprovalRoute id=%s delete blocked: %d template(s)", route_id, references)
        raise _route_in_use(route_id)

    before = route.to_dict()
    db.session.delete(route)
    try:
        db.session.commit()
    except IntegrityError:
        # a template was bound to the route after the reference count
        db.session.rollback()
        logger.warning("ApprovalRoute id=%s delete blocked by a concurrent template", route_id)
        raise _route_in_use(route_id) from None
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("ApprovalRoute deleted id=%s group=%s", route_id, group_id)
    record_audit(
        entity_type="approval_route",
        entity_id=route_id,
        action="approval_route.delete",
        group_id=group_id,
        actor_member_id=actor_member_id,
        before=before,
    )
