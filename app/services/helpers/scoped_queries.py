"""
Group-scoped query helpers.

Every get-by-id in the approval services goes through these helpers instead
of db.session.get(Model, pk). A direct .get() would happily return another
group's route or application; here a cross-group id is indistinguishable
from a missing one.

Usage:
    route = get_scoped(ApprovalRoute, route_id, group_id=group_id)

    # Extra equality filters (e.g. active templates only)
    tpl = get_scoped(ApprovalTemplate, tpl_id, group_id=group_id, is_active=True)

    # Row lock for read-check-write sequences
    app_row = get_scoped(ApprovalApplication, app_id, group_id=group_id, for_update=True)

    # Ids read from a request body are checked before the lookup
    route_id = require_id(body.get("routeId"), "routeId is required")
"""

import logging

from sqlalchemy import select

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db

logger = logging.getLogger(__name__)


def get_scoped(model, pk: int, *, group_id: int, for_update: bool = False, **filters):
    """Fetch a single entity by PK within a group.

    Args:
        model: SQLAlchemy model class with ``id`` and ``group_id`` columns.
        pk: Primary key value to look up.
        group_id: Owning group; mandatory.
        for_update: Emit ``SELECT ... FOR UPDATE`` (ignored by SQLite).
        **filters: Additional ``column == value`` filters.

    Raises:
        ValueError: If group_id is None or the model has no group_id column.
        NotFoundError: If the entity does not exist OR belongs to another group.
    """
    if group_id is None:
        raise ValueError(f"{model.__name__} id={pk} requires a group_id scope")
    if not hasattr(model, "group_id"):
        raise ValueError(f"{model.__name__} has no group_id column; refusing unscoped lookup")

    stmt = select(model).where(model.id == pk, model.group_id == group_id)
    for column, value in filters.items():
        stmt = stmt.where(getattr(model, column) == value)
    if for_update:
        stmt = stmt.with_for_update()

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in group %s", model.__name__, pk, group_id)
        raise NotFoundError(resource=model.__name__, resource_id=pk, group_id=group_id)
    return result


def require_id(value, message: str) -> int:
    """Return *value* as a primary key or raise ValidationError(message).

    Only positive ints qualify; booleans, strings, lists and dicts from a
    request body never reach a query.
    """
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(message)
    return value
