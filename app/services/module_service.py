"""
Module Service — per-group enablement of optional modules.

A group without a GroupModule row for a key has that module enabled; an
explicit row with is_enabled=False switches it off.  The approval blueprint
consults this before every call: list endpoints degrade to empty results,
mutating endpoints are refused.
"""

import logging

from app.core.exceptions import ForbiddenError
from app.models import db
from app.models.organization import GroupModule

logger = logging.getLogger(__name__)


def is_module_enabled(group_id: int, module_key: str) -> bool:
    """Return True unless the group explicitly disabled *module_key*."""
    row = GroupModule.query.filter_by(group_id=group_id, module_key=module_key).first()
    return True if row is None else bool(row.is_enabled)


def ensure_module_enabled(group_id: int, module_key: str) -> None:
    """Raise ForbiddenError when *module_key* is disabled for the group."""
    if not is_module_enabled(group_id, module_key):
        logger.info("Module '%s' disabled for group=%s", module_key, group_id)
        raise ForbiddenError(f"The {module_key} module is not enabled for this group")


def set_module_enabled(group_id: int, module_key: str, enabled: bool) -> GroupModule:
    """Create or update the group's switch for *module_key*."""
    row = GroupModule.query.filter_by(group_id=group_id, module_key=module_key).first()
    if row is None:
        row = GroupModule(group_id=group_id, module_key=module_key)
        db.session.add(row)
    row.is_enabled = bool(enabled)
    db.session.commit()
    logger.info("Module '%s' %s for group=%s", module_key, "enabled" if enabled else "disabled", group_id)
    return row
