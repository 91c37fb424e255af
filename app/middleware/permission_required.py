"""
Permission Decorators — JWT identity checks for route protection.

Usage:
    @approval_bp.route("/routes", methods=["POST"])
    @require_admin
    def create_route():
        ident = current_identity()
        ...

    @approval_bp.route("/applications/<int:application_id>", methods=["PATCH"])
    @require_identity
    def act_on_application(application_id):
        ...

The decorators raise AuthenticationError / ForbiddenError; the blueprint's
error handlers turn them into 401 / 403 responses.  Step-level approver
roles are NOT checked here; the transition engine enforces those.
"""

import functools
import logging
from typing import NamedTuple

from flask import g

from app.core.exceptions import AuthenticationError, ForbiddenError
from app.models.organization import ROLE_ADMIN

logger = logging.getLogger(__name__)


class Identity(NamedTuple):
    member_id: int
    group_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def current_identity() -> Identity:
    """Return the caller set by the JWT middleware, or raise AuthenticationError."""
    member_id = getattr(g, "member_id", None)
    group_id = getattr(g, "group_id", None)
    role = getattr(g, "member_role", None)
    if member_id is None or group_id is None or not role:
        raise AuthenticationError()
    return Identity(member_id, group_id, role)


def require_identity(f):
    """Decorator: any authenticated group member."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        current_identity()
        return f(*args, **kwargs)
    return decorated


def require_admin(f):
    """Decorator: only the group's administrators."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        ident = current_identity()
        if not ident.is_admin:
            logger.warning(
                "Member %d denied: role '%s' is not %s on %s",
                ident.member_id, ident.role, ROLE_ADMIN, f.__name__,
            )
            raise ForbiddenError("Administrator role required", required_role=ROLE_ADMIN)
        return f(*args, **kwargs)
    return decorated
