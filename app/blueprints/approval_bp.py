"""
Approval Workflow Blueprint.

Routes (prefix /api/v1/approval):
  GET    /routes                          – list approval routes
  POST   /routes                          – create route (admin)
  DELETE /routes/<rid>                    – delete route (admin)
  POST   /routes/<rid>/applications       – quick application on the common form
  GET    /templates                       – list templates (admin: all, else active)
  POST   /templates                       – create template (admin)
  GET    /templates/<tid>                 – template detail + initial form values
  PATCH  /templates/<tid>                 – activate / deactivate (admin)
  GET    /applications                    – list applications
  POST   /applications                    – file an application
  GET    /applications/pending            – applications waiting on my role
  GET    /applications/<aid>              – application detail
  PATCH  /applications/<aid>              – approve / reject the current step
  GET    /applications/<aid>/history      – audit trail of the application

Identity (member, group, role) comes from the JWT middleware.  The view
functions only parse the body and call services; every domain exception is
mapped to a JSON error by the handlers below.
"""

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.middleware.permission_required import current_identity, require_admin, require_identity
from app.models.organization import APPROVAL_MODULE
from app.services import (
    application_service,
    route_service,
    template_service,
    transition_service,
)
from app.services.audit_service import list_audit_entries
from app.services.module_service import ensure_module_enabled, is_module_enabled
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

approval_bp = Blueprint("approval", __name__, url_prefix="/api/v1/approval")


# ═════════════════════════════════════════════════════════════════════════════
# Error handlers
# ═════════════════════════════════════════════════════════════════════════════

@approval_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@approval_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@approval_bp.errorhandler(ForbiddenError)
def _handle_forbidden(error: ForbiddenError):
    return api_error(E.FORBIDDEN, str(error))


@approval_bp.errorhandler(AuthenticationError)
def _handle_unauthenticated(error: AuthenticationError):
    return api_error(E.UNAUTHENTICATED, str(error))


@approval_bp.errorhandler(InvalidStateError)
def _handle_invalid_state(error: InvalidStateError):
    return api_error(E.CONFLICT_STATE, str(error))


@approval_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_STATE, str(error))


@approval_bp.errorhandler(SQLAlchemyError)
def _handle_database(error: SQLAlchemyError):
    logger.exception("Database error in approval_bp endpoint=%s", request.endpoint)
    return api_error(E.DATABASE, "Database error")


@approval_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in approval_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ── helpers ──────────────────────────────────────────────────────────────

def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _module_on(group_id: int) -> bool:
    return is_module_enabled(group_id, APPROVAL_MODULE)


# ═════════════════════════════════════════════════════════════════════════════
# ROUTES
# ═════════════════════════════════════════════════════════════════════════════

@approval_bp.route("/routes", methods=["GET"])
@require_identity
def list_routes():
    ident = current_identity()
    if not _module_on(ident.group_id):
        return jsonify({"routes": []})
    return jsonify({"routes": route_service.list_routes(ident.group_id)})


@approval_bp.route("/routes", methods=["POST"])
@require_admin
def create_route():
    """Body: { name, steps: [{approverRole, requireAll?, conditions?}] }"""
    ident = current_identity()
    ensure_module_enabled(ident.group_id, APPROVAL_MODULE)
    data = _body()
    route = route_service.create_route(
        ident.group_id,
        data.get("name"),
        data.get("steps"),
        actor_member_id=ident.member_id,
    )
    return jsonify({"route": route}), 201


@approval_bp.route("/routes/<int:rid>", methods=["DELETE"])
@require_admin
def delete_route(rid):
    ident = current_identity()
    ensure_module_enabled(ident.group_id, APPROVAL_MODULE)
    route_service.delete_route(ident.group_id, rid, actor_member_id=ident.member_id)
    return jsonify({"success": True})


@approval_bp.route("/routes/<int:rid>/applications", methods=["POST"])
@require_identity
def create_quick_application(rid):
    """Body: { title, data } — data follows the common request form."""
    ident = current_identity()
    ensure_module_enabled(ident.group_id, APPROVAL_MODULE)
    data = _body()
    application = application_service.create_quick_application(
        ident.group_id, rid, ident.member_id, data.get("title"), data.get("data"),
    )
    return jsonify({"application": application}), 201


# ═════════════════════════════════════════════════════════════════════════════
# TEMPLATES
# ═════════════════════════════════════════════════════════════════════════════

@approval_bp.route("/templates", methods=["GET"])
@require_identity
def list_templates():
    ident = current_identity()
    if not _module_on(ident.group_id):
        return jsonify({"templates": []})
    active_only = request.args.get("active") == "true" or not ident.is_admin
    if active_only:
        templates = template_service.list_active_templates(ident.group_id)
    else:
        templates = template_service.list_templates(ident.group_id)
    return jsonify({"templates": templates})


@approval_bp.route("/templates", methods=["POST"])
@require_admin
def create_template():
    """Body: { name, description?, fields: {items: [...]}, routeId }"""
    ident = current_identity()
    ensure_module_enabled(ident.group_id, APPROVAL_MODULE)
    data = _body()
    template = template_service.create_template(
        ident.group_id,
        data.get("name"),
        data.get("fields"),
        data.get("routeId"),
        data.get("description"),
        actor_member_id=ident.member_id,
    )
    return jsonify({"template": template}), 201


@approval_bp.route("/templates/<int:tid>", methods=["GET"])
@require_identity
def get_template(tid):
    ident = current_identity()
    ensure_module_enabled(ident.group_id, APPROVAL_MODULE)
    return jsonify({"template": template_service.get_template(ident.group_id, tid)})


@approval_bp.route("/templates/<int:tid>", methods=["PATCH"])
@require_admin
def update_template(tid):
    """Body: { isActive } — schema and route are immutable."""
    ident = current_identity()
    ensure_module_enabled(ident.group_id, APPROVAL_MODULE)
    data = _body()
    template = template_service.set_template_active(
        ident.group_id, tid, data.get("isActive"), actor_member_id=ident.member_id,
    )
    return jsonify({"template": template})


# ═════════════════════════════════════════════════════════════════════════════
# APPLICATIONS
# ═════════════════════════════════════════════════════════════════════════════

@approval_bp.route("/applications", methods=["GET"])
@require_identity
def list_applications():
    ident = current_identity()
    if not _module_on(ident.group_id):
        return jsonify({"applications": []})
    return jsonify({"applications": application_service.list_applications(ident.group_id)})


@approval_bp.route("/applications", methods=["POST"])
@require_identity
def create_application():
    """Body: { templateId, title, data }"""
    ident = current_identity()
    ensure_module_enabled(ident.group_id, APPROVAL_MODULE)
    data = _body()
    application = application_service.create_application(
        ident.group_id,
        data.get("templateId"),
        ident.member_id,
        data.get("title"),
        data.get("data"),
    )
    return jsonify({"application": application}), 201


@approval_bp.route("/applications/pending", methods=["GET"])
@require_identity
def list_pending_applications():
    ident = current_identity()
    if not _module_on(ident.group_id):
        return jsonify({"applications": []})
    return jsonify({
        "applications": application_service.list_pending_for_role(ident.group_id, ident.role),
    })


@approval_bp.route("/applications/<int:aid>", methods=["GET"])
@require_identity
def get_application(aid):
    ident = current_identity()
    ensure_module_enabled(ident.group_id, APPROVAL_MODULE)
    return jsonify({"application": application_service.get_application(ident.group_id, aid)})


@approval_bp.route("/applications/<int:aid>", methods=["PATCH"])
@require_identity
def act_on_application(aid):
    """Body: { action: "approve" | "reject", comment? }"""
    ident = current_identity()
    ensure_module_enabled(ident.group_id, APPROVAL_MODULE)
    data = _body()
    application = transition_service.act(
        ident.group_id,
        aid,
        ident.member_id,
        ident.role,
        data.get("action"),
        data.get("comment"),
    )
    return jsonify({"application": application})


@approval_bp.route("/applications/<int:aid>/history", methods=["GET"])
@require_identity
def application_history(aid):
    ident = current_identity()
    ensure_module_enabled(ident.group_id, APPROVAL_MODULE)
    # 404 for unknown or foreign ids before exposing any audit rows
    application_service.get_application(ident.group_id, aid)
    entries = list_audit_entries(ident.group_id, entity_type="approval_application", entity_id=aid)
    return jsonify({"history": entries})
