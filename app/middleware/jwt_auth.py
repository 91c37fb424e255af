"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.member_*.

Runs as a before_request hook for every /api/v1/ path except the skipped
ones.  It never rejects a request by itself: a missing, expired or invalid
token simply leaves the identity empty, and the endpoint decorators in
permission_required decide whether that is acceptable.

Identity on success:
    g.member_id    ← "sub"
    g.group_id     ← "group_id"
    g.member_role  ← "role"
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.member_id = None
        g.group_id = None
        g.member_role = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected access token on %s: %s", path, exc)
            return

        g.member_id = payload["sub"]
        g.group_id = payload["group_id"]
        g.member_role = payload["role"]
