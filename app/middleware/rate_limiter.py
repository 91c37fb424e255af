"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per blueprint.  Storage comes from
RATELIMIT_STORAGE_URI, so counters live as long as the app's limiter.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

APPROVAL_LIMIT = "60/minute"


def rate_limit_key():
    """Limit per authenticated member when known, else per remote IP."""
    member_id = getattr(g, "member_id", None)
    if member_id:
        return f"member:{member_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Approval endpoints: 60/minute per member
        - Health check:       exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    bp = app.blueprints.get("approval")
    if bp:
        limiter.limit(APPROVAL_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — approval: %s, health: exempt", APPROVAL_LIMIT)
