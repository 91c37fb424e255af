"""
JWT Service — access token generation and verification.

The engine does not own sign-in; an upstream identity provider (or the
``flask issue-token`` command in development) mints tokens with the same
secret.  The approval blueprint only trusts what these claims say.

Access token:  15 minutes (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload:
{
    "sub": "<member_id>",
    "group_id": <group_id>,
    "role": "ACCOUNTANT",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(member_id: int, group_id: int, role: str, expires_in: int | None = None) -> str:
    """Generate a short-lived access token for a group member."""
    now = datetime.now(timezone.utc)
    lifetime = _get_access_expires() if expires_in is None else expires_in
    payload = {
        # RFC 7519 subjects are strings
        "sub": str(member_id),
        "group_id": group_id,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=lifetime),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])

    # Verify token type
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

    return payload


def decode_access_token(token: str) -> dict:
    """Decode an access token and check the identity claims are usable."""
    payload = decode_token(token, expected_type="access")
    try:
        payload["sub"] = int(payload["sub"])
        payload["group_id"] = int(payload["group_id"])
    except (KeyError, TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError("Token is missing member or group claims") from exc
    if not isinstance(payload.get("role"), str) or not payload["role"]:
        raise jwt.InvalidTokenError("Token is missing the role claim")
    return payload
