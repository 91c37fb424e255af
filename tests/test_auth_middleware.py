"""
Tests for JWT identity handling — jwt_service, jwt_auth middleware and the
permission decorators.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from flask import current_app

from app.services.jwt_service import ALGORITHM, decode_access_token, generate_access_token

ROUTES_URL = "/api/v1/approval/routes"


def _raw_token(**claims):
    now = datetime.now(timezone.utc)
    payload = {"type": "access", "iat": now, "exp": now + timedelta(minutes=5), **claims}
    return jwt.encode(payload, current_app.config["JWT_SECRET_KEY"], algorithm=ALGORITHM)


class TestJwtService:
    def test_round_trip_restores_integer_ids(self):
        payload = decode_access_token(generate_access_token(7, 3, "AUDITOR"))
        assert payload["sub"] == 7
        assert payload["group_id"] == 3
        assert payload["role"] == "AUDITOR"

    def test_expired_token(self):
        token = generate_access_token(1, 1, "ADMIN", expires_in=-10)
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_access_token(token)

    def test_wrong_type(self):
        with pytest.raises(jwt.InvalidTokenError, match="Expected access token"):
            decode_access_token(_raw_token(sub="1", group_id=1, role="ADMIN", type="refresh"))

    @pytest.mark.parametrize("claims", [
        {"group_id": 1, "role": "ADMIN"},
        {"sub": "abc", "group_id": 1, "role": "ADMIN"},
        {"sub": "1", "role": "ADMIN"},
        {"sub": "1", "group_id": 1},
        {"sub": "1", "group_id": 1, "role": ""},
    ])
    def test_missing_identity_claims(self, claims):
        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token(_raw_token(**claims))


class TestJwtMiddleware:
    def test_valid_token_sets_identity(self, client, admin, auth_headers):
        res = client.get(ROUTES_URL, headers=auth_headers(admin))
        assert res.status_code == 200

    def test_bad_signature_is_401(self, client, admin):
        token = jwt.encode(
            {"sub": str(admin.id), "group_id": admin.group_id, "role": "ADMIN", "type": "access"},
            "some-other-secret-that-is-long-enough",
            algorithm=ALGORITHM,
        )
        res = client.get(ROUTES_URL, headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_expired_token_is_401(self, client, admin):
        token = generate_access_token(admin.id, admin.group_id, admin.role, expires_in=-10)
        res = client.get(ROUTES_URL, headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_non_bearer_scheme_is_401(self, client):
        res = client.get(ROUTES_URL, headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert res.status_code == 401

    def test_token_group_scopes_every_lookup(self, client, admin, other_group, auth_headers, two_step_route):
        # A valid admin token for another group sees none of this group's routes
        res = client.get(ROUTES_URL, headers=auth_headers(admin, group_id=other_group.id))
        assert res.status_code == 200
        assert res.get_json()["routes"] == []

    def test_role_claim_decides_admin_access(self, client, member, auth_headers):
        res = client.post(
            ROUTES_URL,
            headers=auth_headers(member, role="ADMIN"),
            json={"name": "R", "steps": [{"approverRole": "ADMIN"}]},
        )
        assert res.status_code == 201
