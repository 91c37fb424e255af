"""
Tests for app/services/helpers/scoped_queries.py

These tests are security-critical: they verify the group isolation helper
behaves correctly under adversarial conditions.

Scenarios covered:
  1. ValueError when called without a group scope
  2. ValueError when the model has no group_id column
  3. NotFoundError when PK is correct but the group does not match
  4. Correct entity returned when PK + group both match (extra filters too)
  5. require_id refuses non-integer ids from request bodies

Test isolation strategy:
  Relies on the autouse `session` fixture from conftest.py which rolls back
  and recreates tables after every test. Each test creates its own data.
"""

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.approval import ApprovalRoute, ApprovalStep, ApprovalTemplate
from app.services.helpers.scoped_queries import get_scoped, require_id


# ── Test helpers ─────────────────────────────────────────────────────────────


def _make_route(group_id: int, name: str = "Route"):
    """Create and flush a minimal one-step route in the given group."""
    route = ApprovalRoute(group_id=group_id, name=name)
    route.steps = [ApprovalStep(step_order=1, approver_role="ADMIN")]
    db.session.add(route)
    db.session.flush()
    return route


# ── 1 + 2. ValueError — missing or inapplicable scope ────────────────────────


class TestGetScopedRequiresGroup:
    """get_scoped must refuse to execute an unscoped lookup."""

    def test_none_group_raises_value_error(self):
        """group_id=None → ValueError. Fail-loud prevents accidental unscoped lookups."""
        with pytest.raises(ValueError, match="ApprovalRoute id=1 requires a group_id scope"):
            get_scoped(ApprovalRoute, 1, group_id=None)

    def test_model_without_group_column_raises_value_error(self):
        """ApprovalStep is scoped through its route, never directly."""
        with pytest.raises(ValueError, match="ApprovalStep has no group_id column"):
            get_scoped(ApprovalStep, 1, group_id=1)


# ── 3. NotFoundError — wrong group (cross-group access) ──────────────────────


class TestGetScopedWrongGroupRaisesNotFound:
    """A mismatched group is indistinguishable from a missing row (404, not 403)."""

    def test_wrong_group_raises_not_found(self, group, other_group):
        route = _make_route(group.id)
        with pytest.raises(NotFoundError) as exc_info:
            get_scoped(ApprovalRoute, route.id, group_id=other_group.id)
        assert exc_info.value.resource == "ApprovalRoute"
        assert exc_info.value.group_id == other_group.id

    def test_nonexistent_pk_raises_not_found(self, group):
        with pytest.raises(NotFoundError, match="ApprovalRoute id=999999 not found"):
            get_scoped(ApprovalRoute, 999_999, group_id=group.id)


# ── 4. Happy path ────────────────────────────────────────────────────────────


class TestGetScopedCorrectGroupReturnsEntity:
    def test_returns_entity_among_multiple(self, group):
        _make_route(group.id, "First")
        second = _make_route(group.id, "Second")

        result = get_scoped(ApprovalRoute, second.id, group_id=group.id)

        assert result.id == second.id
        assert result.name == "Second"

    def test_extra_filters_apply(self, group):
        route = _make_route(group.id)
        tpl = ApprovalTemplate(
            group_id=group.id, name="T", fields={"items": []}, route_id=route.id, is_active=False,
        )
        db.session.add(tpl)
        db.session.flush()

        assert get_scoped(ApprovalTemplate, tpl.id, group_id=group.id).id == tpl.id
        with pytest.raises(NotFoundError):
            get_scoped(ApprovalTemplate, tpl.id, group_id=group.id, is_active=True)

    def test_for_update_returns_entity(self, group):
        route = _make_route(group.id)
        assert get_scoped(ApprovalRoute, route.id, group_id=group.id, for_update=True) is route


# ── 5. require_id ────────────────────────────────────────────────────────────


class TestRequireId:
    """Body ids are type-checked before any query is built."""

    def test_positive_int_passes_through(self):
        assert require_id(12, "routeId is required") == 12

    @pytest.mark.parametrize("value", [None, True, False, 0, -3, "7", "abc", 1.0, [1], {"id": 1}])
    def test_everything_else_is_a_validation_error(self, value):
        with pytest.raises(ValidationError, match="routeId is required"):
            require_id(value, "routeId is required")
