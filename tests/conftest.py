"""
Shared pytest fixtures for the Approval Workflow Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - group / other_group: Pre-created Group entities
    - admin, accountant, auditor, member: one Member per role in `group`
    - auth_headers: factory returning Bearer headers for a Member
    - two_step_route / expense_template: ACCOUNTANT → AUDITOR setup
"""

import copy

import pytest

from app import create_app
from app.models import db as _db
from app.models.organization import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_AUDITOR, ROLE_MEMBER
from app.services import organization_service, route_service, template_service
from app.services.jwt_service import generate_access_token


EXPENSE_FIELDS = {
    "items": [
        {"id": "amount", "label": "Amount", "type": "number", "required": True, "min": 0},
        {
            "id": "category",
            "label": "Category",
            "type": "select",
            "required": True,
            "options": [
                {"label": "Travel", "value": "travel"},
                {"label": "Equipment", "value": "equipment"},
            ],
        },
        {"id": "notes", "label": "Notes", "type": "textarea"},
    ],
}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Organization fixtures ────────────────────────────────────────────────


@pytest.fixture()
def group():
    return organization_service.create_group("Test Club", slug="test-club")


@pytest.fixture()
def other_group():
    return organization_service.create_group("Other Club", slug="other-club")


@pytest.fixture()
def admin(group):
    return organization_service.add_member(group.id, "Alice Admin", ROLE_ADMIN)


@pytest.fixture()
def accountant(group):
    return organization_service.add_member(group.id, "Ava Accountant", ROLE_ACCOUNTANT)


@pytest.fixture()
def auditor(group):
    return organization_service.add_member(group.id, "Oscar Auditor", ROLE_AUDITOR)


@pytest.fixture()
def member(group):
    return organization_service.add_member(group.id, "Mia Member", ROLE_MEMBER)


@pytest.fixture()
def auth_headers(app):
    """Factory: Bearer headers for a Member (role/group overridable)."""

    def _make(m, *, role=None, group_id=None):
        token = generate_access_token(
            m.id,
            group_id if group_id is not None else m.group_id,
            role or m.role,
        )
        return {"Authorization": f"Bearer {token}"}

    return _make


# ── Approval fixtures ────────────────────────────────────────────────────


@pytest.fixture()
def two_step_route(group, admin):
    """ACCOUNTANT → AUDITOR route, returned as its serialized dict."""
    return route_service.create_route(
        group.id,
        "Expense approval",
        [{"approverRole": ROLE_ACCOUNTANT}, {"approverRole": ROLE_AUDITOR}],
        actor_member_id=admin.id,
    )


@pytest.fixture()
def expense_fields():
    return copy.deepcopy(EXPENSE_FIELDS)


@pytest.fixture()
def expense_template(group, admin, two_step_route):
    return template_service.create_template(
        group.id,
        "Expense claim",
        EXPENSE_FIELDS,
        two_step_route["id"],
        actor_member_id=admin.id,
    )
