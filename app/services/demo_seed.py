"""
Demo data for local development (``flask seed-demo``).

Creates one group with a member per built-in role, a two-step
ACCOUNTANT → AUDITOR route and an expense template bound to it.
"""

import logging

from app.models.organization import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_AUDITOR, ROLE_MEMBER
from app.services import organization_service, route_service, template_service

logger = logging.getLogger(__name__)

EXPENSE_FORM = {
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
                {"label": "Events", "value": "events"},
            ],
        },
        {"id": "spentOn", "label": "Spent on", "type": "date"},
        {"id": "receipt", "label": "Receipt", "type": "file"},
        {"id": "notes", "label": "Notes", "type": "textarea"},
    ],
    "instructions": "Attach the receipt and explain anything unusual.",
    "version": 1,
}


def seed_demo(group_name: str = "Demo Club") -> dict:
    group = organization_service.create_group(group_name)
    members = [
        organization_service.add_member(group.id, f"Demo {role.title()}", role)
        for role in (ROLE_ADMIN, ROLE_ACCOUNTANT, ROLE_AUDITOR, ROLE_MEMBER)
    ]
    admin_id = members[0].id

    route = route_service.create_route(
        group.id,
        "Expense approval",
        [{"approverRole": ROLE_ACCOUNTANT}, {"approverRole": ROLE_AUDITOR}],
        actor_member_id=admin_id,
    )
    template_service.create_template(
        group.id,
        "Expense claim",
        EXPENSE_FORM,
        route["id"],
        "Reimbursement of club expenses",
        actor_member_id=admin_id,
    )
    logger.info("Demo data seeded for group=%s", group.id)
    return {
        "group_id": group.id,
        "members": [m.to_dict() for m in members],
        "route_id": route["id"],
    }
