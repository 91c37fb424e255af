"""
Organization Service — groups and their members.

Sign-in and membership management belong to the surrounding platform; this
module only provides what the engine itself needs: creating a group with
its members (CLI seeding, tests) and resolving a member inside a group.
"""

import logging
import re

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.organization import Group, Member

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return _SLUG_RE.sub("-", name.lower()).strip("-") or "group"


def create_group(name: str, slug: str | None = None) -> Group:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Group name is required")
    group = Group(name=name.strip(), slug=slug or slugify(name))
    db.session.add(group)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Group created id=%s slug=%s", group.id, group.slug)
    return group


def add_member(group_id: int, display_name: str, role: str, email: str | None = None) -> Member:
    if not isinstance(display_name, str) or not display_name.strip():
        raise ValidationError("display_name is required")
    if not isinstance(role, str) or not role.strip():
        raise ValidationError("role is required")
    if db.session.get(Group, group_id) is None:
        raise NotFoundError(resource="Group", resource_id=group_id)

    member = Member(
        group_id=group_id,
        display_name=display_name.strip(),
        role=role.strip().upper(),
        email=email,
    )
    db.session.add(member)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Member created id=%s group=%s role=%s", member.id, group_id, member.role)
    return member


def get_member(group_id: int, member_id: int) -> Member:
    """Member lookup that refuses members of other groups."""
    member = Member.query.filter_by(id=member_id, group_id=group_id).first()
    if member is None:
        raise NotFoundError(resource="Member", resource_id=member_id, group_id=group_id)
    return member
