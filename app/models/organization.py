"""
Approval Workflow Engine
Organization domain models.

Models:
    - Group: the organization every approval record is scoped to.
    - Member: a person inside a Group, holding exactly one role.
    - GroupModule: per-group enablement of optional modules ("approval", ...).

Identity and session handling live outside this engine; these tables only
give applicants, approvers and audit rows something to point at.
"""

from datetime import datetime, timezone

from app.models import db

# ── Constants ────────────────────────────────────────────────────────────────

ROLE_ADMIN = "ADMIN"
ROLE_ACCOUNTANT = "ACCOUNTANT"
ROLE_AUDITOR = "AUDITOR"
ROLE_MEMBER = "MEMBER"

KNOWN_ROLES = frozenset({ROLE_ADMIN, ROLE_ACCOUNTANT, ROLE_AUDITOR, ROLE_MEMBER})

APPROVAL_MODULE = "approval"


class Group(db.Model):
    __tablename__ = "groups"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    members = db.relationship("Member", back_populates="group", lazy="dynamic")
    modules = db.relationship(
        "GroupModule", back_populates="group", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Member(db.Model):
    __tablename__ = "members"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(
        db.Integer,
        db.ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    display_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255))
    role = db.Column(
        db.String(50), nullable=False, default=ROLE_MEMBER,
        comment="ADMIN | ACCOUNTANT | AUDITOR | MEMBER | custom",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    group = db.relationship("Group", back_populates="members")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_summary(self):
        return {"id": self.id, "display_name": self.display_name}

    def to_dict(self):
        return {
            "id": self.id,
            "group_id": self.group_id,
            "display_name": self.display_name,
            "email": self.email,
            "role": self.role,
        }

    def __repr__(self):
        return f"<Member {self.id}: {self.display_name} ({self.role})>"


class GroupModule(db.Model):
    """Module switch for a group. A missing row means the module is enabled."""

    __tablename__ = "group_modules"
    __table_args__ = (
        db.UniqueConstraint("group_id", "module_key", name="uq_group_module"),
    )

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(
        db.Integer,
        db.ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    module_key = db.Column(db.String(50), nullable=False)
    is_enabled = db.Column(db.Boolean, nullable=False, default=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    group = db.relationship("Group", back_populates="modules")

    def to_dict(self):
        return {
            "group_id": self.group_id,
            "module_key": self.module_key,
            "is_enabled": self.is_enabled,
        }
