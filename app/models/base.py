"""
GroupScopedModel — Abstract base class for group-scoped models.

Every approval table belongs to exactly one Group (organization). Models that
need group isolation inherit from GroupScopedModel instead of db.Model
directly. This adds:
  - group_id FK column with index
  - created_at / updated_at timestamps
  - query_for_group(group_id) classmethod
"""

from datetime import datetime, timezone

from app.models import db


def utcnow():
    return datetime.now(timezone.utc)


class GroupScopedModel(db.Model):
    """Abstract base for group-scoped tables."""
    __abstract__ = True

    group_id = db.Column(
        db.Integer,
        db.ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    @classmethod
    def query_for_group(cls, group_id):
        """Return a query filtered by group_id."""
        return cls.query.filter_by(group_id=group_id)


def iso(value):
    """Serialise an optional datetime."""
    return value.isoformat() if value else None
