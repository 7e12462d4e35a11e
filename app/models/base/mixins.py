"""
SQLAlchemy model mixins for reusable functionality.
"""

from sqlalchemy import Boolean, Column, String, Text


class AuditMixin:
    """
    Mixin for audit trail fields.

    Tracks who created/updated records.
    """

    created_by = Column(
        String(36),
        nullable=True,
        index=True,
        comment="User who created the record (NULL = system action)"
    )
    updated_by = Column(
        String(36),
        nullable=True,
        comment="User who last updated the record"
    )


class ActiveFlagMixin:
    """
    Mixin for logical deactivation.

    Inactive rows are kept for history but excluded from live counts.
    """

    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        index=True,
        comment="Row counts toward live usage"
    )


class NotesMixin:
    """Free-text operator notes."""

    notes = Column(
        Text,
        nullable=True,
        comment="Operator or system notes"
    )
