"""
Base models package.

Provides the declarative base, abstract base classes, mixins and
custom column types for all database models.
"""

from app.models.base.base_model import (
    Base,
    BaseModel,
    TimestampModel,
    generate_uuid,
)

from app.models.base.mixins import (
    AuditMixin,
    ActiveFlagMixin,
    NotesMixin,
)

from app.models.base.types import (
    JSONType,
    MoneyType,
    UTCDateTime,
    enum_type,
    ensure_utc,
    utc_now,
)

__all__ = [
    "Base",
    "BaseModel",
    "TimestampModel",
    "generate_uuid",
    "AuditMixin",
    "ActiveFlagMixin",
    "NotesMixin",
    "JSONType",
    "MoneyType",
    "UTCDateTime",
    "enum_type",
    "ensure_utc",
    "utc_now",
]
