"""
Custom SQLAlchemy types for specialized data handling.

Provides portable column types for JSON documents, money values and
timezone-aware timestamps that behave the same on PostgreSQL and SQLite.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Enum as SAEnum, Numeric, TypeDecorator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class JSONType(TypeDecorator):
    """
    JSON type with shape validation.

    Only dicts and lists are accepted so a scalar never ends up where
    callers expect a document.
    """

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> Any:
        """Validate value before serialization."""
        if value is None:
            return value

        if not isinstance(value, (dict, list)):
            raise ValueError(f"JSONType requires dict or list, got {type(value)}")

        return value

    def process_result_value(self, value: Any, dialect) -> Any:
        return value


class MoneyType(TypeDecorator):
    """
    Money type with fixed precision (2 decimal places).
    """

    impl = Numeric(12, 2)
    cache_ok = True

    def process_bind_param(self, value: Optional[Decimal], dialect) -> Optional[Decimal]:
        """Validate and round monetary value."""
        if value is None:
            return value

        if not isinstance(value, Decimal):
            value = Decimal(str(value))

        return value.quantize(Decimal('0.01'))

    def process_result_value(self, value: Optional[Decimal], dialect) -> Optional[Decimal]:
        if value is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return value.quantize(Decimal('0.01'))


class UTCDateTime(TypeDecorator):
    """
    Timestamp stored as UTC and always returned timezone-aware.

    SQLite drops tzinfo on the way back; normalising here keeps
    comparisons against ``utc_now()`` valid on every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def enum_type(enum_cls, length: int = 20) -> SAEnum:
    """Non-native enum column that stores member values, not names."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
