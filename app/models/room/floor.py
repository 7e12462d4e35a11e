"""
Floor model.

Floors group rooms within a property; bulk uploads address rooms by
floor, so a missing floor fails that row.
"""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base.base_model import TimestampModel
from app.models.base.mixins import ActiveFlagMixin

if TYPE_CHECKING:
    from app.models.room.room import Room

__all__ = ["Floor"]


class Floor(TimestampModel, ActiveFlagMixin):
    """A floor in a property."""

    __tablename__ = "floors"
    __table_args__ = (
        UniqueConstraint("property_id", "floor_number", name="uq_floor_property_number"),
    )

    property_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        index=True,
        comment="Property (PG) the floor belongs to",
    )
    floor_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    rooms: Mapped[List["Room"]] = relationship("Room", back_populates="floor")
