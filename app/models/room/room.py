"""
Room model.

Rooms are the unit of quota enforcement: live counts of active rooms
and the sum of their beds decide whether a property may grow.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base.base_model import TimestampModel
from app.models.base.mixins import ActiveFlagMixin, AuditMixin
from app.models.base.types import MoneyType

if TYPE_CHECKING:
    from app.models.room.bed import Bed
    from app.models.room.floor import Floor

__all__ = ["Room", "MAX_BEDS_PER_ROOM"]

MAX_BEDS_PER_ROOM = 10


class Room(TimestampModel, ActiveFlagMixin, AuditMixin):
    """A room with a fixed number of beds."""

    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("floor_id", "room_number", name="uq_room_floor_number"),
        CheckConstraint(
            f"number_of_beds >= 1 AND number_of_beds <= {MAX_BEDS_PER_ROOM}",
            name="ck_room_bed_count_range",
        ),
        Index("ix_room_property_active", "property_id", "is_active"),
    )

    property_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        comment="Property (PG) the room belongs to",
    )
    floor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("floors.id"),
        nullable=False,
        index=True,
    )
    room_number: Mapped[str] = mapped_column(String(20), nullable=False)
    number_of_beds: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Sharing type; one Bed row is generated per bed",
    )
    room_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    rent: Mapped[Optional[Decimal]] = mapped_column(MoneyType(), nullable=True)

    floor: Mapped["Floor"] = relationship("Floor", back_populates="rooms")
    beds: Mapped[List["Bed"]] = relationship(
        "Bed",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="Bed.bed_number",
    )
