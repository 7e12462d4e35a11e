"""
Bed model.
"""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base.base_model import TimestampModel

if TYPE_CHECKING:
    from app.models.room.room import Room

__all__ = ["Bed", "bed_labels"]

BED_SUFFIXES = "ABCDEFGHIJ"


def bed_labels(room_number: str, count: int) -> list:
    """``{room_number}-A`` .. one label per bed, at most ten."""
    return [f"{room_number}-{suffix}" for suffix in BED_SUFFIXES[:count]]


class Bed(TimestampModel):
    """Individual bed in a room."""

    __tablename__ = "beds"
    __table_args__ = (
        UniqueConstraint("room_id", "bed_number", name="uq_bed_room_number"),
    )

    room_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bed_number: Mapped[str] = mapped_column(String(30), nullable=False)
    is_occupied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    room: Mapped["Room"] = relationship("Room", back_populates="beds")
