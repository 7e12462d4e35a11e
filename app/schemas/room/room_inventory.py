"""
Room inventory schemas for quota-gated creation.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import Field

from app.schemas.common.base import BaseCreateSchema, BaseResponseSchema, BaseSchema

__all__ = [
    "RoomCreate",
    "BulkRoomRequest",
    "RoomResponse",
    "BulkRowOutcome",
    "BulkRoomResult",
]

MAX_BEDS_PER_ROOM = 10


class RoomCreate(BaseCreateSchema):
    floor_id: str = Field(..., alias="floorId", min_length=1)
    room_number: str = Field(..., alias="roomNumber", min_length=1, max_length=20)
    number_of_beds: int = Field(1, alias="numberOfBeds", ge=1, le=MAX_BEDS_PER_ROOM)
    room_type: Optional[str] = Field(None, alias="roomType", max_length=30)
    rent: Optional[Decimal] = Field(None, ge=Decimal("0"))


class BulkRoomRequest(BaseCreateSchema):
    rooms: List[RoomCreate] = Field(..., min_length=1)

    @property
    def total_beds(self) -> int:
        return sum(room.number_of_beds for room in self.rooms)


class RoomResponse(BaseResponseSchema):
    id: str
    property_id: str
    floor_id: str
    room_number: str
    number_of_beds: int
    room_type: Optional[str] = None
    rent: Optional[Decimal] = None
    bed_labels: List[str] = Field(default_factory=list)

    @classmethod
    def from_model(cls, room) -> "RoomResponse":
        response = cls.model_validate(room)
        response.bed_labels = [bed.bed_number for bed in room.beds]
        return response


class BulkRowOutcome(BaseSchema):
    row: int = Field(..., description="1-based position in the upload")
    room_number: str
    reason: str


class BulkRoomResult(BaseSchema):
    created: List[RoomResponse] = Field(default_factory=list)
    skipped: List[BulkRowOutcome] = Field(default_factory=list)
    failed: List[BulkRowOutcome] = Field(default_factory=list)
    summary: Dict[str, int] = Field(default_factory=dict)
