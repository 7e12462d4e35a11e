"""Room inventory schemas."""

from app.schemas.room.room_inventory import (
    BulkRoomRequest,
    BulkRoomResult,
    BulkRowOutcome,
    RoomCreate,
    RoomResponse,
)

__all__ = [
    "BulkRoomRequest",
    "BulkRoomResult",
    "BulkRowOutcome",
    "RoomCreate",
    "RoomResponse",
]
