"""
Room endpoints behind the plan quota.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.api.deps import Caller, get_room_service, require_property
from app.api.responses import to_response
from app.schemas.room.room_inventory import BulkRoomRequest, RoomCreate
from app.services.room import RoomService

router = APIRouter(prefix="/rooms", tags=["Rooms"])


@router.post("")
def create_room(
    payload: RoomCreate,
    caller: Caller = Depends(require_property),
    rooms: RoomService = Depends(get_room_service),
) -> JSONResponse:
    result = rooms.create_room(caller.user_id, caller.property_id, payload)
    return to_response(result, success_status=status.HTTP_201_CREATED)


@router.post("/bulk")
def bulk_create_rooms(
    payload: BulkRoomRequest,
    caller: Caller = Depends(require_property),
    rooms: RoomService = Depends(get_room_service),
) -> JSONResponse:
    return to_response(rooms.bulk_create_rooms(caller.user_id, caller.property_id, payload))
