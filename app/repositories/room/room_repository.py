"""
Room and floor repositories.

Live counts here are the source of truth for quota decisions; the
usage numbers cached on a subscription are only a display aid.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.room.floor import Floor
from app.models.room.room import Room
from app.repositories.base.base_repository import BaseRepository


class FloorRepository(BaseRepository[Floor]):

    def __init__(self, db: Session):
        super().__init__(Floor, db)

    def find_for_property(self, floor_id: str, property_id: str) -> Optional[Floor]:
        stmt = select(Floor).where(
            Floor.id == floor_id,
            Floor.property_id == property_id,
            Floor.is_active.is_(True),
        )
        return self.db.execute(stmt).scalar_one_or_none()


class RoomRepository(BaseRepository[Room]):

    def __init__(self, db: Session):
        super().__init__(Room, db)

    def count_active_rooms(self, property_id: str) -> int:
        stmt = select(func.count()).select_from(Room).where(
            Room.property_id == property_id,
            Room.is_active.is_(True),
        )
        return int(self.db.execute(stmt).scalar_one())

    def sum_active_beds(self, property_id: str) -> int:
        stmt = select(func.coalesce(func.sum(Room.number_of_beds), 0)).where(
            Room.property_id == property_id,
            Room.is_active.is_(True),
        )
        return int(self.db.execute(stmt).scalar_one())

    def find_on_floor(self, floor_id: str, room_number: str) -> Optional[Room]:
        stmt = select(Room).where(Room.floor_id == floor_id, Room.room_number == room_number)
        return self.db.execute(stmt).scalar_one_or_none()
