"""Room inventory repositories."""

from app.repositories.room.room_repository import FloorRepository, RoomRepository

__all__ = ["FloorRepository", "RoomRepository"]
