"""Room inventory models used by the quota gate."""

from app.models.room.floor import Floor
from app.models.room.room import Room, MAX_BEDS_PER_ROOM
from app.models.room.bed import Bed, bed_labels

__all__ = ["Floor", "Room", "Bed", "MAX_BEDS_PER_ROOM", "bed_labels"]
