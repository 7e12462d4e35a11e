"""
Entitlement verdicts.

A denial is a normal value, not an error: it carries the figures the
UI needs to show an upgrade prompt.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field

from app.schemas.common.base import BaseSchema

__all__ = ["EntitlementDecision", "QuotaKind"]


class QuotaKind:
    ROOMS = "rooms"
    BEDS = "beds"


class EntitlementDecision(BaseSchema):
    """Allow/deny verdict for adding rooms or beds to a property."""

    allowed: bool
    limit_type: str = Field(..., alias="type")
    message: str

    current_rooms: int = Field(0, alias="currentRooms")
    max_allowed_rooms: int = Field(0, alias="maxAllowedRooms")
    remaining_rooms: int = Field(0, alias="remainingRooms")
    rooms_to_add: int = Field(0, alias="roomsToAdd")

    current_beds: int = Field(0, alias="currentBeds")
    max_allowed_beds: int = Field(0, alias="maxAllowedBeds")
    remaining_beds: int = Field(0, alias="remainingBeds")
    beds_to_add: int = Field(0, alias="bedsToAdd")

    requires_upgrade: bool = Field(False, alias="requiresUpgrade")
    subscription_id: Optional[str] = Field(None, alias="subscriptionId")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
