"""
ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from app.models.base import Base
from app.models.subscription import (
    SubscriptionPlan,
    PlanUpgradeRequest,
    UserSubscription,
    PaymentEvent,
)
from app.models.room import Floor, Room, Bed

__all__ = [
    "Base",
    "SubscriptionPlan",
    "PlanUpgradeRequest",
    "UserSubscription",
    "PaymentEvent",
    "Floor",
    "Room",
    "Bed",
]
