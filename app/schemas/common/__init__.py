"""Shared schema bases and enumerations."""

from app.schemas.common.base import BaseSchema, BaseCreateSchema, BaseResponseSchema, BaseUpdateSchema
from app.schemas.common.enums import (
    UserRole,
    BillingCycle,
    PlanStatus,
    SubscriptionStatus,
    PaymentStatus,
    PaymentEventStatus,
    UpgradeRequestStatus,
    PlanTier,
)

__all__ = [
    "BaseSchema",
    "BaseCreateSchema",
    "BaseResponseSchema",
    "BaseUpdateSchema",
    "UserRole",
    "BillingCycle",
    "PlanStatus",
    "SubscriptionStatus",
    "PaymentStatus",
    "PaymentEventStatus",
    "UpgradeRequestStatus",
    "PlanTier",
]
