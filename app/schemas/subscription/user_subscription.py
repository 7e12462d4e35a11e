"""
User subscription schemas.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from app.schemas.common.base import BaseCreateSchema, BaseResponseSchema, BaseSchema
from app.schemas.common.enums import BillingCycle, PaymentStatus, SubscriptionStatus, UpgradeRequestStatus

__all__ = [
    "SubscribeRequest",
    "ChangePlanRequest",
    "CancelRequest",
    "UsageUpdate",
    "SubscriptionResponse",
    "RestrictionSet",
    "SubscriptionStatistics",
    "UpgradeRequestCreate",
    "UpgradeRequestDecision",
    "UpgradeRequestResponse",
]


class SubscribeRequest(BaseCreateSchema):
    plan_id: str = Field(..., alias="planId")
    billing_cycle: BillingCycle = Field(BillingCycle.MONTHLY, alias="billingCycle")
    bed_count: Optional[int] = Field(None, alias="bedCount", ge=1)
    branch_count: int = Field(1, alias="branchCount", ge=1)


class ChangePlanRequest(BaseCreateSchema):
    new_plan_id: str = Field(..., alias="newPlanId")
    bed_count: Optional[int] = Field(None, alias="bedCount", ge=1)
    branch_count: int = Field(1, alias="branchCount", ge=1)


class CancelRequest(BaseCreateSchema):
    reason: Optional[str] = Field(None, max_length=1000)


class UsageUpdate(BaseCreateSchema):
    beds_used: int = Field(..., ge=0)
    branches_used: int = Field(..., ge=0)


class SubscriptionResponse(BaseResponseSchema):
    """Current-state snapshot; also the poll fallback for offline clients."""

    id: str
    user_id: str
    subscription_plan_id: str
    plan_name: Optional[str] = None
    billing_cycle: BillingCycle
    start_date: datetime
    end_date: datetime
    trial_end_date: Optional[datetime] = None
    base_price: Decimal
    total_beds: int
    total_branches: int
    total_rooms: Optional[int] = None
    total_price: Decimal
    status: SubscriptionStatus
    payment_status: PaymentStatus
    payment_id: Optional[str] = None
    auto_renew: bool
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    previous_subscription_id: Optional[str] = None
    upgrade_date: Optional[datetime] = None
    current_bed_usage: int
    current_branch_usage: int
    days_remaining: int
    trial_days_remaining: int
    expiring_soon: bool = False

    @classmethod
    def from_model(cls, subscription, expiring_within_days: int = 7) -> "SubscriptionResponse":
        response = cls.model_validate(subscription)
        response.plan_name = subscription.plan.plan_name if subscription.plan is not None else None
        response.expiring_soon = subscription.is_expiring_soon(expiring_within_days)
        return response


class RestrictionSet(BaseSchema):
    """What the user may do right now, computed at login."""

    subscription_id: Optional[str] = None
    plan_name: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
    max_beds: int
    max_branches: int
    max_rooms: int
    modules: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    is_trial: bool = False
    days_remaining: int = 0


class SubscriptionStatistics(BaseSchema):
    by_status: dict
    by_billing_cycle: dict
    expiring_within_30_days: int
    active_trials: int
    total: int


class UpgradeRequestCreate(BaseCreateSchema):
    requested_beds: int = Field(..., ge=1, alias="requestedBeds")
    requested_branches: int = Field(1, ge=1, alias="requestedBranches")
    message: Optional[str] = Field(None, max_length=2000)


class UpgradeRequestDecision(BaseCreateSchema):
    approve: bool
    response_message: Optional[str] = Field(None, max_length=2000, alias="responseMessage")


class UpgradeRequestResponse(BaseResponseSchema):
    id: str
    plan_id: str
    requester_id: str
    requested_beds: int
    requested_branches: int
    message: Optional[str] = None
    status: UpgradeRequestStatus
    responded_by: Optional[str] = None
    responded_at: Optional[datetime] = None
    response_message: Optional[str] = None
    created_at: Optional[datetime] = None
