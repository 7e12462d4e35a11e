"""
Subscription plan schemas.

Operator-facing create/update payloads, the plan response shape and
the viewer identity used to decide which plans a caller can see.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import Field, model_validator

from app.schemas.common.base import (
    BaseCreateSchema,
    BaseResponseSchema,
    BaseSchema,
    BaseUpdateSchema,
)
from app.schemas.common.enums import BillingCycle, PlanStatus, UserRole
from app.schemas.subscription.plan_modules import ModuleGrant, PlanFeature

__all__ = [
    "PlanCreate",
    "PlanUpdate",
    "PlanResponse",
    "PlanViewer",
    "PlanStatistics",
]

Money = Annotated[Decimal, Field(ge=Decimal("0"), max_digits=12, decimal_places=2)]


class PlanCreate(BaseCreateSchema):
    """
    New plan definition.

    Branch fields are normalized by the model when multi-branch is off,
    so callers may leave them at their defaults.
    """

    plan_name: str = Field(..., min_length=2, max_length=100)
    plan_description: Optional[str] = Field(None, max_length=2000)
    billing_cycle: BillingCycle = BillingCycle.MONTHLY

    base_price: Money = Decimal("0")
    annual_discount: Decimal = Field(Decimal("0"), ge=Decimal("0"), le=Decimal("100"))
    top_up_price_per_bed: Money = Decimal("0")
    setup_fee: Money = Decimal("0")

    base_bed_count: int = Field(..., ge=1, le=10000)
    max_beds_allowed: Optional[int] = Field(None, ge=1)
    max_rooms_allowed: Optional[int] = Field(None, ge=1)

    allow_multiple_branches: bool = False
    branch_count: int = Field(1, ge=1, le=50)
    beds_per_branch: Optional[int] = Field(None, ge=1)
    cost_per_branch: Money = Decimal("0")

    features: List[PlanFeature] = Field(default_factory=list)
    modules: List[ModuleGrant] = Field(default_factory=list)

    status: PlanStatus = PlanStatus.ACTIVE
    is_popular: bool = False
    is_recommended: bool = False
    trial_period_days: int = Field(0, ge=0, le=365)

    is_custom_plan: bool = False
    assigned_property_id: Optional[str] = Field(None, max_length=36)
    assigned_email: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def _check_plan(self) -> "PlanCreate":
        if self.billing_cycle == BillingCycle.TRIAL:
            raise ValueError("Plans are sold monthly or annually")
        if self.max_beds_allowed is not None and self.max_beds_allowed < self.base_bed_count:
            raise ValueError("Maximum beds allowed cannot be less than base bed count")
        if self.is_custom_plan and not (self.assigned_property_id or self.assigned_email):
            raise ValueError("Custom plans must be assigned to a property or an email")
        return self


class PlanUpdate(BaseUpdateSchema):
    """Partial plan update; cross-field checks run on the merged plan."""

    plan_name: Optional[str] = Field(None, min_length=2, max_length=100)
    plan_description: Optional[str] = Field(None, max_length=2000)
    billing_cycle: Optional[BillingCycle] = None

    base_price: Optional[Money] = None
    annual_discount: Optional[Decimal] = Field(None, ge=Decimal("0"), le=Decimal("100"))
    top_up_price_per_bed: Optional[Money] = None
    setup_fee: Optional[Money] = None

    base_bed_count: Optional[int] = Field(None, ge=1, le=10000)
    max_beds_allowed: Optional[int] = Field(None, ge=1)
    max_rooms_allowed: Optional[int] = Field(None, ge=1)

    allow_multiple_branches: Optional[bool] = None
    branch_count: Optional[int] = Field(None, ge=1, le=50)
    beds_per_branch: Optional[int] = Field(None, ge=1)
    cost_per_branch: Optional[Money] = None

    features: Optional[List[PlanFeature]] = None
    modules: Optional[List[ModuleGrant]] = None

    status: Optional[PlanStatus] = None
    is_popular: Optional[bool] = None
    is_recommended: Optional[bool] = None
    trial_period_days: Optional[int] = Field(None, ge=0, le=365)

    is_custom_plan: Optional[bool] = None
    assigned_property_id: Optional[str] = Field(None, max_length=36)
    assigned_email: Optional[str] = Field(None, max_length=255)


class PlanResponse(BaseResponseSchema):
    id: str
    plan_name: str
    plan_description: Optional[str] = None
    billing_cycle: BillingCycle
    base_price: Decimal
    annual_discount: Decimal
    top_up_price_per_bed: Decimal
    setup_fee: Decimal
    base_bed_count: int
    max_beds_allowed: Optional[int] = None
    max_rooms_allowed: Optional[int] = None
    allow_multiple_branches: bool
    branch_count: int
    beds_per_branch: Optional[int] = None
    cost_per_branch: Decimal
    features: List[PlanFeature] = Field(default_factory=list)
    modules: List[ModuleGrant] = Field(default_factory=list)
    status: PlanStatus
    is_popular: bool
    is_recommended: bool
    trial_period_days: int
    subscribed_count: int
    is_custom_plan: bool
    assigned_property_id: Optional[str] = None
    assigned_email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PlanViewer(BaseSchema):
    """Who is asking for the plan list."""

    role: UserRole = UserRole.USER
    property_id: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN


class PlanStatistics(BaseSchema):
    total_plans: int
    by_status: dict
    custom_plans: int
    total_subscribers: int
