"""
Cost calculation schemas.

The breakdown is the single figure source for both display and
billing; callers never recompute any of its terms.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from app.schemas.common.base import BaseCreateSchema, BaseSchema
from app.schemas.common.enums import BillingCycle, PlanTier

__all__ = [
    "CostRequest",
    "CostBreakdown",
    "PlanComparisonEntry",
    "PlanComparison",
    "UpgradeCostQuote",
]


class CostRequest(BaseCreateSchema):
    """Requested bed and branch counts; range checks happen in the calculator."""

    bed_count: int = Field(..., alias="bedCount")
    branch_count: int = Field(1, alias="branchCount")


class CostBreakdown(BaseSchema):
    base_price: Decimal
    base_bed_count: int
    requested_beds: int
    requested_branches: int

    extra_beds: int
    top_up_price_per_bed: Decimal
    top_up_cost: Decimal

    extra_branches: int
    cost_per_branch: Decimal
    branch_cost: Decimal

    discount_percent: Decimal = Field(Decimal("0"), description="Annual discount percentage applied")
    discount_amount: Decimal = Field(Decimal("0"), description="Monthly discount amount")

    total_monthly_price: Decimal = Field(..., description="Monthly (or monthly-equivalent) total")
    total_annual_price: Decimal = Field(..., description="Twelve months at the monthly total")

    billing_cycle: BillingCycle
    allow_multiple_branches: bool
    max_branches: int


class PlanComparisonEntry(BaseSchema):
    plan_id: str
    plan_name: str
    breakdown: Optional[CostBreakdown] = None
    tier: Optional[PlanTier] = None
    error: Optional[str] = None

    @property
    def is_eligible(self) -> bool:
        return self.breakdown is not None


class PlanComparison(BaseSchema):
    bed_count: int
    branch_count: int
    plans: List[PlanComparisonEntry]


class UpgradeCostQuote(BaseSchema):
    current: CostBreakdown
    proposed: CostBreakdown
    price_difference: Decimal
    is_upgrade: bool
