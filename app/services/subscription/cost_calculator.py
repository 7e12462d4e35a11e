"""
Plan cost calculation.

Pure functions over a plan's pricing terms. The breakdown produced
here is the only place prices are computed; display and billing both
read it.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from app.models.subscription.subscription_plan import SubscriptionPlan
from app.schemas.common.enums import BillingCycle, PlanTier
from app.schemas.subscription.cost import CostBreakdown
from app.services.common.errors import ValidationError
from app.services.subscription.constants import (
    ERROR_BED_COUNT_NOT_POSITIVE,
    ERROR_BED_LIMIT,
    ERROR_BELOW_BASE_BEDS,
    ERROR_BRANCH_COUNT_NOT_POSITIVE,
    ERROR_BRANCH_LIMIT,
    ERROR_BRANCHES_NOT_ALLOWED,
    MONTHS_PER_YEAR,
    TIER_BASIC_BELOW,
    TIER_PROFESSIONAL_BELOW,
    TIER_STANDARD_BELOW,
)

__all__ = ["calculate_cost", "validate_counts", "get_plan_tier", "to_money"]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_counts(plan: SubscriptionPlan, bed_count: int, branch_count: int) -> None:
    """
    Check a requested bed/branch count against the plan.

    The first failing check wins.

    Raises:
        ValidationError: with ``field`` set to the offending input
    """
    if bed_count <= 0:
        raise ValidationError(ERROR_BED_COUNT_NOT_POSITIVE, field="bed_count")
    if branch_count <= 0:
        raise ValidationError(ERROR_BRANCH_COUNT_NOT_POSITIVE, field="branch_count")
    if bed_count < plan.base_bed_count:
        raise ValidationError(
            ERROR_BELOW_BASE_BEDS.format(base=plan.base_bed_count),
            field="bed_count",
        )
    if branch_count > 1 and not plan.allow_multiple_branches:
        raise ValidationError(ERROR_BRANCHES_NOT_ALLOWED, field="branch_count")
    if plan.allow_multiple_branches and branch_count > (plan.branch_count or 1):
        raise ValidationError(
            ERROR_BRANCH_LIMIT.format(limit=plan.branch_count),
            field="branch_count",
        )
    if plan.max_beds_allowed is not None and bed_count > plan.max_beds_allowed:
        raise ValidationError(
            ERROR_BED_LIMIT.format(limit=plan.max_beds_allowed),
            field="bed_count",
        )


def calculate_cost(
    plan: SubscriptionPlan,
    bed_count: int,
    branch_count: int = 1,
    billing_cycle: Optional[BillingCycle] = None,
) -> CostBreakdown:
    """
    Price ``bed_count`` beds across ``branch_count`` branches on ``plan``.

    total = base + extra_beds * top_up + extra_branches * cost_per_branch

    Annual billing applies the plan's discount and reports the
    discounted monthly equivalent; the annual figure is always twelve
    times the monthly one.

    Args:
        billing_cycle: Cycle to price for; defaults to the plan's own

    Raises:
        ValidationError: see ``validate_counts``
    """
    validate_counts(plan, bed_count, branch_count)

    cycle = BillingCycle(billing_cycle or plan.billing_cycle)
    base_price = to_money(plan.base_price or 0)
    top_up_price = to_money(plan.top_up_price_per_bed or 0)
    cost_per_branch = to_money(plan.cost_per_branch or 0)

    extra_beds = max(0, bed_count - plan.base_bed_count)
    top_up_cost = to_money(extra_beds * top_up_price)
    extra_branches = max(0, branch_count - 1)
    branch_cost = to_money(extra_branches * cost_per_branch)

    monthly_total = base_price + top_up_cost + branch_cost

    discount_percent = Decimal("0")
    discount_amount = Decimal("0")
    if cycle == BillingCycle.ANNUAL:
        discount_percent = Decimal(plan.annual_discount or 0)
        annual_total = monthly_total * MONTHS_PER_YEAR
        discount = annual_total * discount_percent / HUNDRED
        discounted_monthly = to_money((annual_total - discount) / MONTHS_PER_YEAR)
        discount_amount = monthly_total - discounted_monthly
        monthly_total = discounted_monthly

    monthly_total = to_money(monthly_total)

    return CostBreakdown(
        base_price=base_price,
        base_bed_count=plan.base_bed_count,
        requested_beds=bed_count,
        requested_branches=branch_count,
        extra_beds=extra_beds,
        top_up_price_per_bed=top_up_price,
        top_up_cost=top_up_cost,
        extra_branches=extra_branches,
        cost_per_branch=cost_per_branch,
        branch_cost=branch_cost,
        discount_percent=discount_percent,
        discount_amount=to_money(discount_amount),
        total_monthly_price=monthly_total,
        total_annual_price=to_money(monthly_total * MONTHS_PER_YEAR),
        billing_cycle=cycle,
        allow_multiple_branches=bool(plan.allow_multiple_branches),
        max_branches=plan.branch_count or 1,
    )


def get_plan_tier(monthly_total: Decimal) -> PlanTier:
    if monthly_total < TIER_BASIC_BELOW:
        return PlanTier.BASIC
    if monthly_total < TIER_STANDARD_BELOW:
        return PlanTier.STANDARD
    if monthly_total < TIER_PROFESSIONAL_BELOW:
        return PlanTier.PROFESSIONAL
    return PlanTier.ENTERPRISE
