"""Tests for plan cost calculation."""

from decimal import Decimal

import pytest

from app.models.subscription import SubscriptionPlan
from app.schemas.common.enums import BillingCycle, PlanTier
from app.services.common.errors import ValidationError
from app.services.subscription import calculate_cost, get_plan_tier, validate_counts


def make_plan(**overrides):
    values = dict(
        plan_name="Standard",
        billing_cycle=BillingCycle.MONTHLY,
        base_price=Decimal("999.00"),
        annual_discount=Decimal("10"),
        top_up_price_per_bed=Decimal("50.00"),
        base_bed_count=10,
        max_beds_allowed=50,
        allow_multiple_branches=True,
        branch_count=3,
        cost_per_branch=Decimal("500.00"),
    )
    values.update(overrides)
    return SubscriptionPlan(**values)


@pytest.mark.unit
class TestCalculateCost:
    """Test cost breakdowns."""

    def test_base_beds_cost_base_price(self):
        breakdown = calculate_cost(make_plan(), 10)

        assert breakdown.extra_beds == 0
        assert breakdown.top_up_cost == Decimal("0.00")
        assert breakdown.total_monthly_price == Decimal("999.00")
        assert breakdown.total_annual_price == Decimal("11988.00")
        assert breakdown.billing_cycle == BillingCycle.MONTHLY

    def test_extra_beds_are_topped_up(self):
        breakdown = calculate_cost(make_plan(), 15)

        assert breakdown.extra_beds == 5
        assert breakdown.top_up_cost == Decimal("250.00")
        assert breakdown.total_monthly_price == Decimal("1249.00")

    def test_extra_branches_are_charged(self):
        breakdown = calculate_cost(make_plan(), 10, branch_count=3)

        assert breakdown.extra_branches == 2
        assert breakdown.branch_cost == Decimal("1000.00")
        assert breakdown.total_monthly_price == Decimal("1999.00")
        assert breakdown.max_branches == 3

    def test_annual_cycle_applies_discount(self):
        breakdown = calculate_cost(make_plan(), 10, billing_cycle=BillingCycle.ANNUAL)

        assert breakdown.discount_percent == Decimal("10")
        assert breakdown.total_monthly_price == Decimal("899.10")
        assert breakdown.discount_amount == Decimal("99.90")
        assert breakdown.total_annual_price == Decimal("10789.20")

    def test_plan_cycle_is_the_default(self):
        breakdown = calculate_cost(make_plan(billing_cycle=BillingCycle.ANNUAL), 10)

        assert breakdown.billing_cycle == BillingCycle.ANNUAL
        assert breakdown.total_monthly_price == Decimal("899.10")

    def test_annual_total_is_twelve_monthly_totals(self):
        breakdown = calculate_cost(make_plan(annual_discount=Decimal("7")), 13, 2, BillingCycle.ANNUAL)

        assert breakdown.total_annual_price == breakdown.total_monthly_price * 12

    def test_free_plan_costs_nothing(self):
        plan = make_plan(
            base_price=Decimal("0"),
            top_up_price_per_bed=Decimal("0"),
            base_bed_count=1,
            allow_multiple_branches=False,
            branch_count=1,
        )

        assert calculate_cost(plan, 5).total_monthly_price == Decimal("0.00")


@pytest.mark.unit
class TestValidateCounts:
    """Test the order and wording of count validation."""

    @pytest.mark.parametrize(
        "beds,branches,field,message",
        [
            (0, 1, "bed_count", "Bed count must be positive"),
            (0, 0, "bed_count", "Bed count must be positive"),
            (10, 0, "branch_count", "Branch count must be positive"),
            (5, 1, "bed_count", "Bed count cannot be less than base bed count (10)"),
            (10, 4, "branch_count", "Branch count exceeds maximum allowed (3)"),
            (51, 1, "bed_count", "Bed count exceeds maximum allowed (50)"),
        ],
    )
    def test_first_failing_check_wins(self, beds, branches, field, message):
        with pytest.raises(ValidationError) as exc_info:
            validate_counts(make_plan(), beds, branches)

        assert exc_info.value.message == message
        assert exc_info.value.field == field

    def test_single_branch_plan_rejects_branches(self):
        plan = make_plan(allow_multiple_branches=False, branch_count=1)

        with pytest.raises(ValidationError) as exc_info:
            validate_counts(plan, 10, 2)

        assert exc_info.value.message == "This plan does not allow multiple branches"

    def test_unbounded_plan_accepts_any_bed_count(self):
        validate_counts(make_plan(max_beds_allowed=None), 10000, 1)


@pytest.mark.unit
class TestPlanTier:
    """Test price band classification."""

    @pytest.mark.parametrize(
        "total,tier",
        [
            (Decimal("0"), PlanTier.BASIC),
            (Decimal("999.99"), PlanTier.BASIC),
            (Decimal("1000"), PlanTier.STANDARD),
            (Decimal("2499.99"), PlanTier.STANDARD),
            (Decimal("2500"), PlanTier.PROFESSIONAL),
            (Decimal("4999.99"), PlanTier.PROFESSIONAL),
            (Decimal("5000"), PlanTier.ENTERPRISE),
        ],
    )
    def test_tier_boundaries(self, total, tier):
        assert get_plan_tier(total) == tier
