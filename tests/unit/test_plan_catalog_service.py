"""Tests for the plan catalog service."""

from decimal import Decimal

import pytest

from app.schemas.common.enums import PlanStatus, PlanTier, UpgradeRequestStatus, UserRole
from app.schemas.subscription.plan import PlanCreate, PlanUpdate, PlanViewer
from app.schemas.subscription.user_subscription import UpgradeRequestCreate
from app.services.base import ErrorCode

PROPERTY_ID = "property-1"


def custom_plan_request(**overrides):
    values = dict(
        plan_name="Sunrise PG Custom",
        base_price=Decimal("1500.00"),
        base_bed_count=20,
        max_beds_allowed=40,
        is_custom_plan=True,
        assigned_property_id=PROPERTY_ID,
    )
    values.update(overrides)
    return PlanCreate(**values)


@pytest.mark.unit
class TestPlanPricing:
    """Test pricing through the service."""

    def test_calculate_cost(self, catalog, sample_plan):
        result = catalog.calculate_cost(sample_plan.id, 15)

        assert result.is_success
        assert result.data.total_monthly_price == Decimal("1249.00")

    def test_calculate_cost_reports_offending_field(self, catalog, sample_plan):
        result = catalog.calculate_cost(sample_plan.id, 10, branch_count=5)

        assert not result.is_success
        assert result.code == ErrorCode.VALIDATION_ERROR.value
        assert result.error.field == "branch_count"
        assert result.message == "Branch count exceeds maximum allowed (3)"

    def test_calculate_cost_unknown_plan(self, catalog):
        result = catalog.calculate_cost("missing", 10)

        assert result.code == ErrorCode.NOT_FOUND.value

    def test_inactive_plan_cannot_be_priced(self, db, catalog, sample_plan):
        sample_plan.status = PlanStatus.INACTIVE
        db.commit()

        result = catalog.calculate_cost(sample_plan.id, 10)

        assert result.code == ErrorCode.VALIDATION_ERROR.value
        assert result.error.field == "plan_id"

    def test_compare_plans_orders_cheapest_first(self, catalog, sample_plan, sample_premium_plan):
        result = catalog.compare_plans([sample_premium_plan.id, sample_plan.id], 45)

        entries = result.data.plans
        assert [entry.plan_name for entry in entries] == ["Standard", "Premium"]
        assert entries[0].breakdown.total_monthly_price == Decimal("2749.00")
        assert entries[1].breakdown.total_monthly_price == Decimal("3199.00")
        assert entries[1].tier == PlanTier.PROFESSIONAL

    def test_compare_plans_lists_ineligible_last(self, catalog, sample_plan, sample_premium_plan):
        result = catalog.compare_plans([sample_premium_plan.id, sample_plan.id, "missing"], 20)

        entries = result.data.plans
        assert entries[0].plan_name == "Standard"
        assert entries[0].tier == PlanTier.STANDARD
        assert not entries[1].is_eligible
        assert entries[1].error == "Bed count cannot be less than base bed count (40)"
        assert entries[2].error == "Subscription plan not found"

    def test_upgrade_quote(self, catalog, sample_plan, sample_premium_plan):
        result = catalog.calculate_upgrade_cost(
            sample_plan.id, sample_premium_plan.id, 40, current_bed_count=10
        )

        assert result.is_success
        assert result.data.current.total_monthly_price == Decimal("999.00")
        assert result.data.proposed.total_monthly_price == Decimal("2999.00")
        assert result.data.price_difference == Decimal("2000.00")
        assert result.data.is_upgrade is True


@pytest.mark.unit
class TestPlanCrud:
    """Test plan definition management."""

    def test_create_plan(self, catalog):
        result = catalog.create_plan(
            PlanCreate(plan_name="Basic", base_price=Decimal("499"), base_bed_count=5),
            created_by="admin-1",
        )

        assert result.is_success
        assert result.data.plan_name == "Basic"
        assert result.data.branch_count == 1
        assert result.data.subscribed_count == 0

    def test_plan_changes_log_under_service_name(self, catalog, sample_plan, monkeypatch):
        lines = []

        class RecordingLogger:
            def info(self, message, *args, **kwargs):
                lines.append(message)

        monkeypatch.setattr(catalog, "_logger", RecordingLogger())

        catalog.create_plan(PlanCreate(plan_name="Basic", base_bed_count=5), created_by="admin-1")
        catalog.update_plan(sample_plan.id, PlanUpdate(plan_description="Updated"))

        assert lines[0] == "Creating subscription plan: Basic"
        assert f"Updating subscription plan: {sample_plan.id}" in lines

    def test_create_plan_rejects_duplicate_name(self, catalog, sample_plan):
        result = catalog.create_plan(PlanCreate(plan_name="Standard", base_bed_count=5))

        assert result.code == ErrorCode.CONFLICT.value

    def test_single_branch_plan_is_normalized(self, catalog):
        result = catalog.create_plan(
            PlanCreate(
                plan_name="Solo",
                base_bed_count=5,
                allow_multiple_branches=False,
                branch_count=4,
                cost_per_branch=Decimal("300"),
            )
        )

        assert result.data.branch_count == 1
        assert result.data.cost_per_branch == Decimal("0")

    def test_update_plan(self, catalog, sample_plan):
        result = catalog.update_plan(sample_plan.id, PlanUpdate(base_price=Decimal("1099.00")))

        assert result.is_success
        assert result.data.base_price == Decimal("1099.00")
        assert result.data.plan_name == "Standard"

    def test_update_plan_rejects_broken_bed_ceiling(self, catalog, sample_plan):
        result = catalog.update_plan(sample_plan.id, PlanUpdate(max_beds_allowed=5))

        assert result.code == ErrorCode.VALIDATION_ERROR.value

    def test_delete_unreferenced_plan(self, catalog, sample_plan):
        result = catalog.delete_plan(sample_plan.id)

        assert result.data == {"plan_id": sample_plan.id, "archived": False, "deleted": True}
        assert catalog.get_plan(sample_plan.id).code == ErrorCode.NOT_FOUND.value

    def test_delete_referenced_plan_archives_it(self, catalog, lifecycle, sample_plan):
        lifecycle.subscribe_user("user-1", sample_plan.id)

        result = catalog.delete_plan(sample_plan.id)

        assert result.data["archived"] is True
        assert catalog.get_plan(sample_plan.id).data.status == PlanStatus.ARCHIVED

    def test_duplicate_plan(self, catalog, sample_plan):
        result = catalog.duplicate_plan(sample_plan.id)

        assert result.data.plan_name == "Standard (Copy)"
        assert result.data.status == PlanStatus.INACTIVE
        assert result.data.base_price == Decimal("999.00")
        assert result.data.branch_count == 3

    def test_toggle_popular(self, catalog, sample_plan):
        first = catalog.toggle_popular(sample_plan.id)
        second = catalog.toggle_popular(sample_plan.id)

        assert first.data.is_popular is True
        assert first.message == "Plan marked as popular"
        assert second.data.is_popular is False

    def test_toggle_recommended(self, catalog, sample_plan):
        result = catalog.toggle_recommended(sample_plan.id)

        assert result.data.is_recommended is True
        assert result.message == "Plan marked as recommended"
        assert catalog.toggle_recommended("missing").code == ErrorCode.NOT_FOUND.value

    def test_plan_statistics(self, catalog, system_plans, sample_plan):
        stats = catalog.get_plan_statistics().data

        assert stats.total_plans == 3
        assert stats.by_status[PlanStatus.ACTIVE.value] == 3
        assert stats.custom_plans == 0


@pytest.mark.unit
class TestPlanVisibility:
    """Test which plans each viewer is offered."""

    def test_trial_plan_leads_and_fallback_is_hidden(self, catalog, system_plans, sample_plan):
        result = catalog.get_visible_plans(PlanViewer())

        names = [plan.plan_name for plan in result.data]
        assert names == ["Free Trial Plan", "Standard"]

    def test_custom_plan_visible_to_assigned_property(self, catalog, sample_plan):
        catalog.create_plan(custom_plan_request())

        owner = catalog.get_visible_plans(PlanViewer(property_id=PROPERTY_ID)).data
        stranger = catalog.get_visible_plans(PlanViewer(property_id="property-2")).data

        assert "Sunrise PG Custom" in [plan.plan_name for plan in owner]
        assert "Sunrise PG Custom" not in [plan.plan_name for plan in stranger]

    def test_custom_plan_assigned_by_email_domain(self, catalog):
        catalog.create_plan(custom_plan_request(assigned_property_id=None, assigned_email="@sunrise.in"))

        visible = catalog.get_visible_plans(PlanViewer(email="Owner@Sunrise.in")).data

        assert [plan.plan_name for plan in visible] == ["Sunrise PG Custom"]

    def test_superadmin_sees_everything(self, catalog, system_plans, sample_plan):
        sample_plan.status = PlanStatus.INACTIVE
        catalog.db.commit()

        visible = catalog.get_visible_plans(PlanViewer(role=UserRole.SUPERADMIN)).data

        assert len(visible) == 3


@pytest.mark.unit
class TestUpgradeRequests:
    """Test custom plan upgrade requests."""

    def test_request_and_approve(self, catalog):
        plan = catalog.create_plan(custom_plan_request()).data

        request = catalog.request_upgrade(
            plan.id, "user-1", UpgradeRequestCreate(requested_beds=35, requested_branches=2)
        )
        assert request.data.status == UpgradeRequestStatus.PENDING

        decision = catalog.respond_to_upgrade_request(request.data.id, "admin-1", approve=True)

        assert decision.data.status == UpgradeRequestStatus.APPROVED
        updated = catalog.get_plan(plan.id).data
        assert updated.base_bed_count == 35
        assert updated.allow_multiple_branches is True
        assert updated.branch_count == 2

    def test_second_pending_request_conflicts(self, catalog):
        plan = catalog.create_plan(custom_plan_request()).data
        catalog.request_upgrade(plan.id, "user-1", UpgradeRequestCreate(requested_beds=30))

        result = catalog.request_upgrade(plan.id, "user-1", UpgradeRequestCreate(requested_beds=32))

        assert result.code == ErrorCode.CONFLICT.value

    def test_only_custom_plans_take_requests(self, catalog, sample_plan):
        result = catalog.request_upgrade(sample_plan.id, "user-1", UpgradeRequestCreate(requested_beds=30))

        assert result.code == ErrorCode.VALIDATION_ERROR.value

    def test_resolved_request_does_not_reopen(self, catalog):
        plan = catalog.create_plan(custom_plan_request()).data
        request = catalog.request_upgrade(plan.id, "user-1", UpgradeRequestCreate(requested_beds=30)).data
        catalog.respond_to_upgrade_request(request.id, "admin-1", approve=False)

        result = catalog.respond_to_upgrade_request(request.id, "admin-1", approve=True)

        assert result.code == ErrorCode.INVALID_STATE.value
        assert result.message == "Upgrade request has already been rejected"
