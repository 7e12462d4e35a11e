"""Tests for the entitlement resolver."""

import pytest

from app.schemas.common.enums import SubscriptionStatus


@pytest.mark.unit
class TestTrialProvisioning:
    """Test the trial opened for first-time users."""

    def test_first_check_provisions_trial(self, entitlement, lifecycle, system_plans, property_id):
        result = entitlement.can_add_rooms("user-1", property_id, 1, 2)

        decision = result.data
        assert decision.allowed is True
        assert decision.max_allowed_rooms == 5
        assert decision.max_allowed_beds == 30
        assert decision.remaining_rooms == 4
        assert decision.remaining_beds == 28

        current = lifecycle.get_current_subscription("user-1").data
        assert current.status == SubscriptionStatus.TRIAL
        assert current.id == decision.subscription_id

    def test_returning_user_gets_no_new_trial(self, entitlement, lifecycle, sample_plan, system_plans, property_id):
        lifecycle.subscribe_user("user-1", sample_plan.id)
        lifecycle.cancel_user_subscription("user-1")

        decision = entitlement.can_add_rooms("user-1", property_id, 1, 1).data

        assert decision.allowed is False
        assert decision.limit_type == "subscription"
        assert decision.requires_upgrade is True
        assert decision.message == "No active subscription and failed to activate free trial"

    def test_missing_trial_plan_denies(self, entitlement, property_id):
        decision = entitlement.can_add_rooms("user-1", property_id, 1, 1).data

        assert decision.allowed is False
        assert decision.limit_type == "subscription"


@pytest.mark.unit
class TestQuotaChecks:
    """Test room and bed ceilings against live counts."""

    def test_room_ceiling_is_checked_first(self, make_rooms, entitlement, system_plans, sample_floor, property_id):
        entitlement.can_add_rooms("user-1", property_id)
        make_rooms(sample_floor, beds_per_room=1, count=5)

        decision = entitlement.can_add_rooms("user-1", property_id, 1, 100).data

        assert decision.allowed is False
        assert decision.limit_type == "rooms"
        assert decision.message == "Room limit exceeded. Maximum allowed rooms: 5"
        assert decision.current_rooms == 5
        assert decision.remaining_rooms == 0

    def test_bed_ceiling(self, make_rooms, entitlement, lifecycle, sample_plan, sample_floor, property_id):
        lifecycle.subscribe_user("user-1", sample_plan.id)
        make_rooms(sample_floor, beds_per_room=4, count=2)

        decision = entitlement.can_add_beds("user-1", property_id, 3).data

        assert decision.allowed is False
        assert decision.limit_type == "beds"
        assert decision.message == (
            "Bed limit exceeded. Maximum allowed beds: 10. You can add 2 more beds."
        )
        assert decision.current_beds == 8
        assert decision.remaining_beds == 2

    def test_bed_check_ignores_room_ceiling(self, make_rooms, entitlement, system_plans, sample_floor, property_id):
        entitlement.can_add_rooms("user-1", property_id)
        make_rooms(sample_floor, beds_per_room=1, count=5)

        decision = entitlement.can_add_beds("user-1", property_id, 2).data

        assert decision.allowed is True
        assert decision.remaining_beds == 23

    def test_exactly_reaching_the_ceiling_is_allowed(
        self, make_rooms, entitlement, lifecycle, sample_plan, sample_floor, property_id
    ):
        lifecycle.subscribe_user("user-1", sample_plan.id)
        make_rooms(sample_floor, beds_per_room=4, count=2)

        decision = entitlement.can_add_rooms("user-1", property_id, 1, 2).data

        assert decision.allowed is True
        assert decision.remaining_beds == 0
        assert decision.max_allowed_rooms == 20

    def test_inactive_rooms_do_not_count(self, make_rooms, entitlement, system_plans, sample_floor, property_id):
        entitlement.can_add_rooms("user-1", property_id)
        make_rooms(sample_floor, beds_per_room=6, count=5, is_active=False)

        decision = entitlement.can_add_rooms("user-1", property_id, 1, 6).data

        assert decision.allowed is True
        assert decision.current_rooms == 0
        assert decision.current_beds == 0

    def test_usage_cache_is_not_trusted(self, entitlement, lifecycle, sample_plan, property_id):
        subscription = lifecycle.subscribe_user("user-1", sample_plan.id).data
        lifecycle.update_subscription_usage(subscription.id, 10, 1)

        decision = entitlement.can_add_beds("user-1", property_id, 5).data

        assert decision.allowed is True
        assert decision.current_beds == 0

    def test_wire_shape(self, entitlement, system_plans, property_id):
        decision = entitlement.can_add_rooms("user-1", property_id, 1, 2).data

        wire = decision.to_wire()

        assert wire["type"] == "rooms"
        assert wire["maxAllowedRooms"] == 5
        assert wire["remainingBeds"] == 28
        assert wire["requiresUpgrade"] is False


@pytest.mark.unit
class TestModuleGrants:
    """Test module and feature checks."""

    def test_trial_plan_unlocks_everything(self, entitlement, system_plans):
        plan = system_plans["Free Trial Plan"]

        assert entitlement.has_module(plan, "qr_code_payments")
        assert entitlement.has_feature(plan, "Email support")

    def test_fallback_plan_is_limited(self, entitlement, system_plans):
        plan = system_plans["Trial Expired Plan"]

        assert entitlement.has_module(plan, "room_allocation")
        assert not entitlement.has_module(plan, "qr_code_payments")
        assert not entitlement.has_feature(plan, "Email support")

    def test_user_module_check(self, entitlement, lifecycle, system_plans):
        assert entitlement.user_has_module("user-1", "room_allocation").data is False

        lifecycle.activate_free_trial("user-1")

        assert entitlement.user_has_module("user-1", "room_allocation").data is True
