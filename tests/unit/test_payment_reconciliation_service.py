"""Tests for webhook-driven payment reconciliation."""

import json
from decimal import Decimal

import pytest

from app.models.subscription.payment_event import PaymentEvent
from app.models.subscription.user_subscription import UserSubscription
from app.schemas.common.enums import BillingCycle, PaymentEventStatus, PaymentStatus, SubscriptionStatus
from app.services.base import ErrorCode


def webhook_body(order_notes, event="payment.captured", payment_id="pay_001", order_id="order_001", amount=99900, **payment):
    entity = {
        "id": payment_id,
        "order_id": order_id,
        "amount": amount,
        "currency": "INR",
        "method": "upi",
        "notes": [],
    }
    entity.update(payment)
    envelope = {
        "entity": "event",
        "event": event,
        "payload": {
            "payment": {"entity": entity},
            "order": {"entity": {"id": order_id, "notes": order_notes}},
        },
    }
    return json.dumps(envelope).encode()


def subscription_notes(plan, user_id="user-1", **overrides):
    # Gateway notes come back as strings
    notes = {
        "type": "subscription",
        "userId": user_id,
        "subscriptionPlanId": plan.id,
        "bedCount": "10",
        "branchCount": "1",
        "billingCycle": "monthly",
        "planName": plan.plan_name,
    }
    notes.update(overrides)
    return notes


def events_for(db, user_id="user-1"):
    return db.query(PaymentEvent).filter(PaymentEvent.user_id == user_id).all()


def open_records(db, user_id="user-1"):
    return (
        db.query(UserSubscription)
        .filter(
            UserSubscription.user_id == user_id,
            UserSubscription.status.in_([SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL]),
        )
        .all()
    )


@pytest.mark.unit
class TestWebhookVerification:
    """Test signature and payload checks."""

    def test_missing_signature(self, reconciliation, sample_plan):
        result = reconciliation.handle_webhook(webhook_body(subscription_notes(sample_plan)), None)

        assert result.code == ErrorCode.INVALID_SIGNATURE.value
        assert result.message == "Missing webhook signature"

    def test_wrong_signature(self, db, reconciliation, sample_plan):
        result = reconciliation.handle_webhook(webhook_body(subscription_notes(sample_plan)), "0" * 64)

        assert result.code == ErrorCode.INVALID_SIGNATURE.value
        assert events_for(db) == []

    def test_signature_covers_exact_bytes(self, reconciliation, sample_plan, sign):
        body = webhook_body(subscription_notes(sample_plan))
        reformatted = json.dumps(json.loads(body), indent=2).encode()

        result = reconciliation.handle_webhook(reformatted, sign(body))

        assert result.code == ErrorCode.INVALID_SIGNATURE.value

    def test_signature_is_case_insensitive(self, reconciliation, sample_plan, sign):
        body = webhook_body(subscription_notes(sample_plan))

        result = reconciliation.handle_webhook(body, sign(body).upper())

        assert result.is_success

    def test_malformed_payload(self, reconciliation, sign):
        body = b'{"event": "payment.captured", "payload": '

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.code == ErrorCode.VALIDATION_ERROR.value
        assert result.message == "Malformed webhook payload"

    def test_unhandled_event_is_acknowledged(self, db, reconciliation, sign):
        body = json.dumps({"event": "order.paid", "payload": {}}).encode()

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.is_success
        assert result.message == "Event acknowledged"
        assert db.query(PaymentEvent).count() == 0

    def test_success_event_without_payment(self, reconciliation, sign):
        body = json.dumps({"event": "payment.captured", "payload": {}}).encode()

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.code == ErrorCode.VALIDATION_ERROR.value


@pytest.mark.unit
class TestSubscriptionPayments:
    """Test paid subscription orders."""

    def test_opens_paid_subscription(self, db, reconciliation, lifecycle, sample_plan, notifier, sign):
        body = webhook_body(subscription_notes(sample_plan))

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.is_success
        assert result.message == "Payment applied"
        current = lifecycle.get_current_subscription("user-1").data
        assert current.status == SubscriptionStatus.ACTIVE
        assert current.payment_status == PaymentStatus.COMPLETED
        assert current.payment_id == "pay_001"
        assert current.total_beds == 10
        assert result.data["subscription_id"] == current.id

        [event] = events_for(db)
        assert event.status == PaymentEventStatus.PAID
        assert event.amount == Decimal("999.00")
        assert event.intent_type == "subscription"
        assert event.plan_snapshot["plan_name"] == "Standard"

    def test_payment_success_notification(self, reconciliation, sample_plan, notifier, sign):
        body = webhook_body(subscription_notes(sample_plan))

        reconciliation.handle_webhook(body, sign(body))

        [(user_id, _, data)] = notifier.of_type("payment_success")
        assert user_id == "user-1"
        assert data["paymentId"] == "pay_001"
        assert data["orderId"] == "order_001"
        assert data["amount"] == 999.0
        assert data["planName"] == "Standard"
        assert data["bedCount"] == 10
        assert data["billingCycle"] == "monthly"

    def test_replay_is_a_duplicate(self, db, reconciliation, sample_plan, notifier, sign):
        body = webhook_body(subscription_notes(sample_plan))
        reconciliation.handle_webhook(body, sign(body))
        reconciliation.handle_webhook(body, sign(body))

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.is_success
        assert result.message == "Payment already processed"
        assert result.metadata["code"] == ErrorCode.DUPLICATE_EVENT.value
        assert len(events_for(db)) == 1
        assert db.query(UserSubscription).count() == 1
        assert len(notifier.of_type("payment_success")) == 1
        db.refresh(sample_plan)
        assert sample_plan.subscribed_count == 1

    def test_authorized_then_captured_applies_once(self, db, reconciliation, sample_plan, sign):
        authorized = webhook_body(subscription_notes(sample_plan), event="payment.authorized")
        captured = webhook_body(subscription_notes(sample_plan), event="payment.captured")

        reconciliation.handle_webhook(authorized, sign(authorized))
        result = reconciliation.handle_webhook(captured, sign(captured))

        assert result.metadata["code"] == ErrorCode.DUPLICATE_EVENT.value
        assert len(events_for(db)) == 1

    def test_confirms_pending_subscription(self, reconciliation, lifecycle, sample_plan, sign):
        pending = lifecycle.subscribe_user("user-1", sample_plan.id, bed_count=10).data
        body = webhook_body(subscription_notes(sample_plan))

        reconciliation.handle_webhook(body, sign(body))

        current = lifecycle.get_current_subscription("user-1").data
        assert current.id == pending.id
        assert current.payment_status == PaymentStatus.COMPLETED
        assert current.end_date == pending.end_date

    def test_second_payment_renews(self, reconciliation, lifecycle, sample_plan, sign):
        first = webhook_body(subscription_notes(sample_plan))
        reconciliation.handle_webhook(first, sign(first))
        before = lifecycle.get_current_subscription("user-1").data

        second = webhook_body(subscription_notes(sample_plan), payment_id="pay_002", order_id="order_002")
        reconciliation.handle_webhook(second, sign(second))

        after = lifecycle.get_current_subscription("user-1").data
        assert after.id == before.id
        assert after.end_date > before.end_date
        assert after.payment_id == "pay_002"

    def test_different_terms_supersede_trial(self, db, reconciliation, lifecycle, system_plans, sample_plan, sign):
        trial = lifecycle.activate_free_trial("user-1").data
        body = webhook_body(subscription_notes(sample_plan, bedCount="15", billingCycle="annual"))

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.is_success
        current = lifecycle.get_current_subscription("user-1").data
        assert current.id != trial.id
        assert current.billing_cycle == BillingCycle.ANNUAL
        assert current.total_beds == 15
        assert current.previous_subscription_id == trial.id
        assert db.get(UserSubscription, trial.id).status == SubscriptionStatus.CANCELLED
        assert len(open_records(db)) == 1

    def test_unknown_plan_writes_nothing(self, db, reconciliation, sample_plan, sign):
        body = webhook_body(subscription_notes(sample_plan, subscriptionPlanId="missing"))

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.code == ErrorCode.VALIDATION_ERROR.value
        assert events_for(db) == []
        assert db.query(UserSubscription).count() == 0

    def test_terms_the_plan_cannot_satisfy(self, db, reconciliation, sample_plan, sign):
        body = webhook_body(subscription_notes(sample_plan, bedCount="500"))

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.code == ErrorCode.VALIDATION_ERROR.value
        assert events_for(db) == []

    def test_unusable_notes(self, db, reconciliation, sign):
        body = webhook_body({"type": "gift", "userId": "user-1"})

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.code == ErrorCode.VALIDATION_ERROR.value
        assert events_for(db) == []

    def test_trial_cannot_be_bought(self, reconciliation, sample_plan, sign):
        body = webhook_body(subscription_notes(sample_plan, billingCycle="trial"))

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.code == ErrorCode.VALIDATION_ERROR.value

    def test_notes_fall_back_to_payment(self, reconciliation, lifecycle, sample_plan, sign):
        body = webhook_body({}, notes=subscription_notes(sample_plan))

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.is_success
        assert lifecycle.get_current_subscription("user-1").is_success


@pytest.mark.unit
class TestAddonAndChargePayments:
    """Test add-on top-ups and one-off charges."""

    def test_addon_raises_totals_and_price(self, reconciliation, lifecycle, sample_plan, sign):
        lifecycle.subscribe_user("user-1", sample_plan.id, bed_count=10)
        body = webhook_body(
            {"type": "addon", "userId": "user-1", "additionalBeds": "5", "additionalBranches": "1"},
            amount=75000,
        )

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.is_success
        current = lifecycle.get_current_subscription("user-1").data
        assert current.total_beds == 15
        assert current.total_branches == 2
        assert current.total_price == Decimal("1749.00")

    def test_addon_without_subscription(self, db, reconciliation, sign):
        body = webhook_body({"type": "addon", "userId": "user-1", "additionalBeds": "5"})

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.code == ErrorCode.VALIDATION_ERROR.value
        assert result.message == "No active subscription found"
        assert events_for(db) == []

    def test_charge_is_acknowledged(self, db, reconciliation, lifecycle, sample_plan, sign):
        subscription = lifecycle.subscribe_user("user-1", sample_plan.id).data
        body = webhook_body(
            {"type": "donation", "userId": "user-1", "description": "Festival fund"},
            amount=50000,
        )

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.message == "Payment acknowledged"
        [event] = events_for(db)
        assert event.intent_type == "donation"
        assert event.subscription_id == subscription.id
        assert lifecycle.get_current_subscription("user-1").data.total_beds == subscription.total_beds


@pytest.mark.unit
class TestFailedPayments:
    """Test payment.failed deliveries."""

    def test_failure_is_recorded_and_state_untouched(
        self, db, reconciliation, lifecycle, sample_plan, notifier, sign
    ):
        pending = lifecycle.subscribe_user("user-1", sample_plan.id).data
        body = webhook_body(
            subscription_notes(sample_plan),
            event="payment.failed",
            error_description="Card declined by issuer",
        )

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.message == "Payment failure recorded"
        [event] = events_for(db)
        assert event.status == PaymentEventStatus.FAILED
        assert event.error_description == "Card declined by issuer"
        assert event.subscription_id == pending.id

        current = lifecycle.get_current_subscription("user-1").data
        assert current.payment_status == PaymentStatus.PENDING
        assert current.status == SubscriptionStatus.ACTIVE

        [(_, _, data)] = notifier.of_type("payment_failed")
        assert data["error"] == "Card declined by issuer"
        assert data["amount"] == 999.0

    def test_failure_replay_is_a_duplicate(self, db, reconciliation, sample_plan, sign):
        body = webhook_body(subscription_notes(sample_plan), event="payment.failed")
        reconciliation.handle_webhook(body, sign(body))

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.metadata["code"] == ErrorCode.DUPLICATE_EVENT.value
        assert len(events_for(db)) == 1

    def test_failure_default_reason(self, db, reconciliation, sample_plan, sign):
        body = webhook_body(subscription_notes(sample_plan), event="payment.failed")

        reconciliation.handle_webhook(body, sign(body))

        assert events_for(db)[0].error_description == "Payment failed"

    def test_failure_without_user(self, db, reconciliation, sign):
        body = webhook_body({"type": "subscription"}, event="payment.failed")

        result = reconciliation.handle_webhook(body, sign(body))

        assert result.code == ErrorCode.VALIDATION_ERROR.value
        assert db.query(PaymentEvent).count() == 0
