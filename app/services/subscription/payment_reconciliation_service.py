"""
Payment reconciliation.

Turns gateway webhook deliveries into subscription changes applied
exactly once. Deliveries are at-least-once and unordered; the
(order id, payment id) pair is the only replay key, backed by a unique
constraint so two racing deliveries cannot both apply.
"""

from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.exceptions import EntityAlreadyExistsError
from app.core.logging import get_event_logger
from app.models.subscription.payment_event import PaymentEvent
from app.models.subscription.subscription_plan import SubscriptionPlan
from app.models.subscription.user_subscription import UserSubscription
from app.repositories.subscription import (
    PaymentEventRepository,
    SubscriptionPlanRepository,
    UserSubscriptionRepository,
)
from app.schemas.common.enums import BillingCycle, PaymentEventStatus, PaymentStatus, SubscriptionStatus
from app.schemas.subscription.payment_webhook import (
    FAILURE_EVENTS,
    SUCCESS_EVENTS,
    AddonIntent,
    ChargeIntent,
    PaymentEntity,
    SubscriptionIntent,
    WebhookEnvelope,
    parse_payment_intent,
)
from app.services.base import BaseService, ErrorCode, ServiceResult
from app.services.common.errors import InvalidStateTransition, NotFoundError, ValidationError
from app.services.notification.subscription_notifier import SubscriptionNotifier
from app.services.subscription.constants import (
    ERROR_INVALID_NOTES,
    ERROR_INVALID_SIGNATURE,
    ERROR_MALFORMED_PAYLOAD,
    ERROR_MISSING_PAYMENT,
    ERROR_MISSING_SIGNATURE,
    ERROR_NO_ACTIVE_SUBSCRIPTION,
    SUCCESS_CHARGE_ACKNOWLEDGED,
    SUCCESS_WEBHOOK_APPLIED,
    SUCCESS_WEBHOOK_DUPLICATE,
    SUCCESS_WEBHOOK_FAILURE_RECORDED,
    SUCCESS_WEBHOOK_IGNORED,
)
from app.services.subscription.cost_calculator import to_money
from app.services.subscription.subscription_lifecycle_service import SubscriptionLifecycleService
from app.services.subscription.webhook_signature import verify_signature

AnyIntent = Union[SubscriptionIntent, AddonIntent, ChargeIntent]

INTENT_TYPE_LENGTH = 20


class PaymentReconciliationService(BaseService[PaymentEvent, PaymentEventRepository]):
    """
    Webhook-driven payment application.

    - Signature check over the raw body before anything else
    - Success events open, renew or supersede the user's subscription
    - Failure events are recorded without touching subscription state
    - Replays short-circuit with a success result
    """

    def __init__(
        self,
        repository: PaymentEventRepository,
        db_session: Session,
        lifecycle: Optional[SubscriptionLifecycleService] = None,
        plan_repository: Optional[SubscriptionPlanRepository] = None,
        subscription_repository: Optional[UserSubscriptionRepository] = None,
        notifier: Optional[SubscriptionNotifier] = None,
        webhook_secret: Optional[str] = None,
    ):
        super().__init__(repository, db_session)
        self.plans = plan_repository or SubscriptionPlanRepository(db_session)
        self.subscriptions = subscription_repository or UserSubscriptionRepository(db_session)
        self.lifecycle = lifecycle or SubscriptionLifecycleService(
            self.subscriptions,
            db_session,
            plan_repository=self.plans,
        )
        self.notifier = notifier
        self._secret = webhook_secret if webhook_secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
        self._events = get_event_logger(__name__)

    # =========================================================================
    # Entry point
    # =========================================================================

    def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> ServiceResult[Dict[str, Any]]:
        """
        Verify and apply one webhook delivery.

        Args:
            raw_body: Request body exactly as received
            signature: Value of the gateway signature header
        """
        if not signature:
            self._events.warning("webhook_signature_rejected", reason="missing", security_event=True)
            return ServiceResult.error_result(ErrorCode.INVALID_SIGNATURE, ERROR_MISSING_SIGNATURE)

        if not verify_signature(raw_body, signature, self._secret):
            self._events.warning("webhook_signature_rejected", reason="mismatch", security_event=True)
            return ServiceResult.error_result(ErrorCode.INVALID_SIGNATURE, ERROR_INVALID_SIGNATURE)

        try:
            envelope = WebhookEnvelope.model_validate_json(raw_body)
        except PydanticValidationError as e:
            self._logger.warning(f"Malformed webhook payload: {e.error_count()} errors")
            return ServiceResult.validation_failure(ERROR_MALFORMED_PAYLOAD)

        return self.process_event(envelope)

    def process_event(self, envelope: WebhookEnvelope) -> ServiceResult[Dict[str, Any]]:
        """Dispatch a verified envelope on its event name."""
        if envelope.event in SUCCESS_EVENTS:
            return self._handle_success(envelope)
        if envelope.event in FAILURE_EVENTS:
            return self._handle_failure(envelope)

        self._events.info("webhook_ignored", gateway_event=envelope.event)
        return ServiceResult.success({"event": envelope.event}, message=SUCCESS_WEBHOOK_IGNORED)

    # =========================================================================
    # Success path
    # =========================================================================

    def _handle_success(self, envelope: WebhookEnvelope) -> ServiceResult[Dict[str, Any]]:
        payment = envelope.payment
        if payment is None:
            return ServiceResult.validation_failure(ERROR_MISSING_PAYMENT)
        order_id = envelope.order_id or ""

        try:
            if self.repository.find_by_gateway_ids(order_id, payment.id) is not None:
                return self._duplicate(envelope.event, order_id, payment.id)

            try:
                intent = parse_payment_intent(envelope.intent_notes())
            except PydanticValidationError as e:
                self._logger.warning(
                    f"Payment {payment.id} carries unusable notes: {e.error_count()} errors",
                    extra={"payment_id": payment.id, "order_id": order_id},
                )
                return ServiceResult.validation_failure(ERROR_INVALID_NOTES)

            # Insert the event first so a racing duplicate fails before any side effect
            record = self._new_event(envelope.event, order_id, payment, intent, PaymentEventStatus.PAID)
            self.repository.create(record)

            subscription, plan = self._apply_intent(intent, payment.id)
            if subscription is not None:
                record.subscription_id = subscription.id
                record.billing_cycle = record.billing_cycle or subscription.billing_cycle
            if plan is not None:
                record.plan_snapshot = {
                    "plan_id": plan.id,
                    "plan_name": plan.plan_name,
                    "bed_count": subscription.total_beds if subscription is not None else None,
                    "branch_count": subscription.total_branches if subscription is not None else None,
                }
            self.db.commit()

        except EntityAlreadyExistsError:
            self.db.rollback()
            return self._duplicate(envelope.event, order_id, payment.id)
        except (ValidationError, NotFoundError) as e:
            self.db.rollback()
            self._logger.warning(f"Payment {payment.id} could not be applied: {e.message}")
            return ServiceResult.validation_failure(e.message, details={"payment_id": payment.id})
        except InvalidStateTransition as e:
            self.db.rollback()
            return ServiceResult.error_result(ErrorCode.INVALID_STATE, e.message, details=e.details)
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "apply payment", payment.id)

        self._events.info(
            "webhook_applied",
            gateway_event=envelope.event,
            payment_id=payment.id,
            order_id=order_id,
            intent=intent.type,
            subscription_id=record.subscription_id,
        )

        plan_name = plan.plan_name if plan is not None else getattr(intent, "plan_name", None)
        if self.notifier is not None:
            self.notifier.payment_success(
                intent.user_id,
                {
                    "paymentId": payment.id,
                    "orderId": order_id,
                    "amount": float(payment.amount_major),
                    "currency": payment.currency,
                    "subscriptionPlanId": plan.id if plan is not None else None,
                    "planName": plan_name,
                    "bedCount": subscription.total_beds if subscription is not None else None,
                    "branchCount": subscription.total_branches if subscription is not None else None,
                    "billingCycle": record.billing_cycle.value if record.billing_cycle else None,
                },
            )

        message = SUCCESS_CHARGE_ACKNOWLEDGED if isinstance(intent, ChargeIntent) else SUCCESS_WEBHOOK_APPLIED
        return ServiceResult.success(
            {
                "payment_id": payment.id,
                "order_id": order_id,
                "intent": intent.type,
                "subscription_id": record.subscription_id,
            },
            message=message,
        )

    def _apply_intent(
        self,
        intent: AnyIntent,
        payment_id: str,
    ) -> Tuple[Optional[UserSubscription], Optional[SubscriptionPlan]]:
        if isinstance(intent, SubscriptionIntent):
            return self._apply_subscription(intent, payment_id)
        if isinstance(intent, AddonIntent):
            return self._apply_addon(intent)
        current = self.subscriptions.find_current_for_user(intent.user_id, self.lifecycle.now())
        return current, None

    def _apply_subscription(
        self,
        intent: SubscriptionIntent,
        payment_id: str,
    ) -> Tuple[UserSubscription, SubscriptionPlan]:
        """
        Bring the user's subscription in line with a paid order.

        - no current record: open one
        - same plan and terms, payment still pending: confirm it
        - same plan and terms, already paid: renew by one period
        - anything else: supersede the current record
        """
        plan = self.plans.find_by_id(intent.subscription_plan_id)
        if plan is None:
            raise NotFoundError("SubscriptionPlan", intent.subscription_plan_id)

        current = self.subscriptions.find_current_for_user(
            intent.user_id, self.lifecycle.now(), for_update=True
        )
        if current is None:
            subscription = self.lifecycle.open_subscription(
                intent.user_id,
                plan,
                intent.billing_cycle,
                intent.bed_count,
                intent.branch_count,
            )
        elif self._same_terms(current, intent):
            subscription = current
            if current.payment_status != PaymentStatus.PENDING:
                self.lifecycle.renew(current)
        else:
            subscription = self.lifecycle.supersede(
                current,
                plan,
                intent.bed_count,
                intent.branch_count,
                billing_cycle=intent.billing_cycle,
            )

        subscription.payment_status = PaymentStatus.COMPLETED
        subscription.payment_id = payment_id
        return subscription, plan

    @staticmethod
    def _same_terms(current: UserSubscription, intent: SubscriptionIntent) -> bool:
        return (
            SubscriptionStatus(current.status) == SubscriptionStatus.ACTIVE
            and current.subscription_plan_id == intent.subscription_plan_id
            and BillingCycle(current.billing_cycle) == intent.billing_cycle
            and current.total_beds == intent.bed_count
            and current.total_branches == intent.branch_count
        )

    def _apply_addon(self, intent: AddonIntent) -> Tuple[UserSubscription, SubscriptionPlan]:
        """Raise the current record's contracted totals and its monthly price."""
        current = self.subscriptions.find_current_for_user(
            intent.user_id, self.lifecycle.now(), for_update=True
        )
        if current is None:
            raise ValidationError(ERROR_NO_ACTIVE_SUBSCRIPTION, field="userId")

        plan = current.plan
        current.total_beds += intent.additional_beds
        current.total_branches += intent.additional_branches
        current.total_price = to_money(
            (current.total_price or Decimal("0"))
            + intent.additional_beds * (plan.top_up_price_per_bed or Decimal("0"))
            + intent.additional_branches * (plan.cost_per_branch or Decimal("0"))
        )
        self._logger.info(
            f"Add-on applied to subscription {current.id}: "
            f"+{intent.additional_beds} beds, +{intent.additional_branches} branches"
        )
        return current, plan

    # =========================================================================
    # Failure path
    # =========================================================================

    def _handle_failure(self, envelope: WebhookEnvelope) -> ServiceResult[Dict[str, Any]]:
        """Record a failed payment; subscription state is never changed."""
        payment = envelope.payment
        if payment is None:
            return ServiceResult.validation_failure(ERROR_MISSING_PAYMENT)
        order_id = envelope.order_id or ""

        notes = envelope.intent_notes()
        user_id = notes.get("userId")
        if not user_id:
            self._logger.warning(f"Failed payment {payment.id} has no user in its notes")
            return ServiceResult.validation_failure(ERROR_INVALID_NOTES)

        try:
            if self.repository.find_by_gateway_ids(order_id, payment.id) is not None:
                return self._duplicate(envelope.event, order_id, payment.id)

            current = self.subscriptions.find_current_for_user(str(user_id), self.lifecycle.now())
            record = PaymentEvent(
                subscription_id=current.id if current is not None else None,
                user_id=str(user_id),
                gateway_order_id=order_id,
                gateway_payment_id=payment.id,
                gateway_event=envelope.event,
                amount=payment.amount_major,
                currency=payment.currency,
                status=PaymentEventStatus.FAILED,
                payment_method=payment.method,
                intent_type=str(notes.get("type") or "subscription")[:INTENT_TYPE_LENGTH],
                plan_snapshot={
                    "plan_id": notes.get("subscriptionPlanId"),
                    "plan_name": notes.get("planName"),
                },
                error_description=payment.failure_reason,
            )
            self.repository.create(record)
            self.db.commit()

        except EntityAlreadyExistsError:
            self.db.rollback()
            return self._duplicate(envelope.event, order_id, payment.id)
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "record payment failure", payment.id)

        self._events.info(
            "webhook_failure_recorded",
            gateway_event=envelope.event,
            payment_id=payment.id,
            order_id=order_id,
            reason=payment.failure_reason,
        )
        if self.notifier is not None:
            self.notifier.payment_failed(
                str(user_id),
                {
                    "paymentId": payment.id,
                    "orderId": order_id,
                    "amount": float(payment.amount_major),
                    "currency": payment.currency,
                    "error": payment.failure_reason,
                },
            )
        return ServiceResult.success(
            {"payment_id": payment.id, "order_id": order_id, "reason": payment.failure_reason},
            message=SUCCESS_WEBHOOK_FAILURE_RECORDED,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _new_event(
        self,
        gateway_event: str,
        order_id: str,
        payment: PaymentEntity,
        intent: AnyIntent,
        status: PaymentEventStatus,
    ) -> PaymentEvent:
        billing_cycle = intent.billing_cycle if isinstance(intent, SubscriptionIntent) else None
        return PaymentEvent(
            user_id=intent.user_id,
            gateway_order_id=order_id,
            gateway_payment_id=payment.id,
            gateway_event=gateway_event,
            amount=payment.amount_major,
            currency=payment.currency,
            status=status,
            payment_method=payment.method,
            billing_cycle=billing_cycle,
            intent_type=intent.type,
            plan_snapshot={},
        )

    def _duplicate(self, gateway_event: str, order_id: str, payment_id: str) -> ServiceResult[Dict[str, Any]]:
        self._events.info(
            "webhook_duplicate",
            gateway_event=gateway_event,
            payment_id=payment_id,
            order_id=order_id,
        )
        return ServiceResult.success(
            {"payment_id": payment_id, "order_id": order_id, "duplicate": True},
            message=SUCCESS_WEBHOOK_DUPLICATE,
            metadata={"code": ErrorCode.DUPLICATE_EVENT.value},
        )
