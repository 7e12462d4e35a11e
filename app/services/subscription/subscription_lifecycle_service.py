"""
Subscription lifecycle engine.

State machine over a user's subscription periods:

    trial  -> active | expired | cancelled
    active -> expired | cancelled | upgraded | downgraded

``upgraded``/``downgraded`` mark the old record when a plan change
spawns a new one; ``expired`` and ``cancelled`` are terminal.

Public operations return ServiceResult and commit their own unit of
work. The ``open_*``/``supersede``/``renew`` helpers raise instead and
never commit, so reconciliation and the entitlement resolver can fold
them into a larger transaction.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, FrozenSet, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.exceptions import EntityAlreadyExistsError
from app.models.base.types import ensure_utc, utc_now
from app.models.subscription.subscription_plan import SubscriptionPlan
from app.models.subscription.user_subscription import UserSubscription
from app.repositories.subscription import SubscriptionPlanRepository, UserSubscriptionRepository
from app.schemas.common.enums import BillingCycle, PaymentStatus, SubscriptionStatus
from app.schemas.subscription.user_subscription import (
    RestrictionSet,
    SubscriptionResponse,
    SubscriptionStatistics,
)
from app.services.base import BaseService, ErrorCode, ServiceResult
from app.services.common.errors import InvalidStateTransition, NotFoundError, ValidationError
from app.services.notification.subscription_notifier import SubscriptionNotifier
from app.services.subscription.constants import (
    ERROR_ALREADY_SUBSCRIBED,
    ERROR_EXTEND_DAYS,
    ERROR_NO_ACTIVE_SUBSCRIPTION,
    ERROR_PLAN_NOT_ACTIVE,
    ERROR_TRIAL_CANCELLED,
    ERROR_TRIAL_EXPIRED,
    ERROR_TRIAL_PLAN_MISSING,
    ERROR_TRIAL_USED,
    ERROR_USAGE_EXCEEDS_TOTALS,
    FREE_MAX_BEDS,
    FREE_MAX_BRANCHES,
    PERIOD_ENDED_REASON,
    STATISTICS_EXPIRY_WINDOW_DAYS,
    SUCCESS_CANCELLED,
    SUCCESS_EXPIRED,
    SUCCESS_EXPIRY_NOT_DUE,
    SUCCESS_EXPIRY_SKIPPED,
    SUCCESS_EXTENDED,
    SUCCESS_PLAN_CHANGED,
    SUCCESS_RENEWAL_SKIPPED,
    SUCCESS_RENEWED,
    SUCCESS_SUBSCRIBED,
    SUCCESS_TRIAL_ACTIVATED,
    SUCCESS_USAGE_UPDATED,
    SUPERSEDED_REASON,
    TRIAL_EXPIRED_REASON,
)
from app.services.subscription.cost_calculator import calculate_cost

ALLOWED_TRANSITIONS: Dict[SubscriptionStatus, FrozenSet[SubscriptionStatus]] = {
    SubscriptionStatus.TRIAL: frozenset(
        {SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED}
    ),
    SubscriptionStatus.ACTIVE: frozenset(
        {
            SubscriptionStatus.EXPIRED,
            SubscriptionStatus.CANCELLED,
            SubscriptionStatus.UPGRADED,
            SubscriptionStatus.DOWNGRADED,
        }
    ),
}

USER_CANCELLED_REASON = "Cancelled by user"


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(SubscriptionStatus(current), frozenset())


def trial_length_days(plan: SubscriptionPlan) -> int:
    """The plan's configured trial length, or the deployment default."""
    return plan.trial_period_days or settings.DEFAULT_TRIAL_DAYS


def period_end(start: datetime, billing_cycle: BillingCycle, trial_days: int = 0) -> datetime:
    """End of one billing period starting at ``start``."""
    cycle = BillingCycle(billing_cycle)
    if cycle == BillingCycle.TRIAL:
        return start + timedelta(days=trial_days)
    if cycle == BillingCycle.ANNUAL:
        return start + relativedelta(years=1)
    return start + relativedelta(months=1)


class SubscriptionLifecycleService(BaseService[UserSubscription, UserSubscriptionRepository]):
    """
    Subscription lifecycle operations.

    - Paid signup, free trial activation and plan changes
    - Cancellation, extension, renewal and expiry sweeps
    - Usage counters, statistics and login-time restrictions
    """

    def __init__(
        self,
        repository: UserSubscriptionRepository,
        db_session: Session,
        plan_repository: Optional[SubscriptionPlanRepository] = None,
        notifier: Optional[SubscriptionNotifier] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(repository, db_session)
        self.plans = plan_repository or SubscriptionPlanRepository(db_session)
        self.notifier = notifier
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # Units of work (raise, never commit)
    # =========================================================================

    def open_subscription(
        self,
        user_id: str,
        plan: SubscriptionPlan,
        billing_cycle: BillingCycle,
        bed_count: Optional[int] = None,
        branch_count: int = 1,
        *,
        start: Optional[datetime] = None,
        previous: Optional[UserSubscription] = None,
        created_by: Optional[str] = None,
    ) -> UserSubscription:
        """
        Create a new open subscription record and count it on the plan.

        Trials take their bed/branch ceilings from the plan and cost
        nothing. Paid records are priced through the cost calculator and
        start with payment pending.

        Raises:
            ValidationError: bed/branch counts the plan cannot satisfy
            EntityAlreadyExistsError: a second trial for the same user
        """
        cycle = BillingCycle(billing_cycle)
        start = start or self.now()

        if cycle == BillingCycle.TRIAL:
            beds = plan.base_bed_count
            branches = plan.branch_count if plan.allow_multiple_branches else 1
            end = period_end(start, cycle, trial_length_days(plan))
            subscription = UserSubscription(
                user_id=user_id,
                subscription_plan_id=plan.id,
                billing_cycle=cycle,
                start_date=start,
                end_date=end,
                trial_end_date=end,
                base_price=Decimal("0"),
                total_price=Decimal("0"),
                total_beds=beds,
                total_branches=branches,
                status=SubscriptionStatus.TRIAL,
                payment_status=PaymentStatus.COMPLETED,
            )
        else:
            beds = bed_count or plan.base_bed_count
            branches = branch_count or 1
            breakdown = calculate_cost(plan, beds, branches, cycle)
            subscription = UserSubscription(
                user_id=user_id,
                subscription_plan_id=plan.id,
                billing_cycle=cycle,
                start_date=start,
                end_date=period_end(start, cycle),
                base_price=breakdown.base_price,
                total_price=breakdown.total_monthly_price,
                total_beds=beds,
                total_branches=branches,
                status=SubscriptionStatus.ACTIVE,
                payment_status=PaymentStatus.PENDING,
            )

        subscription.total_rooms = plan.max_rooms_allowed
        subscription.auto_renew = cycle != BillingCycle.TRIAL
        subscription.created_by = created_by or user_id
        subscription.current_bed_usage = 0
        subscription.current_branch_usage = 1

        if previous is not None:
            subscription.previous_subscription_id = previous.id
            subscription.upgrade_date = start
            subscription.current_bed_usage = min(previous.current_bed_usage or 0, beds)
            subscription.current_branch_usage = min(previous.current_branch_usage or 1, branches)

        self.repository.create(subscription)
        self.plans.adjust_subscribed_count(plan.id, 1)

        self._logger.info(
            f"Subscription {subscription.id} opened for user {user_id} on plan {plan.plan_name}",
            extra={
                "subscription_id": subscription.id,
                "subscriber_id": user_id,
                "from_status": None,
                "to_status": subscription.status.value,
                "billing_cycle": cycle.value,
            },
        )
        return subscription

    def open_trial(self, user_id: str, created_by: Optional[str] = None) -> UserSubscription:
        """
        Open a trial on the designated trial plan.

        Raises:
            NotFoundError: the trial plan has not been seeded or is inactive
        """
        plan = self.plans.find_active_by_name(settings.TRIAL_PLAN_NAME)
        if plan is None:
            raise NotFoundError("SubscriptionPlan", settings.TRIAL_PLAN_NAME)
        return self.open_subscription(user_id, plan, BillingCycle.TRIAL, created_by=created_by)

    def transition(
        self,
        subscription: UserSubscription,
        target: SubscriptionStatus,
        reason: Optional[str] = None,
    ) -> None:
        """
        Move a record to ``target`` if the transition table allows it.

        Leaving trial/active releases the record's slot on the plan's
        subscriber counter.

        Raises:
            InvalidStateTransition: transition not in the table
        """
        current = SubscriptionStatus(subscription.status)
        target = SubscriptionStatus(target)
        if not can_transition(current, target):
            raise InvalidStateTransition(current.value, target.value)

        subscription.status = target
        if current.is_open and not target.is_open:
            self.plans.adjust_subscribed_count(subscription.subscription_plan_id, -1)

        if target == SubscriptionStatus.CANCELLED:
            subscription.cancelled_at = self.now()
            subscription.auto_renew = False
        elif target == SubscriptionStatus.EXPIRED:
            subscription.auto_renew = False
        if reason:
            subscription.cancellation_reason = reason

        self._logger.info(
            f"Subscription {subscription.id} moved from {current.value} to {target.value}",
            extra={
                "subscription_id": subscription.id,
                "subscriber_id": subscription.user_id,
                "from_status": current.value,
                "to_status": target.value,
            },
        )

    def supersede(
        self,
        current: UserSubscription,
        new_plan: SubscriptionPlan,
        bed_count: Optional[int] = None,
        branch_count: int = 1,
        billing_cycle: Optional[BillingCycle] = None,
    ) -> UserSubscription:
        """
        Close ``current`` and open its successor on ``new_plan``.

        The successor keeps the old billing cycle unless one is given; a
        trial has no paid cycle to keep, so the new plan's own cycle is
        used. An old trial is cancelled; an old paid record is marked
        upgraded or downgraded by comparing monthly totals.

        Raises:
            ValidationError: counts the new plan cannot satisfy
            InvalidStateTransition: ``current`` is not open
        """
        old_cycle = BillingCycle(current.billing_cycle)
        if billing_cycle is not None:
            cycle = BillingCycle(billing_cycle)
        elif old_cycle == BillingCycle.TRIAL:
            cycle = BillingCycle(new_plan.billing_cycle)
        else:
            cycle = old_cycle

        beds = bed_count or new_plan.base_bed_count
        branches = branch_count or 1
        # Price first so a bad request leaves the old record untouched
        new_total = calculate_cost(new_plan, beds, branches, cycle).total_monthly_price

        if SubscriptionStatus(current.status) == SubscriptionStatus.TRIAL:
            marker = SubscriptionStatus.CANCELLED
        elif new_total >= (current.total_price or Decimal("0")):
            marker = SubscriptionStatus.UPGRADED
        else:
            marker = SubscriptionStatus.DOWNGRADED

        self.transition(current, marker, SUPERSEDED_REASON)
        self.repository.flush()

        return self.open_subscription(
            current.user_id,
            new_plan,
            cycle,
            beds,
            branches,
            previous=current,
        )

    def renew(self, subscription: UserSubscription) -> UserSubscription:
        """
        Advance an active record's end date by one billing period.

        Raises:
            InvalidStateTransition: the record is not active
        """
        status = SubscriptionStatus(subscription.status)
        if status != SubscriptionStatus.ACTIVE:
            raise InvalidStateTransition(status.value, SubscriptionStatus.ACTIVE.value)

        previous_end = subscription.end_date
        subscription.end_date = period_end(previous_end, BillingCycle(subscription.billing_cycle))
        self._logger.info(
            f"Subscription {subscription.id} renewed until {subscription.end_date.isoformat()}",
            extra={"subscription_id": subscription.id, "subscriber_id": subscription.user_id},
        )
        return subscription

    def record_usage(
        self,
        subscription: UserSubscription,
        beds_used: int,
        branches_used: Optional[int] = None,
    ) -> None:
        """Refresh the cached usage counters, clamped to the contracted totals."""
        subscription.current_bed_usage = max(0, min(beds_used, subscription.total_beds))
        if branches_used is not None:
            subscription.current_branch_usage = max(0, min(branches_used, subscription.total_branches))
        # Always dirty the row so concurrent quota gates collide on the version column
        subscription.updated_at = self.now()

    # =========================================================================
    # Signup and trials
    # =========================================================================

    def subscribe_user(
        self,
        user_id: str,
        plan_id: str,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        bed_count: Optional[int] = None,
        branch_count: int = 1,
        created_by: Optional[str] = None,
    ) -> ServiceResult[SubscriptionResponse]:
        """
        Open a subscription for a user who holds none.

        Payment is collected separately; paid records start with
        ``payment_status=pending`` until reconciliation confirms them.
        """
        try:
            self._logger.info(f"Subscribing user {user_id} to plan {plan_id}")

            plan = self.plans.find_by_id(plan_id)
            if plan is None:
                return ServiceResult.not_found("SubscriptionPlan", plan_id)
            if not plan.is_active:
                return ServiceResult.validation_failure(ERROR_PLAN_NOT_ACTIVE, field="plan_id")

            current = self.repository.find_current_for_user(user_id, self.now(), for_update=True)
            if current is not None:
                return self._already_subscribed(current)

            cycle = BillingCycle(billing_cycle)
            if cycle == BillingCycle.TRIAL:
                refusal = self._trial_refusal(user_id)
                if refusal is not None:
                    return refusal

            subscription = self.open_subscription(
                user_id, plan, cycle, bed_count, branch_count, created_by=created_by
            )
            self.db.commit()

            response = self._to_response(subscription)
            self._notify_updated(response)
            return ServiceResult.success(response, message=SUCCESS_SUBSCRIBED)

        except ValidationError as e:
            self.db.rollback()
            return ServiceResult.validation_failure(e.message, field=e.field)
        except EntityAlreadyExistsError:
            self.db.rollback()
            return ServiceResult.error_result(ErrorCode.TRIAL_USED_BEFORE, ERROR_TRIAL_USED)
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "subscribe user", user_id)

    def activate_free_trial(self, user_id: str) -> ServiceResult[SubscriptionResponse]:
        """
        Start the user's one and only free trial.

        Checked in order: a current trial/active record refuses with the
        days left on it; any earlier trial, whatever became of it,
        refuses with a code naming its outcome.
        """
        try:
            self._logger.info(f"Activating free trial for user {user_id}")

            current = self.repository.find_current_for_user(user_id, self.now(), for_update=True)
            if current is not None:
                return self._already_subscribed(current)

            refusal = self._trial_refusal(user_id)
            if refusal is not None:
                return refusal

            subscription = self.open_trial(user_id)
            self.db.commit()

            response = self._to_response(subscription)
            self._notify_updated(response)
            return ServiceResult.success(response, message=SUCCESS_TRIAL_ACTIVATED)

        except NotFoundError:
            self.db.rollback()
            return ServiceResult.error_result(ErrorCode.NOT_FOUND, ERROR_TRIAL_PLAN_MISSING)
        except EntityAlreadyExistsError:
            # Lost a race with a concurrent activation
            self.db.rollback()
            return ServiceResult.error_result(ErrorCode.TRIAL_USED_BEFORE, ERROR_TRIAL_USED)
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "activate free trial", user_id)

    def _already_subscribed(self, current: UserSubscription) -> ServiceResult:
        days = current.days_remaining_at(self.now())
        return ServiceResult.error_result(
            ErrorCode.ALREADY_HAS_ACTIVE_SUBSCRIPTION,
            ERROR_ALREADY_SUBSCRIBED.format(days=days),
            details={
                "daysRemaining": days,
                "subscriptionId": current.id,
                "status": SubscriptionStatus(current.status).value,
            },
        )

    def _trial_refusal(self, user_id: str) -> Optional[ServiceResult]:
        previous = self.repository.find_latest_trial(user_id)
        if previous is None:
            return None

        status = SubscriptionStatus(previous.status)
        if status == SubscriptionStatus.EXPIRED:
            code, message = ErrorCode.TRIAL_EXPIRED, ERROR_TRIAL_EXPIRED
        elif status == SubscriptionStatus.CANCELLED:
            code, message = ErrorCode.TRIAL_CANCELLED, ERROR_TRIAL_CANCELLED
        else:
            code, message = ErrorCode.TRIAL_USED_BEFORE, ERROR_TRIAL_USED

        return ServiceResult.error_result(
            code,
            message,
            details={"previousTrialId": previous.id, "status": status.value},
        )

    # =========================================================================
    # Plan changes and cancellation
    # =========================================================================

    def change_user_subscription(
        self,
        user_id: str,
        new_plan_id: str,
        bed_count: Optional[int] = None,
        branch_count: int = 1,
    ) -> ServiceResult[SubscriptionResponse]:
        """
        Supersede the user's current subscription with one on a new plan.

        Both steps share one transaction: if opening the successor fails
        the old record is left exactly as it was.
        """
        try:
            self._logger.info(f"Changing plan for user {user_id} to {new_plan_id}")

            new_plan = self.plans.find_by_id(new_plan_id)
            if new_plan is None:
                return ServiceResult.not_found("SubscriptionPlan", new_plan_id)
            if not new_plan.is_active:
                return ServiceResult.validation_failure(ERROR_PLAN_NOT_ACTIVE, field="new_plan_id")

            current = self.repository.find_current_for_user(user_id, self.now(), for_update=True)
            if current is None:
                return ServiceResult.error_result(
                    ErrorCode.NO_ACTIVE_SUBSCRIPTION, ERROR_NO_ACTIVE_SUBSCRIPTION
                )

            successor = self.supersede(current, new_plan, bed_count, branch_count)
            self.db.commit()

            response = self._to_response(successor)
            self._notify_updated(response)
            return (
                ServiceResult.success(response, message=SUCCESS_PLAN_CHANGED)
                .add_metadata("previous_subscription_id", current.id)
                .add_metadata("previous_status", SubscriptionStatus(current.status).value)
            )

        except ValidationError as e:
            self.db.rollback()
            return ServiceResult.validation_failure(e.message, field=e.field)
        except InvalidStateTransition as e:
            self.db.rollback()
            return ServiceResult.error_result(ErrorCode.INVALID_STATE, e.message, details=e.details)
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "change subscription plan", user_id)

    def cancel_user_subscription(
        self,
        user_id: str,
        reason: Optional[str] = None,
    ) -> ServiceResult[SubscriptionResponse]:
        try:
            current = self.repository.find_current_for_user(user_id, self.now(), for_update=True)
            if current is None:
                return ServiceResult.error_result(
                    ErrorCode.NO_ACTIVE_SUBSCRIPTION, ERROR_NO_ACTIVE_SUBSCRIPTION
                )

            self.transition(current, SubscriptionStatus.CANCELLED, reason or USER_CANCELLED_REASON)
            self.db.commit()

            response = self._to_response(current)
            self._notify_updated(response)
            return ServiceResult.success(response, message=SUCCESS_CANCELLED)

        except InvalidStateTransition as e:
            self.db.rollback()
            return ServiceResult.error_result(ErrorCode.INVALID_STATE, e.message, details=e.details)
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "cancel subscription", user_id)

    def extend_subscription(self, subscription_id: str, days: int) -> ServiceResult[SubscriptionResponse]:
        """Push the end date (and a trial's end date) out by ``days`` days."""
        try:
            if days < 1:
                return ServiceResult.validation_failure(ERROR_EXTEND_DAYS, field="days")

            subscription = self.repository.find_by_id(subscription_id)
            if subscription is None:
                return ServiceResult.not_found("UserSubscription", subscription_id)
            if not subscription.is_open:
                return ServiceResult.error_result(
                    ErrorCode.INVALID_STATE,
                    f"Cannot extend a {SubscriptionStatus(subscription.status).value} subscription",
                )

            delta = timedelta(days=days)
            subscription.end_date = subscription.end_date + delta
            if subscription.trial_end_date is not None and subscription.billing_cycle == BillingCycle.TRIAL:
                subscription.trial_end_date = subscription.trial_end_date + delta
            self.db.commit()

            self._logger.info(f"Subscription {subscription_id} extended by {days} days")
            response = self._to_response(subscription)
            self._notify_updated(response)
            return ServiceResult.success(response, message=SUCCESS_EXTENDED)

        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "extend subscription", subscription_id)

    # =========================================================================
    # Renewal and expiry sweeps
    # =========================================================================

    def get_subscriptions_due_for_renewal(
        self,
        within_hours: Optional[int] = None,
    ) -> ServiceResult[List[SubscriptionResponse]]:
        """Active auto-renewing records ending within the renewal window."""
        try:
            now = self.now()
            until = now + timedelta(hours=within_hours or settings.RENEWAL_WINDOW_HOURS)
            due = self.repository.find_due_for_renewal(now, until)
            return ServiceResult.success([self._to_response(s) for s in due])
        except Exception as e:
            return self._handle_exception(e, "list subscriptions due for renewal")

    def process_subscription_renewal(
        self,
        subscription_id: str,
        expected_end_date: Optional[datetime] = None,
    ) -> ServiceResult[SubscriptionResponse]:
        """
        Renew one record by a billing period.

        Passing the end date the caller saw makes re-runs safe: if the
        record has moved on since, the renewal is skipped.
        """
        try:
            subscription = self.repository.find_by_id(subscription_id)
            if subscription is None:
                return ServiceResult.not_found("UserSubscription", subscription_id)

            if expected_end_date is not None and ensure_utc(expected_end_date) != subscription.end_date:
                return ServiceResult.success(
                    self._to_response(subscription),
                    message=SUCCESS_RENEWAL_SKIPPED,
                    metadata={"skipped": True},
                )

            self.renew(subscription)
            self.db.commit()

            response = self._to_response(subscription)
            self._notify_updated(response)
            return ServiceResult.success(response, message=SUCCESS_RENEWED)

        except InvalidStateTransition as e:
            self.db.rollback()
            return ServiceResult.error_result(ErrorCode.INVALID_STATE, e.message, details=e.details)
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "renew subscription", subscription_id)

    def get_expired_subscriptions(self) -> ServiceResult[List[SubscriptionResponse]]:
        """Active records whose end date has passed."""
        try:
            expired = self.repository.find_active_past_end(self.now())
            return ServiceResult.success([self._to_response(s) for s in expired])
        except Exception as e:
            return self._handle_exception(e, "list expired subscriptions")

    def expire_subscription(
        self,
        subscription_id: str,
        reason: Optional[str] = None,
    ) -> ServiceResult[SubscriptionResponse]:
        """
        Close an open record whose period has ended.

        The row is re-read under a lock, so a renewal or extension that
        landed after the sweep listed the record wins: records already
        closed or with an end date still ahead are skipped.
        """
        try:
            subscription = self.repository.find_by_id_for_update(subscription_id)
            if subscription is None:
                return ServiceResult.not_found("UserSubscription", subscription_id)

            still_open = subscription.is_open
            if not still_open or subscription.end_date > self.now():
                response = self._to_response(subscription)
                self.db.rollback()
                return ServiceResult.success(
                    response,
                    message=SUCCESS_EXPIRY_NOT_DUE if still_open else SUCCESS_EXPIRY_SKIPPED,
                    metadata={"skipped": True},
                )

            reason = reason or PERIOD_ENDED_REASON
            self.transition(subscription, SubscriptionStatus.EXPIRED, reason)
            self.db.commit()

            if self.notifier is not None:
                self.notifier.subscription_expired(subscription.user_id, subscription.id, reason)
            return ServiceResult.success(self._to_response(subscription), message=SUCCESS_EXPIRED)

        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "expire subscription", subscription_id)

    def check_and_handle_trial_expirations(self) -> ServiceResult[Dict[str, int]]:
        """
        Expire ended trials and move each user onto the fallback plan.

        Each trial is committed on its own so one bad record does not
        stop the sweep; re-running only picks up trials still open.
        """
        try:
            now = self.now()
            fallback = self.plans.find_active_by_name(settings.TRIAL_EXPIRED_PLAN_NAME)
            if fallback is None:
                return ServiceResult.not_found("SubscriptionPlan", settings.TRIAL_EXPIRED_PLAN_NAME)

            trials = self.repository.find_trials_past_end(now)
            expired = 0
            failed = 0

            for trial in trials:
                trial_id = trial.id
                user_id = trial.user_id
                try:
                    self.transition(trial, SubscriptionStatus.EXPIRED, TRIAL_EXPIRED_REASON)
                    self.repository.flush()
                    successor = self.open_subscription(
                        user_id,
                        fallback,
                        BillingCycle.MONTHLY,
                        start=now,
                        previous=trial,
                    )
                    successor.payment_status = PaymentStatus.COMPLETED
                    self.db.commit()
                except Exception as e:
                    self.db.rollback()
                    failed += 1
                    self._logger.error(
                        f"Failed to expire trial {trial_id}: {e}",
                        exc_info=True,
                        extra={"subscription_id": trial_id, "subscriber_id": user_id},
                    )
                    continue

                expired += 1
                if self.notifier is not None:
                    self.notifier.trial_expired(user_id, trial_id, fallback.plan_name)

            self._logger.info(f"Trial expiry sweep: {expired} expired, {failed} failed of {len(trials)}")
            return ServiceResult.success({"processed": len(trials), "expired": expired, "failed": failed})

        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "handle trial expirations")

    def get_trials_expiring_within(self, days: Optional[int] = None) -> ServiceResult[List[SubscriptionResponse]]:
        try:
            now = self.now()
            window = days if days is not None else settings.TRIAL_EXPIRY_WARNING_DAYS
            trials = self.repository.find_trials_ending_between(now, now + timedelta(days=window))
            return ServiceResult.success([self._to_response(s) for s in trials])
        except Exception as e:
            return self._handle_exception(e, "list expiring trials")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_current_subscription(self, user_id: str) -> ServiceResult[SubscriptionResponse]:
        """Current open record; the poll fallback for clients that missed events."""
        try:
            current = self.repository.find_current_for_user(user_id, self.now())
            if current is None:
                return ServiceResult.error_result(
                    ErrorCode.NO_ACTIVE_SUBSCRIPTION, ERROR_NO_ACTIVE_SUBSCRIPTION
                )
            return ServiceResult.success(self._to_response(current))
        except Exception as e:
            return self._handle_exception(e, "get current subscription", user_id)

    def get_user_subscription_history(self, user_id: str) -> ServiceResult[List[SubscriptionResponse]]:
        try:
            history = self.repository.history_for_user(user_id)
            return ServiceResult.success([self._to_response(s) for s in history])
        except Exception as e:
            return self._handle_exception(e, "get subscription history", user_id)

    def update_subscription_usage(
        self,
        subscription_id: str,
        beds_used: int,
        branches_used: int,
    ) -> ServiceResult[SubscriptionResponse]:
        try:
            subscription = self.repository.find_by_id(subscription_id)
            if subscription is None:
                return ServiceResult.not_found("UserSubscription", subscription_id)

            if beds_used < 0 or branches_used < 0:
                return ServiceResult.validation_failure("Usage cannot be negative")
            if beds_used > subscription.total_beds or branches_used > subscription.total_branches:
                return ServiceResult.validation_failure(
                    ERROR_USAGE_EXCEEDS_TOTALS,
                    details={
                        "bedsUsed": beds_used,
                        "totalBeds": subscription.total_beds,
                        "branchesUsed": branches_used,
                        "totalBranches": subscription.total_branches,
                    },
                )

            subscription.current_bed_usage = beds_used
            subscription.current_branch_usage = branches_used
            self.db.commit()
            return ServiceResult.success(self._to_response(subscription), message=SUCCESS_USAGE_UPDATED)

        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "update subscription usage", subscription_id)

    def get_subscription_statistics(self) -> ServiceResult[SubscriptionStatistics]:
        try:
            now = self.now()
            by_status = self.repository.count_by_status()
            stats = SubscriptionStatistics(
                by_status=by_status,
                by_billing_cycle=self.repository.count_by_billing_cycle(),
                expiring_within_30_days=self.repository.count_open_ending_between(
                    now, now + timedelta(days=STATISTICS_EXPIRY_WINDOW_DAYS)
                ),
                active_trials=by_status.get(SubscriptionStatus.TRIAL.value, 0),
                total=sum(by_status.values()),
            )
            return ServiceResult.success(stats)
        except Exception as e:
            return self._handle_exception(e, "get subscription statistics")

    def get_restrictions(self, user_id: str) -> ServiceResult[RestrictionSet]:
        """What the user may do right now; the free set when they hold nothing."""
        try:
            now = self.now()
            current = self.repository.find_current_for_user(user_id, now)
            if current is None:
                return ServiceResult.success(
                    RestrictionSet(
                        max_beds=FREE_MAX_BEDS,
                        max_branches=FREE_MAX_BRANCHES,
                        max_rooms=settings.DEFAULT_ROOM_CEILING,
                    )
                )

            plan = current.plan
            status = SubscriptionStatus(current.status)
            return ServiceResult.success(
                RestrictionSet(
                    subscription_id=current.id,
                    plan_name=plan.plan_name,
                    status=status,
                    max_beds=current.total_beds,
                    max_branches=current.total_branches,
                    max_rooms=current.total_rooms or plan.max_rooms_allowed or settings.DEFAULT_ROOM_CEILING,
                    modules=[g.module_name.value for g in plan.get_module_grants() if g.enabled],
                    features=[f.name for f in plan.get_features() if f.enabled],
                    is_trial=status == SubscriptionStatus.TRIAL,
                    days_remaining=current.days_remaining_at(now),
                )
            )
        except Exception as e:
            return self._handle_exception(e, "get restrictions", user_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _to_response(self, subscription: UserSubscription) -> SubscriptionResponse:
        return SubscriptionResponse.from_model(subscription, settings.EXPIRING_SOON_DAYS)

    def _notify_updated(self, response: SubscriptionResponse) -> None:
        if self.notifier is not None:
            self.notifier.subscription_updated(response.user_id, response.model_dump(mode="json"))
