"""
Entitlement resolver.

Answers "may this user add N rooms / M beds to this property right now".
Usage is always re-derived from live room counts, never from the
usage cache on the subscription. A denial is a successful result
carrying a refusal; only infrastructure problems produce a failure.
"""

from typing import Optional, Tuple

from sqlalchemy.orm import Session

from app.config.settings import settings
from app.models.subscription.subscription_plan import SubscriptionPlan
from app.models.subscription.user_subscription import UserSubscription
from app.repositories.room import RoomRepository
from app.repositories.subscription import UserSubscriptionRepository
from app.schemas.subscription.entitlement import EntitlementDecision, QuotaKind
from app.services.base import BaseService, ServiceResult
from app.services.common.errors import NotFoundError
from app.services.subscription.subscription_lifecycle_service import SubscriptionLifecycleService

NO_SUBSCRIPTION_MESSAGE = "No active subscription and failed to activate free trial"
ROOM_LIMIT_MESSAGE = "Room limit exceeded. Maximum allowed rooms: {limit}"
BED_LIMIT_MESSAGE = "Bed limit exceeded. Maximum allowed beds: {limit}. You can add {remaining} more beds."
ROOMS_ALLOWED_MESSAGE = "Room addition allowed"
BEDS_ALLOWED_MESSAGE = "Bed addition allowed"


def room_ceiling(subscription: UserSubscription) -> int:
    plan = subscription.plan
    return (
        subscription.total_rooms
        or (plan.max_rooms_allowed if plan is not None else None)
        or settings.DEFAULT_ROOM_CEILING
    )


def bed_ceiling(subscription: UserSubscription) -> int:
    plan = subscription.plan
    return (
        subscription.total_beds
        or (plan.max_beds_allowed if plan is not None else None)
        or settings.DEFAULT_BED_CEILING
    )


class EntitlementService(BaseService[UserSubscription, UserSubscriptionRepository]):
    """Room/bed quota checks and module/feature grants."""

    def __init__(
        self,
        repository: UserSubscriptionRepository,
        db_session: Session,
        room_repository: Optional[RoomRepository] = None,
        lifecycle: Optional[SubscriptionLifecycleService] = None,
    ):
        super().__init__(repository, db_session)
        self.rooms = room_repository or RoomRepository(db_session)
        self.lifecycle = lifecycle or SubscriptionLifecycleService(repository, db_session)

    # =========================================================================
    # Quota checks
    # =========================================================================

    def can_add_rooms(
        self,
        user_id: str,
        property_id: str,
        rooms_to_add: int = 1,
        beds_to_add: int = 0,
    ) -> ServiceResult[EntitlementDecision]:
        """
        Check adding ``rooms_to_add`` rooms holding ``beds_to_add`` beds.

        The room ceiling is checked before the bed ceiling.
        """
        return self._check(user_id, property_id, rooms_to_add, beds_to_add, check_rooms=True)

    def can_add_beds(
        self,
        user_id: str,
        property_id: str,
        beds_to_add: int,
    ) -> ServiceResult[EntitlementDecision]:
        return self._check(user_id, property_id, 0, beds_to_add, check_rooms=False)

    def _check(
        self,
        user_id: str,
        property_id: str,
        rooms_to_add: int,
        beds_to_add: int,
        check_rooms: bool,
    ) -> ServiceResult[EntitlementDecision]:
        try:
            decision, provisioned = self.decide(
                user_id,
                property_id,
                rooms_to_add,
                beds_to_add,
                check_rooms=check_rooms,
            )
            if provisioned:
                self.db.commit()
            return ServiceResult.success(decision, message=decision.message)
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "check entitlement", user_id)

    def decide(
        self,
        user_id: str,
        property_id: str,
        rooms_to_add: int,
        beds_to_add: int,
        *,
        check_rooms: bool = True,
        for_update: bool = False,
    ) -> Tuple[EntitlementDecision, bool]:
        """
        Evaluate the quota without committing.

        A user who has never held a subscription gets a trial opened in
        the current transaction; the caller commits it together with
        whatever it is about to create.

        Returns:
            (decision, whether a trial was provisioned)
        """
        subscription, provisioned = self.resolve_subscription(user_id, for_update=for_update)
        if subscription is None:
            return (
                EntitlementDecision(
                    allowed=False,
                    limit_type="subscription",
                    message=NO_SUBSCRIPTION_MESSAGE,
                    rooms_to_add=rooms_to_add,
                    beds_to_add=beds_to_add,
                    requires_upgrade=True,
                ),
                provisioned,
            )
        return self.evaluate(subscription, property_id, rooms_to_add, beds_to_add, check_rooms), provisioned

    def resolve_subscription(
        self,
        user_id: str,
        for_update: bool = False,
    ) -> Tuple[Optional[UserSubscription], bool]:
        """
        The user's current subscription, provisioning a trial for
        first-time users.

        Returns:
            (subscription or None, whether a trial was provisioned)
        """
        current = self.repository.find_current_for_user(user_id, self.lifecycle.now(), for_update=for_update)
        if current is not None:
            return current, False

        if self.repository.has_any_for_user(user_id):
            return None, False

        try:
            trial = self.lifecycle.open_trial(user_id)
        except NotFoundError:
            self._logger.warning(f"Cannot provision trial for user {user_id}: trial plan missing")
            return None, False

        self._logger.info(f"Provisioned trial {trial.id} for first-time user {user_id}")
        return trial, True

    def evaluate(
        self,
        subscription: UserSubscription,
        property_id: str,
        rooms_to_add: int,
        beds_to_add: int,
        check_rooms: bool = True,
    ) -> EntitlementDecision:
        current_rooms = self.rooms.count_active_rooms(property_id)
        current_beds = self.rooms.sum_active_beds(property_id)
        max_rooms = room_ceiling(subscription)
        max_beds = bed_ceiling(subscription)

        figures = dict(
            current_rooms=current_rooms,
            max_allowed_rooms=max_rooms,
            rooms_to_add=rooms_to_add,
            current_beds=current_beds,
            max_allowed_beds=max_beds,
            beds_to_add=beds_to_add,
            subscription_id=subscription.id,
        )

        if check_rooms and current_rooms + rooms_to_add > max_rooms:
            return EntitlementDecision(
                allowed=False,
                limit_type=QuotaKind.ROOMS,
                message=ROOM_LIMIT_MESSAGE.format(limit=max_rooms),
                remaining_rooms=max(0, max_rooms - current_rooms),
                remaining_beds=max(0, max_beds - current_beds),
                requires_upgrade=True,
                **figures,
            )

        if current_beds + beds_to_add > max_beds:
            remaining = max(0, max_beds - current_beds)
            return EntitlementDecision(
                allowed=False,
                limit_type=QuotaKind.BEDS,
                message=BED_LIMIT_MESSAGE.format(limit=max_beds, remaining=remaining),
                remaining_rooms=max(0, max_rooms - current_rooms),
                remaining_beds=remaining,
                requires_upgrade=True,
                **figures,
            )

        return EntitlementDecision(
            allowed=True,
            limit_type=QuotaKind.ROOMS if check_rooms else QuotaKind.BEDS,
            message=ROOMS_ALLOWED_MESSAGE if check_rooms else BEDS_ALLOWED_MESSAGE,
            remaining_rooms=max_rooms - (current_rooms + rooms_to_add),
            remaining_beds=max_beds - (current_beds + beds_to_add),
            requires_upgrade=False,
            **figures,
        )

    # =========================================================================
    # Module and feature grants
    # =========================================================================

    @staticmethod
    def has_module(plan: SubscriptionPlan, module_name: str) -> bool:
        return plan.has_module(module_name)

    @staticmethod
    def has_feature(plan: SubscriptionPlan, feature_name: str) -> bool:
        return plan.has_feature(feature_name)

    def user_has_module(self, user_id: str, module_name: str) -> ServiceResult[bool]:
        """Module check against the user's current plan; False when they hold none."""
        try:
            current = self.repository.find_current_for_user(user_id, self.lifecycle.now())
            allowed = current is not None and self.has_module(current.plan, module_name)
            return ServiceResult.success(allowed)
        except Exception as e:
            return self._handle_exception(e, "check module access", user_id)
