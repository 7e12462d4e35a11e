"""
User subscription repository.

Queries behind the lifecycle engine: the user's current period,
trial history, and the renewal/expiry sweeps.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.subscription.user_subscription import UserSubscription
from app.repositories.base.base_repository import BaseRepository
from app.schemas.common.enums import BillingCycle, SubscriptionStatus

OPEN_STATUSES = (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)


class UserSubscriptionRepository(BaseRepository[UserSubscription]):

    def __init__(self, db: Session):
        super().__init__(UserSubscription, db)

    def find_current_for_user(
        self,
        user_id: str,
        now: datetime,
        for_update: bool = False,
    ) -> Optional[UserSubscription]:
        """
        Open (trial/active) subscription whose end date is still ahead.

        With ``for_update`` the row is locked until the transaction ends
        so upgrade, cancellation and webhook renewal serialize per user.
        """
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.user_id == user_id,
                UserSubscription.status.in_(OPEN_STATUSES),
                UserSubscription.end_date > now,
            )
            .order_by(UserSubscription.end_date.desc())
            .limit(1)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def find_by_id_for_update(self, subscription_id: str) -> Optional[UserSubscription]:
        """Load one record under a row lock so sweeps serialize with renewals."""
        stmt = (
            select(UserSubscription)
            .where(UserSubscription.id == subscription_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalars().first()

    def find_latest_trial(self, user_id: str) -> Optional[UserSubscription]:
        """Most recent trial-cycle record in any status."""
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.user_id == user_id,
                UserSubscription.billing_cycle == BillingCycle.TRIAL,
            )
            .order_by(UserSubscription.created_at.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def has_any_for_user(self, user_id: str) -> bool:
        stmt = select(func.count()).select_from(UserSubscription).where(UserSubscription.user_id == user_id)
        return int(self.db.execute(stmt).scalar_one()) > 0

    def history_for_user(self, user_id: str) -> List[UserSubscription]:
        stmt = (
            select(UserSubscription)
            .where(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc(), UserSubscription.start_date.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_due_for_renewal(self, now: datetime, until: datetime) -> List[UserSubscription]:
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.status == SubscriptionStatus.ACTIVE,
                UserSubscription.auto_renew.is_(True),
                UserSubscription.end_date > now,
                UserSubscription.end_date <= until,
            )
            .order_by(UserSubscription.end_date)
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_active_past_end(self, now: datetime) -> List[UserSubscription]:
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.status == SubscriptionStatus.ACTIVE,
                UserSubscription.end_date <= now,
            )
            .order_by(UserSubscription.end_date)
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_trials_past_end(self, now: datetime) -> List[UserSubscription]:
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.status == SubscriptionStatus.TRIAL,
                UserSubscription.trial_end_date.is_not(None),
                UserSubscription.trial_end_date <= now,
            )
            .order_by(UserSubscription.trial_end_date)
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_trials_ending_between(self, start: datetime, end: datetime) -> List[UserSubscription]:
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.status == SubscriptionStatus.TRIAL,
                UserSubscription.trial_end_date > start,
                UserSubscription.trial_end_date <= end,
            )
            .order_by(UserSubscription.trial_end_date)
        )
        return list(self.db.execute(stmt).scalars().all())

    def count_by_status(self) -> Dict[str, int]:
        stmt = select(UserSubscription.status, func.count()).group_by(UserSubscription.status)
        return {SubscriptionStatus(status).value: count for status, count in self.db.execute(stmt).all()}

    def count_by_billing_cycle(self) -> Dict[str, int]:
        stmt = select(UserSubscription.billing_cycle, func.count()).group_by(UserSubscription.billing_cycle)
        return {BillingCycle(cycle).value: count for cycle, count in self.db.execute(stmt).all()}

    def count_open_ending_between(self, start: datetime, end: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(UserSubscription)
            .where(
                UserSubscription.status.in_(OPEN_STATUSES),
                UserSubscription.end_date > start,
                UserSubscription.end_date <= end,
            )
        )
        return int(self.db.execute(stmt).scalar_one())
