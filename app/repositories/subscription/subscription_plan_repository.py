"""
Subscription plan repository.
"""

from typing import Dict, List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from app.models.subscription.subscription_plan import SubscriptionPlan
from app.repositories.base.base_repository import BaseRepository
from app.schemas.common.enums import PlanStatus


class SubscriptionPlanRepository(BaseRepository[SubscriptionPlan]):
    """Plan lookups, visibility queries and the subscriber counter."""

    def __init__(self, db: Session):
        super().__init__(SubscriptionPlan, db)

    def find_by_name(self, plan_name: str) -> Optional[SubscriptionPlan]:
        stmt = select(SubscriptionPlan).where(SubscriptionPlan.plan_name == plan_name)
        return self.db.execute(stmt).scalar_one_or_none()

    def find_active_by_name(self, plan_name: str) -> Optional[SubscriptionPlan]:
        stmt = select(SubscriptionPlan).where(
            SubscriptionPlan.plan_name == plan_name,
            SubscriptionPlan.status == PlanStatus.ACTIVE,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_all(self) -> List[SubscriptionPlan]:
        stmt = select(SubscriptionPlan).order_by(SubscriptionPlan.base_price, SubscriptionPlan.plan_name)
        return list(self.db.execute(stmt).scalars().all())

    def list_active(self) -> List[SubscriptionPlan]:
        stmt = (
            select(SubscriptionPlan)
            .where(SubscriptionPlan.status == PlanStatus.ACTIVE)
            .order_by(SubscriptionPlan.base_price, SubscriptionPlan.plan_name)
        )
        return list(self.db.execute(stmt).scalars().all())

    def adjust_subscribed_count(self, plan_id: str, delta: int) -> None:
        """
        Atomically move the subscriber counter, never below zero.

        Issued as a single UPDATE so concurrent attach/detach calls on the
        same plan do not lose increments.
        """
        new_value = SubscriptionPlan.subscribed_count + delta
        stmt = (
            update(SubscriptionPlan)
            .where(SubscriptionPlan.id == plan_id)
            .values(subscribed_count=case((new_value < 0, 0), else_=new_value))
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        plan = self.db.get(SubscriptionPlan, plan_id)
        if plan is not None:
            self.db.expire(plan, ["subscribed_count"])

    def count_by_status(self) -> Dict[str, int]:
        stmt = select(SubscriptionPlan.status, func.count()).group_by(SubscriptionPlan.status)
        return {
            PlanStatus(status).value: count
            for status, count in self.db.execute(stmt).all()
        }

    def count_custom(self) -> int:
        stmt = select(func.count()).select_from(SubscriptionPlan).where(SubscriptionPlan.is_custom_plan.is_(True))
        return int(self.db.execute(stmt).scalar_one())

    def total_subscribers(self) -> int:
        stmt = select(func.coalesce(func.sum(SubscriptionPlan.subscribed_count), 0))
        return int(self.db.execute(stmt).scalar_one())
