"""
Plan upgrade request repository.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.subscription.upgrade_request import PlanUpgradeRequest
from app.repositories.base.base_repository import BaseRepository
from app.schemas.common.enums import UpgradeRequestStatus


class PlanUpgradeRequestRepository(BaseRepository[PlanUpgradeRequest]):

    def __init__(self, db: Session):
        super().__init__(PlanUpgradeRequest, db)

    def find_pending(self, plan_id: str, requester_id: str) -> Optional[PlanUpgradeRequest]:
        stmt = select(PlanUpgradeRequest).where(
            PlanUpgradeRequest.plan_id == plan_id,
            PlanUpgradeRequest.requester_id == requester_id,
            PlanUpgradeRequest.status == UpgradeRequestStatus.PENDING,
        )
        return self.db.execute(stmt).scalars().first()

    def list_for_plan(self, plan_id: str) -> List[PlanUpgradeRequest]:
        stmt = (
            select(PlanUpgradeRequest)
            .where(PlanUpgradeRequest.plan_id == plan_id)
            .order_by(PlanUpgradeRequest.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())
