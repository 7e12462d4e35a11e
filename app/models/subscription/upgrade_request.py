"""
Upgrade requests raised against custom plans.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base.base_model import TimestampModel
from app.models.base.types import UTCDateTime, enum_type
from app.schemas.common.enums import UpgradeRequestStatus

if TYPE_CHECKING:
    from app.models.subscription.subscription_plan import SubscriptionPlan

__all__ = ["PlanUpgradeRequest"]


class PlanUpgradeRequest(TimestampModel):
    """
    A user's request to raise the bed/branch ceilings of a custom plan.

    Moves one way: pending -> approved | rejected.
    """

    __tablename__ = "plan_upgrade_requests"
    __table_args__ = (
        CheckConstraint("requested_beds >= 1", name="ck_upgrade_request_beds_positive"),
        CheckConstraint("requested_branches >= 1", name="ck_upgrade_request_branches_positive"),
        Index("ix_upgrade_request_plan_requester_status", "plan_id", "requester_id", "status"),
    )

    plan_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("subscription_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Custom plan the request targets",
    )
    requester_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        comment="User asking for the upgrade",
    )
    requested_beds: Mapped[int] = mapped_column(Integer, nullable=False)
    requested_branches: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[UpgradeRequestStatus] = mapped_column(
        enum_type(UpgradeRequestStatus),
        nullable=False,
        default=UpgradeRequestStatus.PENDING,
        comment="pending | approved | rejected",
    )
    responded_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    response_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    plan: Mapped["SubscriptionPlan"] = relationship(
        "SubscriptionPlan",
        back_populates="upgrade_requests",
    )

    @property
    def is_pending(self) -> bool:
        return self.status == UpgradeRequestStatus.PENDING
