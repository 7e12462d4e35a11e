"""
User Subscription Models.

One row per subscription period held by a user. Price and terms are
snapshotted from the plan when the row is created.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base.base_model import TimestampModel
from app.models.base.types import MoneyType, UTCDateTime, enum_type, utc_now
from app.schemas.common.enums import BillingCycle, PaymentStatus, SubscriptionStatus

if TYPE_CHECKING:
    from app.models.subscription.payment_event import PaymentEvent
    from app.models.subscription.subscription_plan import SubscriptionPlan

__all__ = ["UserSubscription"]

SECONDS_PER_DAY = 86400


class UserSubscription(TimestampModel):
    """
    Subscription period for a user.

    ``version`` is the optimistic-lock column: every flush of a changed
    row bumps it, and a flush against a stale version raises
    ``StaleDataError`` so racing writers cannot both win.
    """

    __tablename__ = "user_subscriptions"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_user_subscription_dates"),
        CheckConstraint("total_beds >= 1", name="ck_user_subscription_beds_positive"),
        CheckConstraint("total_branches >= 1", name="ck_user_subscription_branches_positive"),
        CheckConstraint(
            "current_bed_usage >= 0 AND current_bed_usage <= total_beds",
            name="ck_user_subscription_bed_usage",
        ),
        CheckConstraint(
            "current_branch_usage >= 0 AND current_branch_usage <= total_branches",
            name="ck_user_subscription_branch_usage",
        ),
        CheckConstraint(
            "billing_cycle != 'trial' OR trial_end_date IS NOT NULL",
            name="ck_user_subscription_trial_end",
        ),
        Index("ix_user_subscription_user_status", "user_id", "status"),
        Index("ix_user_subscription_status_end_date", "status", "end_date"),
        # Trials are single-use per user; racing activations lose on this index
        Index(
            "uq_user_subscription_single_trial",
            "user_id",
            unique=True,
            postgresql_where=text("billing_cycle = 'trial'"),
            sqlite_where=text("billing_cycle = 'trial'"),
        ),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        index=True,
        comment="Owning user",
    )
    subscription_plan_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("subscription_plans.id"),
        nullable=False,
        index=True,
        comment="Plan this period was bought on",
    )
    billing_cycle: Mapped[BillingCycle] = mapped_column(
        enum_type(BillingCycle),
        nullable=False,
        comment="monthly | annual | trial",
    )

    # Period
    start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    trial_end_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Contracted terms (snapshot)
    base_price: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False, default=Decimal("0"))
    total_beds: Mapped[int] = mapped_column(Integer, nullable=False)
    total_branches: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_rooms: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Room ceiling (NULL = plan or default ceiling)",
    )
    total_price: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
        comment="Monthly-equivalent price from the cost calculator",
    )

    # State
    status: Mapped[SubscriptionStatus] = mapped_column(
        enum_type(SubscriptionStatus),
        nullable=False,
        index=True,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_type(PaymentStatus),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Cancellation and lineage
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    previous_subscription_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("user_subscriptions.id"),
        nullable=True,
        comment="Record this one superseded",
    )
    upgrade_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Usage cache (live counts are the source of truth)
    current_bed_usage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_branch_usage: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    plan: Mapped["SubscriptionPlan"] = relationship("SubscriptionPlan")
    payment_events: Mapped[List["PaymentEvent"]] = relationship(
        "PaymentEvent",
        back_populates="subscription",
        order_by="PaymentEvent.created_at",
    )

    def __repr__(self) -> str:
        return f"<UserSubscription(id={self.id}, user_id={self.user_id}, status={self.status})>"

    # ------------------------------------------------------------------ #
    # Derived values
    # ------------------------------------------------------------------ #

    @property
    def is_open(self) -> bool:
        """Trial or active, regardless of dates."""
        return SubscriptionStatus(self.status).is_open

    @property
    def duration_days(self) -> int:
        return math.ceil((self.end_date - self.start_date).total_seconds() / SECONDS_PER_DAY)

    def days_remaining_at(self, now: datetime) -> int:
        remaining = (self.end_date - now).total_seconds()
        return max(0, math.ceil(remaining / SECONDS_PER_DAY))

    @property
    def days_remaining(self) -> int:
        return self.days_remaining_at(utc_now())

    @property
    def trial_days_remaining(self) -> int:
        if self.trial_end_date is None:
            return 0
        remaining = (self.trial_end_date - utc_now()).total_seconds()
        return max(0, math.ceil(remaining / SECONDS_PER_DAY))

    @property
    def is_expired(self) -> bool:
        return self.status == SubscriptionStatus.EXPIRED or self.end_date <= utc_now()

    @property
    def is_trial_active(self) -> bool:
        return (
            self.status == SubscriptionStatus.TRIAL
            and self.trial_end_date is not None
            and self.trial_end_date > utc_now()
        )

    def is_expiring_soon(self, within_days: int = 7) -> bool:
        return self.is_open and not self.is_expired and self.days_remaining <= within_days

    @property
    def renewal_date(self) -> datetime:
        return self.end_date
