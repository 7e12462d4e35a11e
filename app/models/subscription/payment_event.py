"""
Payment gateway transactions applied to subscriptions.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base.base_model import TimestampModel
from app.models.base.types import JSONType, MoneyType, enum_type
from app.schemas.common.enums import BillingCycle, PaymentEventStatus

if TYPE_CHECKING:
    from app.models.subscription.user_subscription import UserSubscription

__all__ = ["PaymentEvent"]


class PaymentEvent(TimestampModel):
    """
    Append-only record of a gateway transaction.

    The (gateway_order_id, gateway_payment_id) pair identifies a
    delivery; the unique constraint turns a replayed webhook into a
    no-op even when two deliveries race.
    """

    __tablename__ = "payment_events"
    __table_args__ = (
        UniqueConstraint(
            "gateway_order_id",
            "gateway_payment_id",
            name="uq_payment_event_order_payment",
        ),
        Index("ix_payment_event_user", "user_id"),
    )

    subscription_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("user_subscriptions.id"),
        nullable=True,
        index=True,
        comment="Subscription the event was applied to (NULL for unattached failures)",
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, comment="Paying user")

    gateway_order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    gateway_payment_id: Mapped[str] = mapped_column(String(100), nullable=False)
    gateway_event: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Webhook event name that produced this record",
    )

    amount: Mapped[Decimal] = mapped_column(MoneyType(), nullable=False, comment="Amount in major units")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    status: Mapped[PaymentEventStatus] = mapped_column(enum_type(PaymentEventStatus), nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    billing_cycle: Mapped[Optional[BillingCycle]] = mapped_column(enum_type(BillingCycle), nullable=True)
    intent_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="subscription",
        comment="Payment intent variant from the order notes",
    )
    plan_snapshot: Mapped[Dict[str, Any]] = mapped_column(
        JSONType(),
        nullable=False,
        default=dict,
        comment="{plan_id, plan_name, bed_count, branch_count} at purchase time",
    )
    error_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    subscription: Mapped[Optional["UserSubscription"]] = relationship(
        "UserSubscription",
        back_populates="payment_events",
    )
