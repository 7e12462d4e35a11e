"""
Payment gateway webhook schemas.

The envelope mirrors the gateway's JSON event shape. Order notes were
written by this system when the order was created and are parsed into
a tagged union of payment intents, discriminated on ``type``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from app.schemas.common.enums import BillingCycle

__all__ = [
    "PaymentEntity",
    "OrderEntity",
    "WebhookEnvelope",
    "SubscriptionIntent",
    "AddonIntent",
    "ChargeIntent",
    "PaymentIntent",
    "parse_payment_intent",
    "SUCCESS_EVENTS",
    "FAILURE_EVENTS",
]

SUCCESS_EVENTS = frozenset({"payment.authorized", "payment.captured"})
FAILURE_EVENTS = frozenset({"payment.failed"})

PAISE_PER_RUPEE = Decimal("100")


class GatewaySchema(BaseModel):
    """Gateway payloads carry many fields we do not use; ignore them."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PaymentEntity(GatewaySchema):
    id: str
    order_id: Optional[str] = None
    amount: int = Field(0, description="Amount in paise")
    currency: str = "INR"
    method: Optional[str] = None
    status: Optional[str] = None
    error_description: Optional[str] = None
    error_reason: Optional[str] = None
    notes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("notes", mode="before")
    @classmethod
    def _empty_notes(cls, value: Any) -> Any:
        # The gateway sends [] instead of {} when no notes were set
        if value is None or value == []:
            return {}
        return value

    @property
    def amount_major(self) -> Decimal:
        return (Decimal(self.amount) / PAISE_PER_RUPEE).quantize(Decimal("0.01"))

    @property
    def failure_reason(self) -> str:
        return self.error_description or self.error_reason or "Payment failed"


class OrderEntity(GatewaySchema):
    id: str
    notes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("notes", mode="before")
    @classmethod
    def _empty_notes(cls, value: Any) -> Any:
        if value is None or value == []:
            return {}
        return value


class PaymentWrapper(GatewaySchema):
    entity: PaymentEntity


class OrderWrapper(GatewaySchema):
    entity: OrderEntity


class WebhookPayload(GatewaySchema):
    payment: Optional[PaymentWrapper] = None
    order: Optional[OrderWrapper] = None


class WebhookEnvelope(GatewaySchema):
    event: str
    payload: WebhookPayload = Field(default_factory=WebhookPayload)

    @property
    def payment(self) -> Optional[PaymentEntity]:
        return self.payload.payment.entity if self.payload.payment else None

    @property
    def order(self) -> Optional[OrderEntity]:
        return self.payload.order.entity if self.payload.order else None

    @property
    def order_id(self) -> Optional[str]:
        if self.order is not None:
            return self.order.id
        return self.payment.order_id if self.payment is not None else None

    def intent_notes(self) -> Dict[str, Any]:
        """Order notes, falling back to the payment's own notes."""
        if self.order is not None and self.order.notes:
            return dict(self.order.notes)
        if self.payment is not None:
            return dict(self.payment.notes)
        return {}


# ---------------------------------------------------------------------- #
# Payment intents
# ---------------------------------------------------------------------- #


class SubscriptionIntent(GatewaySchema):
    type: Literal["subscription"] = "subscription"
    user_id: str = Field(..., alias="userId", min_length=1)
    subscription_plan_id: str = Field(..., alias="subscriptionPlanId", min_length=1)
    bed_count: int = Field(1, alias="bedCount", ge=1)
    branch_count: int = Field(1, alias="branchCount", ge=1)
    billing_cycle: BillingCycle = Field(BillingCycle.MONTHLY, alias="billingCycle")
    plan_name: Optional[str] = Field(None, alias="planName")

    @field_validator("billing_cycle")
    @classmethod
    def _paid_cycle(cls, value: BillingCycle) -> BillingCycle:
        if value == BillingCycle.TRIAL:
            raise ValueError("A paid order cannot open a trial")
        return value


class AddonIntent(GatewaySchema):
    type: Literal["addon"]
    user_id: str = Field(..., alias="userId", min_length=1)
    additional_beds: int = Field(0, alias="additionalBeds", ge=0)
    additional_branches: int = Field(0, alias="additionalBranches", ge=0)


class ChargeIntent(GatewaySchema):
    """One-off charges that do not touch the subscription lifecycle."""

    type: Literal["custom", "donation", "fee", "penalty"]
    user_id: str = Field(..., alias="userId", min_length=1)
    purpose: Optional[str] = Field(None, alias="description")


PaymentIntent = Annotated[
    Union[SubscriptionIntent, AddonIntent, ChargeIntent],
    Field(discriminator="type"),
]

_intent_adapter: TypeAdapter = TypeAdapter(PaymentIntent)


def parse_payment_intent(notes: Dict[str, Any]) -> Union[SubscriptionIntent, AddonIntent, ChargeIntent]:
    """
    Build the intent carried in the order notes.

    Raises:
        pydantic.ValidationError: unknown ``type`` or missing fields
    """
    data = dict(notes)
    data.setdefault("type", "subscription")
    return _intent_adapter.validate_python(data)
