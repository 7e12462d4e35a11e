"""
Subscription Plan Models.

Defines plan pricing, bed/branch quotas, module grants, feature flags
and custom-plan assignment.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base.base_model import TimestampModel
from app.models.base.mixins import AuditMixin
from app.models.base.types import JSONType, MoneyType, enum_type
from app.schemas.common.enums import BillingCycle, PlanStatus
from app.schemas.subscription.plan_modules import ModuleGrant, ModuleName, PlanFeature

if TYPE_CHECKING:
    from app.models.subscription.upgrade_request import PlanUpgradeRequest

__all__ = [
    "SubscriptionPlan",
]


class SubscriptionPlan(TimestampModel, AuditMixin):
    """
    Subscription plan definition.

    Prices are per month; annual plans carry a discount percentage that
    is applied at cost-calculation time. ``subscribed_count`` tracks the
    number of open (trial/active) subscriptions attached to the plan.
    """

    __tablename__ = "subscription_plans"
    __table_args__ = (
        UniqueConstraint("plan_name", name="uq_subscription_plan_name"),
        CheckConstraint("base_price >= 0", name="ck_plan_base_price_non_negative"),
        CheckConstraint("top_up_price_per_bed >= 0", name="ck_plan_top_up_non_negative"),
        CheckConstraint("cost_per_branch >= 0", name="ck_plan_branch_cost_non_negative"),
        CheckConstraint("setup_fee >= 0", name="ck_plan_setup_fee_non_negative"),
        CheckConstraint(
            "annual_discount >= 0 AND annual_discount <= 100",
            name="ck_plan_annual_discount_range",
        ),
        CheckConstraint(
            "base_bed_count >= 1 AND base_bed_count <= 10000",
            name="ck_plan_base_bed_count_range",
        ),
        CheckConstraint(
            "max_beds_allowed IS NULL OR max_beds_allowed >= base_bed_count",
            name="ck_plan_max_beds_not_below_base",
        ),
        CheckConstraint(
            "max_rooms_allowed IS NULL OR max_rooms_allowed >= 1",
            name="ck_plan_max_rooms_positive",
        ),
        CheckConstraint(
            "branch_count >= 1 AND branch_count <= 50",
            name="ck_plan_branch_count_range",
        ),
        CheckConstraint("subscribed_count >= 0", name="ck_plan_subscribed_count_non_negative"),
        CheckConstraint("trial_period_days >= 0", name="ck_plan_trial_days_non_negative"),
    )

    # Identification
    plan_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Unique display name",
    )
    plan_description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Marketing description",
    )
    billing_cycle: Mapped[BillingCycle] = mapped_column(
        enum_type(BillingCycle),
        nullable=False,
        default=BillingCycle.MONTHLY,
        comment="monthly | annual",
    )

    # Pricing
    base_price: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
        comment="Monthly price covering base_bed_count beds and one branch",
    )
    annual_discount: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Percent discount applied to annual billing",
    )
    top_up_price_per_bed: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
        comment="Monthly price per bed above base_bed_count",
    )
    setup_fee: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
        comment="One-time setup fee",
    )

    # Quotas
    base_bed_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Beds included in base_price",
    )
    max_beds_allowed: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Bed cap including top-ups (NULL = unlimited)",
    )
    max_rooms_allowed: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Room cap (NULL = deployment default)",
    )

    # Branches
    allow_multiple_branches: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Plan can be used across several branches",
    )
    branch_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Maximum branches purchasable on this plan",
    )
    beds_per_branch: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Beds allotted per branch",
    )
    cost_per_branch: Mapped[Decimal] = mapped_column(
        MoneyType(),
        nullable=False,
        default=Decimal("0"),
        comment="Monthly price per branch beyond the first",
    )

    # Grants
    features: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType(),
        nullable=False,
        default=list,
        comment="Feature flags [{name, description, enabled}]",
    )
    modules: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType(),
        nullable=False,
        default=list,
        comment="Module grants with per-submodule CRUD permissions",
    )

    # Status and display
    status: Mapped[PlanStatus] = mapped_column(
        enum_type(PlanStatus),
        nullable=False,
        default=PlanStatus.ACTIVE,
        index=True,
        comment="active | inactive | archived",
    )
    is_popular: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_recommended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    trial_period_days: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Trial length in days (0 = deployment default)",
    )
    subscribed_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Open subscriptions attached to this plan",
    )

    # Custom plan assignment
    is_custom_plan: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
        comment="Visible only to the assigned property/email",
    )
    assigned_property_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        nullable=True,
        index=True,
        comment="Property the custom plan is assigned to",
    )
    assigned_email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Email, or @domain, the custom plan is assigned to",
    )

    # Relationships
    upgrade_requests: Mapped[List["PlanUpgradeRequest"]] = relationship(
        "PlanUpgradeRequest",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="PlanUpgradeRequest.created_at",
    )

    def __repr__(self) -> str:
        return f"<SubscriptionPlan(id={self.id}, plan_name={self.plan_name}, status={self.status})>"

    @property
    def is_active(self) -> bool:
        return self.status == PlanStatus.ACTIVE

    def normalize(self) -> None:
        """
        Apply the plan invariants before persisting.

        Raises:
            ValueError: if max_beds_allowed is below base_bed_count
        """
        if self.max_beds_allowed is not None and self.max_beds_allowed < self.base_bed_count:
            raise ValueError("Maximum beds allowed cannot be less than base bed count")

        if not self.allow_multiple_branches:
            self.branch_count = 1
            self.cost_per_branch = Decimal("0")
            self.beds_per_branch = None
        elif self.beds_per_branch is None:
            self.beds_per_branch = self.base_bed_count

    def get_module_grants(self) -> List[ModuleGrant]:
        return [ModuleGrant.model_validate(raw) for raw in (self.modules or [])]

    def set_module_grants(self, grants: List[ModuleGrant]) -> None:
        self.modules = [grant.model_dump(mode="json") for grant in grants]

    def get_features(self) -> List[PlanFeature]:
        return [PlanFeature.model_validate(raw) for raw in (self.features or [])]

    def set_features(self, features: List[PlanFeature]) -> None:
        self.features = [feature.model_dump(mode="json") for feature in features]

    def get_module_grant(self, module: ModuleName) -> Optional[ModuleGrant]:
        for grant in self.get_module_grants():
            if grant.module_name == module:
                return grant
        return None

    def has_module(self, module_name: str) -> bool:
        """Module is granted and enabled."""
        return any(
            raw.get("module_name") == module_name and raw.get("enabled", False)
            for raw in (self.modules or [])
        )

    def has_feature(self, feature_name: str) -> bool:
        """Feature is listed and enabled."""
        return any(
            raw.get("name") == feature_name and raw.get("enabled", False)
            for raw in (self.features or [])
        )
