"""
Enumerations shared by models, schemas and services.
"""

from enum import Enum

__all__ = [
    "UserRole",
    "BillingCycle",
    "PlanStatus",
    "SubscriptionStatus",
    "PaymentStatus",
    "PaymentEventStatus",
    "UpgradeRequestStatus",
    "PlanTier",
]


class UserRole(str, Enum):
    """Caller roles relevant to plan visibility."""

    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    USER = "user"


class BillingCycle(str, Enum):
    """
    Billing cycle of a subscription period.

    Plans are sold monthly or annually; ``TRIAL`` only ever appears on
    subscription records.
    """

    MONTHLY = "monthly"
    ANNUAL = "annual"
    TRIAL = "trial"


class PlanStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle states."""

    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    UPGRADED = "upgraded"
    DOWNGRADED = "downgraded"

    @property
    def is_open(self) -> bool:
        return self in (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentEventStatus(str, Enum):
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class UpgradeRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PlanTier(str, Enum):
    """Price bands used when presenting plans side by side."""

    BASIC = "basic"
    STANDARD = "standard"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"
