"""
Subscription services.

- Plan catalog and pricing
- Lifecycle state machine (trial, active, expired, cancelled, upgraded, downgraded)
- Entitlement checks for rooms, beds, modules and features
- Payment webhook reconciliation
"""

from app.services.subscription.cost_calculator import calculate_cost, get_plan_tier, validate_counts
from app.services.subscription.entitlement_service import EntitlementService, bed_ceiling, room_ceiling
from app.services.subscription.payment_reconciliation_service import PaymentReconciliationService
from app.services.subscription.plan_catalog_service import PlanCatalogService
from app.services.subscription.subscription_lifecycle_service import (
    ALLOWED_TRANSITIONS,
    SubscriptionLifecycleService,
    can_transition,
    period_end,
)
from app.services.subscription.webhook_signature import (
    SIGNATURE_HEADER,
    compute_signature,
    verify_signature,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "EntitlementService",
    "PaymentReconciliationService",
    "PlanCatalogService",
    "SIGNATURE_HEADER",
    "SubscriptionLifecycleService",
    "bed_ceiling",
    "calculate_cost",
    "can_transition",
    "compute_signature",
    "get_plan_tier",
    "period_end",
    "room_ceiling",
    "validate_counts",
    "verify_signature",
]
