"""
Subscription schemas package.

- Plan definitions and module grants
- Cost breakdowns and plan comparison
- Entitlement verdicts
- User subscription state and requests
- Payment gateway webhooks and payment intents
"""

from app.schemas.subscription.plan_modules import (
    CrudAction,
    CrudPermission,
    ModuleGrant,
    ModuleName,
    PlanFeature,
    full_access_grants,
    submodules_for,
)
from app.schemas.subscription.plan import (
    PlanCreate,
    PlanResponse,
    PlanStatistics,
    PlanUpdate,
    PlanViewer,
)
from app.schemas.subscription.cost import (
    CostBreakdown,
    CostRequest,
    PlanComparison,
    PlanComparisonEntry,
    UpgradeCostQuote,
)
from app.schemas.subscription.entitlement import EntitlementDecision, QuotaKind
from app.schemas.subscription.user_subscription import (
    CancelRequest,
    ChangePlanRequest,
    RestrictionSet,
    SubscribeRequest,
    SubscriptionResponse,
    SubscriptionStatistics,
    UpgradeRequestCreate,
    UpgradeRequestDecision,
    UpgradeRequestResponse,
    UsageUpdate,
)
from app.schemas.subscription.payment_webhook import (
    AddonIntent,
    ChargeIntent,
    PaymentIntent,
    SubscriptionIntent,
    WebhookEnvelope,
    parse_payment_intent,
)

__all__ = [
    "CrudAction",
    "CrudPermission",
    "ModuleGrant",
    "ModuleName",
    "PlanFeature",
    "full_access_grants",
    "submodules_for",
    "PlanCreate",
    "PlanResponse",
    "PlanStatistics",
    "PlanUpdate",
    "PlanViewer",
    "CostBreakdown",
    "CostRequest",
    "PlanComparison",
    "PlanComparisonEntry",
    "UpgradeCostQuote",
    "EntitlementDecision",
    "QuotaKind",
    "CancelRequest",
    "ChangePlanRequest",
    "RestrictionSet",
    "SubscribeRequest",
    "SubscriptionResponse",
    "SubscriptionStatistics",
    "UpgradeRequestCreate",
    "UpgradeRequestDecision",
    "UpgradeRequestResponse",
    "UsageUpdate",
    "AddonIntent",
    "ChargeIntent",
    "PaymentIntent",
    "SubscriptionIntent",
    "WebhookEnvelope",
    "parse_payment_intent",
]
