"""
Subscription models package.

Plans, upgrade requests, user subscription periods and the payment
events applied to them.
"""

from app.models.subscription.subscription_plan import SubscriptionPlan
from app.models.subscription.upgrade_request import PlanUpgradeRequest
from app.models.subscription.user_subscription import UserSubscription
from app.models.subscription.payment_event import PaymentEvent

__all__ = [
    "SubscriptionPlan",
    "PlanUpgradeRequest",
    "UserSubscription",
    "PaymentEvent",
]
