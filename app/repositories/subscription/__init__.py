"""Subscription repositories."""

from app.repositories.subscription.subscription_plan_repository import SubscriptionPlanRepository
from app.repositories.subscription.user_subscription_repository import UserSubscriptionRepository
from app.repositories.subscription.payment_event_repository import PaymentEventRepository
from app.repositories.subscription.upgrade_request_repository import PlanUpgradeRequestRepository

__all__ = [
    "SubscriptionPlanRepository",
    "UserSubscriptionRepository",
    "PaymentEventRepository",
    "PlanUpgradeRequestRepository",
]
