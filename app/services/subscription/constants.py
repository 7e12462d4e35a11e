"""
Subscription service constants and messages.
"""

from decimal import Decimal
from typing import Final

# Plan tiers (monthly total thresholds)
TIER_BASIC_BELOW: Final[Decimal] = Decimal("1000")
TIER_STANDARD_BELOW: Final[Decimal] = Decimal("2500")
TIER_PROFESSIONAL_BELOW: Final[Decimal] = Decimal("5000")

MONTHS_PER_YEAR: Final[int] = 12
DUPLICATE_PLAN_SUFFIX: Final[str] = " (Copy)"

# Restrictions applied when the user holds no subscription at all
FREE_MAX_BEDS: Final[int] = 5
FREE_MAX_BRANCHES: Final[int] = 1

STATISTICS_EXPIRY_WINDOW_DAYS: Final[int] = 30

# Cost validation messages (checked in this order)
ERROR_BED_COUNT_NOT_POSITIVE: Final[str] = "Bed count must be positive"
ERROR_BRANCH_COUNT_NOT_POSITIVE: Final[str] = "Branch count must be positive"
ERROR_BELOW_BASE_BEDS: Final[str] = "Bed count cannot be less than base bed count ({base})"
ERROR_BRANCHES_NOT_ALLOWED: Final[str] = "This plan does not allow multiple branches"
ERROR_BRANCH_LIMIT: Final[str] = "Branch count exceeds maximum allowed ({limit})"
ERROR_BED_LIMIT: Final[str] = "Bed count exceeds maximum allowed ({limit})"

# Plan catalog
ERROR_PLAN_NOT_FOUND: Final[str] = "Subscription plan not found"
ERROR_PLAN_NAME_TAKEN: Final[str] = "A plan with this name already exists"
ERROR_PLAN_NOT_ACTIVE: Final[str] = "Subscription plan is not active"
ERROR_NOT_CUSTOM_PLAN: Final[str] = "Upgrade requests can only be raised against custom plans"
ERROR_PENDING_REQUEST_EXISTS: Final[str] = "You already have a pending upgrade request for this plan"
ERROR_REQUEST_NOT_FOUND: Final[str] = "Upgrade request not found"
ERROR_REQUEST_ALREADY_RESOLVED: Final[str] = "Upgrade request has already been {status}"
ERROR_TRIAL_PLAN_MISSING: Final[str] = "Free trial plan is not available"

SUCCESS_PLAN_CREATED: Final[str] = "Subscription plan created successfully"
SUCCESS_PLAN_UPDATED: Final[str] = "Subscription plan updated successfully"
SUCCESS_PLAN_DELETED: Final[str] = "Subscription plan deleted successfully"
SUCCESS_PLAN_ARCHIVED: Final[str] = "Plan has active subscribers and was archived instead of deleted"
SUCCESS_PLAN_DUPLICATED: Final[str] = "Subscription plan duplicated successfully"
SUCCESS_COST_CALCULATED: Final[str] = "Cost calculated successfully"
SUCCESS_REQUEST_CREATED: Final[str] = "Upgrade request submitted"
SUCCESS_REQUEST_APPROVED: Final[str] = "Upgrade request approved"
SUCCESS_REQUEST_REJECTED: Final[str] = "Upgrade request rejected"

# Lifecycle
ERROR_ALREADY_SUBSCRIBED: Final[str] = (
    "You already have an active subscription with {days} days remaining"
)
ERROR_TRIAL_USED: Final[str] = "Free trial has already been used"
ERROR_TRIAL_EXPIRED: Final[str] = "Your free trial has expired. Please choose a paid plan"
ERROR_TRIAL_CANCELLED: Final[str] = "Your free trial was cancelled and cannot be reactivated"
ERROR_NO_ACTIVE_SUBSCRIPTION: Final[str] = "No active subscription found"
ERROR_SUBSCRIPTION_NOT_FOUND: Final[str] = "Subscription not found"
ERROR_USAGE_EXCEEDS_TOTALS: Final[str] = "Usage cannot exceed the subscription's contracted totals"
ERROR_EXTEND_DAYS: Final[str] = "Extension must be at least one day"

SUPERSEDED_REASON: Final[str] = "Upgraded/Downgraded to new plan"
TRIAL_EXPIRED_REASON: Final[str] = "Trial period ended"
PERIOD_ENDED_REASON: Final[str] = "Subscription period ended"

SUCCESS_SUBSCRIBED: Final[str] = "Subscription created successfully"
SUCCESS_TRIAL_ACTIVATED: Final[str] = "Free trial activated successfully"
SUCCESS_PLAN_CHANGED: Final[str] = "Subscription plan changed successfully"
SUCCESS_CANCELLED: Final[str] = "Subscription cancelled successfully"
SUCCESS_EXTENDED: Final[str] = "Subscription extended successfully"
SUCCESS_RENEWED: Final[str] = "Subscription renewed successfully"
SUCCESS_RENEWAL_SKIPPED: Final[str] = "Subscription was already renewed"
SUCCESS_EXPIRED: Final[str] = "Subscription expired"
SUCCESS_EXPIRY_SKIPPED: Final[str] = "Subscription already closed"
SUCCESS_EXPIRY_NOT_DUE: Final[str] = "Subscription period has not ended"
SUCCESS_USAGE_UPDATED: Final[str] = "Subscription usage updated"

# Reconciliation
ERROR_MISSING_SIGNATURE: Final[str] = "Missing webhook signature"
ERROR_INVALID_SIGNATURE: Final[str] = "Invalid webhook signature"
ERROR_MALFORMED_PAYLOAD: Final[str] = "Malformed webhook payload"
ERROR_INVALID_NOTES: Final[str] = "Order notes do not describe a known payment"
ERROR_MISSING_PAYMENT: Final[str] = "Webhook payload carries no payment entity"

SUCCESS_WEBHOOK_APPLIED: Final[str] = "Payment applied"
SUCCESS_WEBHOOK_DUPLICATE: Final[str] = "Payment already processed"
SUCCESS_WEBHOOK_FAILURE_RECORDED: Final[str] = "Payment failure recorded"
SUCCESS_WEBHOOK_IGNORED: Final[str] = "Event acknowledged"
SUCCESS_CHARGE_ACKNOWLEDGED: Final[str] = "Payment acknowledged"
