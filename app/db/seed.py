"""
Deployment seed for the system plans.

The trial plan and the post-trial fallback plan must exist before any
user can activate a trial. This runs once per deployment (and is safe
to re-run); the lifecycle engine never creates plans on its own.
"""
import logging
from decimal import Decimal
from typing import Dict

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.models.subscription.subscription_plan import SubscriptionPlan
from app.schemas.common.enums import BillingCycle, PlanStatus
from app.schemas.subscription.plan_modules import (
    CrudPermission,
    ModuleGrant,
    ModuleName,
    PlanFeature,
    full_access_grants,
)

logger = logging.getLogger(__name__)

TRIAL_BED_COUNT = 30
TRIAL_BRANCH_COUNT = 2
TRIAL_EXPIRED_BED_COUNT = 5


def build_trial_plan() -> SubscriptionPlan:
    plan = SubscriptionPlan(
        plan_name=settings.TRIAL_PLAN_NAME,
        plan_description="Full access for a limited time. No payment required.",
        billing_cycle=BillingCycle.MONTHLY,
        base_price=Decimal("0"),
        annual_discount=Decimal("0"),
        top_up_price_per_bed=Decimal("0"),
        base_bed_count=TRIAL_BED_COUNT,
        max_beds_allowed=TRIAL_BED_COUNT,
        allow_multiple_branches=True,
        branch_count=TRIAL_BRANCH_COUNT,
        cost_per_branch=Decimal("0"),
        trial_period_days=settings.DEFAULT_TRIAL_DAYS,
        status=PlanStatus.ACTIVE,
    )
    plan.set_module_grants(full_access_grants({ModuleName.MULTI_BRANCH: TRIAL_BRANCH_COUNT}))
    plan.set_features([
        PlanFeature(name="All modules", description="Every module unlocked during the trial"),
        PlanFeature(name="Email support"),
    ])
    plan.normalize()
    return plan


def build_trial_expired_plan() -> SubscriptionPlan:
    read_only = CrudPermission(read=True)
    plan = SubscriptionPlan(
        plan_name=settings.TRIAL_EXPIRED_PLAN_NAME,
        plan_description="Read-only access after the free trial ends.",
        billing_cycle=BillingCycle.MONTHLY,
        base_price=Decimal("0"),
        base_bed_count=TRIAL_EXPIRED_BED_COUNT,
        max_beds_allowed=TRIAL_EXPIRED_BED_COUNT,
        allow_multiple_branches=False,
        status=PlanStatus.ACTIVE,
    )
    plan.set_module_grants([
        ModuleGrant(
            module_name=ModuleName.RESIDENT_MANAGEMENT,
            permissions={"residents": read_only},
        ),
        ModuleGrant(
            module_name=ModuleName.PAYMENT_TRACKING,
            permissions={"payments": read_only},
        ),
        ModuleGrant(
            module_name=ModuleName.ROOM_ALLOCATION,
            permissions={"rooms": read_only},
        ),
    ])
    plan.normalize()
    return plan


def seed_default_plans(session: Session) -> Dict[str, SubscriptionPlan]:
    """Create the trial and trial-expired plans if missing."""
    seeded: Dict[str, SubscriptionPlan] = {}
    for builder in (build_trial_plan, build_trial_expired_plan):
        candidate = builder()
        existing = session.execute(
            select(SubscriptionPlan).where(SubscriptionPlan.plan_name == candidate.plan_name)
        ).scalar_one_or_none()
        if existing is not None:
            seeded[existing.plan_name] = existing
            continue
        session.add(candidate)
        seeded[candidate.plan_name] = candidate
        logger.info(f"Seeded system plan: {candidate.plan_name}")

    session.commit()
    return seeded
