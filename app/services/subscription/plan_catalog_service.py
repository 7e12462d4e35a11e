"""
Plan catalog service: plan definitions, pricing, visibility and
custom-plan upgrade requests.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.exceptions import EntityAlreadyExistsError
from app.models.base.types import utc_now
from app.models.subscription.subscription_plan import SubscriptionPlan
from app.models.subscription.upgrade_request import PlanUpgradeRequest
from app.repositories.subscription import (
    PlanUpgradeRequestRepository,
    SubscriptionPlanRepository,
    UserSubscriptionRepository,
)
from app.schemas.common.enums import PlanStatus, PlanTier, UpgradeRequestStatus
from app.schemas.subscription.cost import (
    CostBreakdown,
    PlanComparison,
    PlanComparisonEntry,
    UpgradeCostQuote,
)
from app.schemas.subscription.plan import (
    PlanCreate,
    PlanResponse,
    PlanStatistics,
    PlanUpdate,
    PlanViewer,
)
from app.schemas.subscription.user_subscription import (
    UpgradeRequestCreate,
    UpgradeRequestResponse,
)
from app.services.base import BaseService, ErrorCode, ServiceResult
from app.services.common.errors import ValidationError
from app.services.subscription.constants import (
    DUPLICATE_PLAN_SUFFIX,
    ERROR_NOT_CUSTOM_PLAN,
    ERROR_PENDING_REQUEST_EXISTS,
    ERROR_PLAN_NAME_TAKEN,
    ERROR_PLAN_NOT_ACTIVE,
    ERROR_PLAN_NOT_FOUND,
    ERROR_REQUEST_ALREADY_RESOLVED,
    ERROR_REQUEST_NOT_FOUND,
    SUCCESS_COST_CALCULATED,
    SUCCESS_PLAN_ARCHIVED,
    SUCCESS_PLAN_CREATED,
    SUCCESS_PLAN_DELETED,
    SUCCESS_PLAN_DUPLICATED,
    SUCCESS_PLAN_UPDATED,
    SUCCESS_REQUEST_APPROVED,
    SUCCESS_REQUEST_CREATED,
    SUCCESS_REQUEST_REJECTED,
)
from app.services.subscription.cost_calculator import calculate_cost, get_plan_tier


# Columns copied by duplicate_plan; counters and flags are reset.
COPYABLE_PLAN_FIELDS = (
    "plan_description",
    "billing_cycle",
    "base_price",
    "annual_discount",
    "top_up_price_per_bed",
    "setup_fee",
    "base_bed_count",
    "max_beds_allowed",
    "max_rooms_allowed",
    "allow_multiple_branches",
    "branch_count",
    "beds_per_branch",
    "cost_per_branch",
    "features",
    "modules",
    "trial_period_days",
    "is_custom_plan",
    "assigned_property_id",
    "assigned_email",
)


class PlanCatalogService(BaseService[SubscriptionPlan, SubscriptionPlanRepository]):
    """
    Plan catalog operations.

    - Plan CRUD with invariant normalization
    - Cost calculation, comparison and upgrade quotes
    - Role and assignment aware plan visibility
    - Upgrade requests against custom plans
    """

    def __init__(
        self,
        repository: SubscriptionPlanRepository,
        db_session: Session,
        upgrade_request_repository: Optional[PlanUpgradeRequestRepository] = None,
        subscription_repository: Optional[UserSubscriptionRepository] = None,
    ):
        super().__init__(repository, db_session)
        self.upgrade_requests = upgrade_request_repository or PlanUpgradeRequestRepository(db_session)
        self.subscriptions = subscription_repository or UserSubscriptionRepository(db_session)

    # =========================================================================
    # Pricing
    # =========================================================================

    def calculate_cost(
        self,
        plan_id: str,
        bed_count: int,
        branch_count: int = 1,
    ) -> ServiceResult[CostBreakdown]:
        """
        Cost breakdown for ``bed_count`` beds and ``branch_count`` branches.

        Only active plans can be priced. Validation failures carry the
        offending field.
        """
        try:
            plan = self.repository.find_by_id(plan_id)
            if plan is None:
                return ServiceResult.not_found("SubscriptionPlan", plan_id)
            if not plan.is_active:
                return ServiceResult.validation_failure(ERROR_PLAN_NOT_ACTIVE, field="plan_id")

            breakdown = calculate_cost(plan, bed_count, branch_count)
            return ServiceResult.success(breakdown, message=SUCCESS_COST_CALCULATED)

        except ValidationError as e:
            return ServiceResult.validation_failure(e.message, field=e.field)
        except Exception as e:
            return self._handle_exception(e, "calculate cost", plan_id)

    def compare_plans(
        self,
        plan_ids: List[str],
        bed_count: int,
        branch_count: int = 1,
    ) -> ServiceResult[PlanComparison]:
        """
        Price the same request on several plans, cheapest first.

        Plans that cannot satisfy the request are listed last with the
        reason instead of a breakdown.
        """
        try:
            entries: List[PlanComparisonEntry] = []
            for plan_id in dict.fromkeys(plan_ids):
                plan = self.repository.find_by_id(plan_id)
                if plan is None:
                    entries.append(
                        PlanComparisonEntry(plan_id=plan_id, plan_name="", error=ERROR_PLAN_NOT_FOUND)
                    )
                    continue
                try:
                    breakdown = calculate_cost(plan, bed_count, branch_count)
                except ValidationError as e:
                    entries.append(
                        PlanComparisonEntry(plan_id=plan.id, plan_name=plan.plan_name, error=e.message)
                    )
                    continue
                entries.append(
                    PlanComparisonEntry(
                        plan_id=plan.id,
                        plan_name=plan.plan_name,
                        breakdown=breakdown,
                        tier=get_plan_tier(breakdown.total_monthly_price),
                    )
                )

            entries.sort(
                key=lambda entry: (
                    not entry.is_eligible,
                    entry.breakdown.total_monthly_price if entry.breakdown else Decimal("0"),
                )
            )
            return ServiceResult.success(
                PlanComparison(bed_count=bed_count, branch_count=branch_count, plans=entries)
            )
        except Exception as e:
            return self._handle_exception(e, "compare plans")

    def calculate_upgrade_cost(
        self,
        current_plan_id: str,
        new_plan_id: str,
        bed_count: int,
        branch_count: int = 1,
        current_bed_count: Optional[int] = None,
        current_branch_count: Optional[int] = None,
    ) -> ServiceResult[UpgradeCostQuote]:
        """
        Quote moving from one plan to another.

        The current side defaults to the same bed/branch counts as the
        proposed side.
        """
        try:
            current_plan = self.repository.find_by_id(current_plan_id)
            if current_plan is None:
                return ServiceResult.not_found("SubscriptionPlan", current_plan_id)
            new_plan = self.repository.find_by_id(new_plan_id)
            if new_plan is None:
                return ServiceResult.not_found("SubscriptionPlan", new_plan_id)

            current = calculate_cost(
                current_plan,
                current_bed_count or max(bed_count, current_plan.base_bed_count),
                current_branch_count or 1,
            )
            proposed = calculate_cost(new_plan, bed_count, branch_count)
            difference = proposed.total_monthly_price - current.total_monthly_price

            return ServiceResult.success(
                UpgradeCostQuote(
                    current=current,
                    proposed=proposed,
                    price_difference=difference,
                    is_upgrade=difference > 0,
                )
            )
        except ValidationError as e:
            return ServiceResult.validation_failure(e.message, field=e.field)
        except Exception as e:
            return self._handle_exception(e, "calculate upgrade cost", new_plan_id)

    @staticmethod
    def get_plan_tier(monthly_total: Decimal) -> PlanTier:
        return get_plan_tier(monthly_total)

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    def create_plan(
        self,
        request: PlanCreate,
        created_by: Optional[str] = None,
    ) -> ServiceResult[PlanResponse]:
        try:
            self._logger.info(f"Creating subscription plan: {request.plan_name}")

            if self.repository.find_by_name(request.plan_name) is not None:
                return ServiceResult.conflict(ERROR_PLAN_NAME_TAKEN, {"plan_name": request.plan_name})

            plan = SubscriptionPlan(
                **request.model_dump(exclude={"features", "modules"}),
                created_by=created_by,
                updated_by=created_by,
            )
            plan.set_features(request.features)
            plan.set_module_grants(request.modules)
            plan.normalize()

            self.repository.create(plan)
            self.db.commit()

            self._logger.info(f"Subscription plan created: {plan.id}")
            return ServiceResult.success(PlanResponse.model_validate(plan), message=SUCCESS_PLAN_CREATED)

        except (IntegrityError, EntityAlreadyExistsError):
            self.db.rollback()
            return ServiceResult.conflict(ERROR_PLAN_NAME_TAKEN, {"plan_name": request.plan_name})
        except ValueError as e:
            self.db.rollback()
            return ServiceResult.validation_failure(str(e))
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "create subscription plan")

    def update_plan(
        self,
        plan_id: str,
        request: PlanUpdate,
        updated_by: Optional[str] = None,
    ) -> ServiceResult[PlanResponse]:
        try:
            self._logger.info(f"Updating subscription plan: {plan_id}")

            plan = self.repository.find_by_id(plan_id)
            if plan is None:
                return ServiceResult.not_found("SubscriptionPlan", plan_id)

            changes = request.model_dump(exclude_unset=True, exclude={"features", "modules"})
            new_name = changes.get("plan_name")
            if new_name and new_name != plan.plan_name:
                if self.repository.find_by_name(new_name) is not None:
                    return ServiceResult.conflict(ERROR_PLAN_NAME_TAKEN, {"plan_name": new_name})

            for key, value in changes.items():
                setattr(plan, key, value)
            if request.features is not None:
                plan.set_features(request.features)
            if request.modules is not None:
                plan.set_module_grants(request.modules)
            plan.updated_by = updated_by

            plan.normalize()
            self.repository.flush()
            self.db.commit()

            return ServiceResult.success(PlanResponse.model_validate(plan), message=SUCCESS_PLAN_UPDATED)

        except (IntegrityError, EntityAlreadyExistsError):
            self.db.rollback()
            return ServiceResult.conflict(ERROR_PLAN_NAME_TAKEN)
        except ValueError as e:
            self.db.rollback()
            return ServiceResult.validation_failure(str(e))
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "update subscription plan", plan_id)

    def get_plan(self, plan_id: str) -> ServiceResult[PlanResponse]:
        try:
            plan = self.repository.find_by_id(plan_id)
            if plan is None:
                return ServiceResult.not_found("SubscriptionPlan", plan_id)
            return ServiceResult.success(PlanResponse.model_validate(plan))
        except Exception as e:
            return self._handle_exception(e, "get subscription plan", plan_id)

    def delete_plan(self, plan_id: str) -> ServiceResult[Dict[str, Any]]:
        """
        Delete a plan, or archive it when subscriptions still reference it.
        """
        try:
            plan = self.repository.find_by_id(plan_id)
            if plan is None:
                return ServiceResult.not_found("SubscriptionPlan", plan_id)

            referenced = self.subscriptions.count({"subscription_plan_id": plan_id}) > 0
            if plan.subscribed_count > 0 or referenced:
                plan.status = PlanStatus.ARCHIVED
                self.db.commit()
                self._logger.info(
                    f"Plan {plan_id} archived instead of deleted "
                    f"({plan.subscribed_count} open subscriptions)"
                )
                return ServiceResult.success(
                    {"plan_id": plan_id, "archived": True, "deleted": False},
                    message=SUCCESS_PLAN_ARCHIVED,
                )

            self.repository.delete(plan)
            self.db.commit()
            self._logger.info(f"Plan {plan_id} deleted")
            return ServiceResult.success(
                {"plan_id": plan_id, "archived": False, "deleted": True},
                message=SUCCESS_PLAN_DELETED,
            )
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "delete subscription plan", plan_id)

    def duplicate_plan(self, plan_id: str, created_by: Optional[str] = None) -> ServiceResult[PlanResponse]:
        try:
            source = self.repository.find_by_id(plan_id)
            if source is None:
                return ServiceResult.not_found("SubscriptionPlan", plan_id)

            copy_name = f"{source.plan_name}{DUPLICATE_PLAN_SUFFIX}"
            if self.repository.find_by_name(copy_name) is not None:
                return ServiceResult.conflict(ERROR_PLAN_NAME_TAKEN, {"plan_name": copy_name})

            duplicate = SubscriptionPlan(
                plan_name=copy_name,
                status=PlanStatus.INACTIVE,
                subscribed_count=0,
                is_popular=False,
                is_recommended=False,
                created_by=created_by,
                updated_by=created_by,
                **{field: getattr(source, field) for field in COPYABLE_PLAN_FIELDS},
            )
            duplicate.normalize()
            self.repository.create(duplicate)
            self.db.commit()

            return ServiceResult.success(PlanResponse.model_validate(duplicate), message=SUCCESS_PLAN_DUPLICATED)
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "duplicate subscription plan", plan_id)

    def toggle_popular(self, plan_id: str) -> ServiceResult[PlanResponse]:
        return self._toggle_flag(plan_id, "is_popular", "popular")

    def toggle_recommended(self, plan_id: str) -> ServiceResult[PlanResponse]:
        return self._toggle_flag(plan_id, "is_recommended", "recommended")

    def _toggle_flag(self, plan_id: str, attribute: str, label: str) -> ServiceResult[PlanResponse]:
        try:
            plan = self.repository.find_by_id(plan_id)
            if plan is None:
                return ServiceResult.not_found("SubscriptionPlan", plan_id)

            value = not getattr(plan, attribute)
            setattr(plan, attribute, value)
            self.db.commit()

            verb = "marked" if value else "unmarked"
            return ServiceResult.success(
                PlanResponse.model_validate(plan),
                message=f"Plan {verb} as {label}",
            )
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, f"toggle {label} flag", plan_id)

    def get_plan_statistics(self) -> ServiceResult[PlanStatistics]:
        try:
            by_status = self.repository.count_by_status()
            stats = PlanStatistics(
                total_plans=sum(by_status.values()),
                by_status=by_status,
                custom_plans=self.repository.count_custom(),
                total_subscribers=self.repository.total_subscribers(),
            )
            return ServiceResult.success(stats)
        except Exception as e:
            return self._handle_exception(e, "get plan statistics")

    # =========================================================================
    # Visibility
    # =========================================================================

    def get_visible_plans(self, viewer: PlanViewer) -> ServiceResult[List[PlanResponse]]:
        """
        Plans the viewer may pick from.

        Superadmins see everything. Everyone else sees active global
        plans plus active custom plans assigned to them. The post-trial
        fallback plan is never offered, and the trial plan (when active)
        leads the list exactly once.
        """
        try:
            if viewer.is_superadmin:
                plans = self.repository.list_all()
                return ServiceResult.success([PlanResponse.model_validate(p) for p in plans])

            trial_plan: Optional[SubscriptionPlan] = None
            visible: List[SubscriptionPlan] = []
            for plan in self.repository.list_active():
                if plan.plan_name == settings.TRIAL_EXPIRED_PLAN_NAME:
                    continue
                if plan.plan_name == settings.TRIAL_PLAN_NAME:
                    trial_plan = plan
                    continue
                if plan.is_custom_plan and not self._is_assigned_to(plan, viewer):
                    continue
                visible.append(plan)

            if trial_plan is not None:
                visible.insert(0, trial_plan)

            return ServiceResult.success([PlanResponse.model_validate(p) for p in visible])
        except Exception as e:
            return self._handle_exception(e, "get visible plans")

    @staticmethod
    def _is_assigned_to(plan: SubscriptionPlan, viewer: PlanViewer) -> bool:
        if plan.assigned_property_id and viewer.property_id == plan.assigned_property_id:
            return True

        assigned = (plan.assigned_email or "").strip().lower()
        email = (viewer.email or "").strip().lower()
        if not assigned or not email:
            return False
        if assigned.startswith("@"):
            return email.endswith(assigned)
        return email == assigned

    # =========================================================================
    # Upgrade requests
    # =========================================================================

    def request_upgrade(
        self,
        plan_id: str,
        requester_id: str,
        request: UpgradeRequestCreate,
    ) -> ServiceResult[UpgradeRequestResponse]:
        try:
            plan = self.repository.find_by_id(plan_id)
            if plan is None:
                return ServiceResult.not_found("SubscriptionPlan", plan_id)
            if not plan.is_custom_plan:
                return ServiceResult.validation_failure(ERROR_NOT_CUSTOM_PLAN, field="plan_id")
            if self.upgrade_requests.find_pending(plan_id, requester_id) is not None:
                return ServiceResult.conflict(ERROR_PENDING_REQUEST_EXISTS, {"plan_id": plan_id})

            upgrade_request = PlanUpgradeRequest(
                plan_id=plan_id,
                requester_id=requester_id,
                requested_beds=request.requested_beds,
                requested_branches=request.requested_branches,
                message=request.message,
                status=UpgradeRequestStatus.PENDING,
            )
            self.upgrade_requests.create(upgrade_request)
            self.db.commit()

            self._logger.info(f"Upgrade request {upgrade_request.id} raised on plan {plan_id} by {requester_id}")
            return ServiceResult.success(
                UpgradeRequestResponse.model_validate(upgrade_request),
                message=SUCCESS_REQUEST_CREATED,
            )
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "request plan upgrade", plan_id)

    def respond_to_upgrade_request(
        self,
        request_id: str,
        responder_id: str,
        approve: bool,
        response_message: Optional[str] = None,
    ) -> ServiceResult[UpgradeRequestResponse]:
        """
        Approve or reject a pending request; resolved requests never reopen.

        Approval raises the plan's bed and branch ceilings to what was asked.
        """
        try:
            upgrade_request = self.upgrade_requests.find_by_id(request_id)
            if upgrade_request is None:
                return ServiceResult.not_found("PlanUpgradeRequest", request_id)
            if not upgrade_request.is_pending:
                return ServiceResult.error_result(
                    ErrorCode.INVALID_STATE,
                    ERROR_REQUEST_ALREADY_RESOLVED.format(
                        status=UpgradeRequestStatus(upgrade_request.status).value
                    ),
                )

            upgrade_request.status = (
                UpgradeRequestStatus.APPROVED if approve else UpgradeRequestStatus.REJECTED
            )
            upgrade_request.responded_by = responder_id
            upgrade_request.responded_at = utc_now()
            upgrade_request.response_message = response_message

            if approve:
                self._apply_upgrade(upgrade_request.plan, upgrade_request)

            self.db.commit()
            self._logger.info(
                f"Upgrade request {request_id} {upgrade_request.status.value} by {responder_id}"
            )
            return ServiceResult.success(
                UpgradeRequestResponse.model_validate(upgrade_request),
                message=SUCCESS_REQUEST_APPROVED if approve else SUCCESS_REQUEST_REJECTED,
            )
        except ValueError as e:
            self.db.rollback()
            return ServiceResult.validation_failure(str(e))
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "respond to upgrade request", request_id)

    @staticmethod
    def _apply_upgrade(plan: SubscriptionPlan, upgrade_request: PlanUpgradeRequest) -> None:
        plan.base_bed_count = max(plan.base_bed_count, upgrade_request.requested_beds)
        if plan.max_beds_allowed is not None and plan.max_beds_allowed < plan.base_bed_count:
            plan.max_beds_allowed = plan.base_bed_count
        if upgrade_request.requested_branches > 1:
            plan.allow_multiple_branches = True
            plan.branch_count = max(plan.branch_count, upgrade_request.requested_branches)
        plan.normalize()
