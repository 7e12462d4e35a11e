"""
Module grant schemas.

A plan grants access per module; each module has a closed set of
submodules and each submodule carries a CRUD permission record.
Unknown module or submodule names fail validation instead of being
carried around as free-form keys.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Type

from pydantic import Field, model_validator

from app.schemas.common.base import BaseSchema

__all__ = [
    "ModuleName",
    "CrudAction",
    "MODULE_SUBMODULES",
    "CrudPermission",
    "ModuleGrant",
    "PlanFeature",
    "submodules_for",
    "full_access_grants",
]


class ModuleName(str, Enum):
    RESIDENT_MANAGEMENT = "resident_management"
    PAYMENT_TRACKING = "payment_tracking"
    ROOM_ALLOCATION = "room_allocation"
    QR_CODE_PAYMENTS = "qr_code_payments"
    TICKET_SYSTEM = "ticket_system"
    ANALYTICS_REPORTS = "analytics_reports"
    BULK_UPLOAD = "bulk_upload"
    EMAIL_NOTIFICATIONS = "email_notifications"
    SMS_NOTIFICATIONS = "sms_notifications"
    MULTI_BRANCH = "multi_branch"
    CUSTOM_REPORTS = "custom_reports"
    API_ACCESS = "api_access"
    MOBILE_APP = "mobile_app"
    ADVANCED_ANALYTICS = "advanced_analytics"


class CrudAction(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class ResidentSubmodule(str, Enum):
    RESIDENTS = "residents"
    ONBOARDING = "onboarding"
    OFFBOARDING = "offboarding"
    ROOM_SWITCHING = "room_switching"
    MOVED_OUT = "moved_out"


class PaymentTrackingSubmodule(str, Enum):
    PAYMENTS = "payments"
    PAYMENT_HISTORY = "payment_history"
    PAYMENT_REPORTS = "payment_reports"


class RoomAllocationSubmodule(str, Enum):
    ROOMS = "rooms"
    ROOM_AVAILABILITY = "room_availability"
    ROOM_ASSIGNMENTS = "room_assignments"


class QrPaymentSubmodule(str, Enum):
    QR_GENERATION = "qr_generation"
    QR_SCANNING = "qr_scanning"
    PAYMENT_PROCESSING = "payment_processing"


class TicketSubmodule(str, Enum):
    TICKETS = "tickets"
    TICKET_CATEGORIES = "ticket_categories"
    TICKET_PRIORITIES = "ticket_priorities"


class AnalyticsSubmodule(str, Enum):
    DASHBOARD = "dashboard"
    REPORTS = "reports"
    CHARTS = "charts"
    EXPORTS = "exports"


class BulkUploadSubmodule(str, Enum):
    FILE_UPLOAD = "file_upload"
    DATA_VALIDATION = "data_validation"
    BULK_IMPORT = "bulk_import"


class EmailSubmodule(str, Enum):
    EMAIL_TEMPLATES = "email_templates"
    EMAIL_SENDING = "email_sending"
    EMAIL_HISTORY = "email_history"


class SmsSubmodule(str, Enum):
    SMS_TEMPLATES = "sms_templates"
    SMS_SENDING = "sms_sending"
    SMS_HISTORY = "sms_history"


class MultiBranchSubmodule(str, Enum):
    BRANCH_MANAGEMENT = "branch_management"
    BRANCH_SWITCHING = "branch_switching"
    BRANCH_REPORTS = "branch_reports"


class CustomReportsSubmodule(str, Enum):
    REPORT_BUILDER = "report_builder"
    CUSTOM_QUERIES = "custom_queries"
    REPORT_SCHEDULING = "report_scheduling"


class ApiAccessSubmodule(str, Enum):
    API_KEYS = "api_keys"
    API_ENDPOINTS = "api_endpoints"
    API_LOGS = "api_logs"


class MobileAppSubmodule(str, Enum):
    MOBILE_SYNC = "mobile_sync"
    PUSH_NOTIFICATIONS = "push_notifications"
    OFFLINE_MODE = "offline_mode"


class AdvancedAnalyticsSubmodule(str, Enum):
    ADVANCED_CHARTS = "advanced_charts"
    PREDICTIVE_ANALYTICS = "predictive_analytics"
    DATA_INSIGHTS = "data_insights"


MODULE_SUBMODULES: Dict[ModuleName, Type[Enum]] = {
    ModuleName.RESIDENT_MANAGEMENT: ResidentSubmodule,
    ModuleName.PAYMENT_TRACKING: PaymentTrackingSubmodule,
    ModuleName.ROOM_ALLOCATION: RoomAllocationSubmodule,
    ModuleName.QR_CODE_PAYMENTS: QrPaymentSubmodule,
    ModuleName.TICKET_SYSTEM: TicketSubmodule,
    ModuleName.ANALYTICS_REPORTS: AnalyticsSubmodule,
    ModuleName.BULK_UPLOAD: BulkUploadSubmodule,
    ModuleName.EMAIL_NOTIFICATIONS: EmailSubmodule,
    ModuleName.SMS_NOTIFICATIONS: SmsSubmodule,
    ModuleName.MULTI_BRANCH: MultiBranchSubmodule,
    ModuleName.CUSTOM_REPORTS: CustomReportsSubmodule,
    ModuleName.API_ACCESS: ApiAccessSubmodule,
    ModuleName.MOBILE_APP: MobileAppSubmodule,
    ModuleName.ADVANCED_ANALYTICS: AdvancedAnalyticsSubmodule,
}


def submodules_for(module: ModuleName) -> List[str]:
    """Names of the submodules that belong to ``module``."""
    return [member.value for member in MODULE_SUBMODULES[module]]


class CrudPermission(BaseSchema):
    create: bool = False
    read: bool = False
    update: bool = False
    delete: bool = False

    def allows(self, action: CrudAction) -> bool:
        return bool(getattr(self, action.value))


class ModuleGrant(BaseSchema):
    """
    Access grant for one module.

    ``permissions`` maps submodule name to its CRUD record. Keys are
    validated against the module's own submodule set.
    """

    module_name: ModuleName
    enabled: bool = True
    limit: Optional[int] = Field(None, ge=0, description="Usage cap (NULL = unlimited)")
    permissions: Dict[str, CrudPermission] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_submodules(self) -> "ModuleGrant":
        allowed = set(submodules_for(self.module_name))
        unknown = sorted(set(self.permissions) - allowed)
        if unknown:
            raise ValueError(
                f"Unknown submodules for {self.module_name.value}: {', '.join(unknown)}"
            )
        return self

    def allows(self, submodule: str, action: CrudAction) -> bool:
        if not self.enabled:
            return False
        permission = self.permissions.get(submodule)
        return permission is not None and permission.allows(action)


class PlanFeature(BaseSchema):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    enabled: bool = True


def full_access_grants(limits: Optional[Dict[ModuleName, int]] = None) -> List[ModuleGrant]:
    """Every module enabled with full CRUD on every submodule."""
    limits = limits or {}
    full = CrudPermission(create=True, read=True, update=True, delete=True)
    return [
        ModuleGrant(
            module_name=module,
            enabled=True,
            limit=limits.get(module),
            permissions={name: full for name in submodules_for(module)},
        )
        for module in ModuleName
    ]
