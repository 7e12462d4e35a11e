"""
Outcome type returned by every billing-core service call.

Lifecycle, reconciliation and quota operations never raise across
their public boundary; they return a ServiceResult so batch callers
(cron sweeps, bulk uploads) can keep going past one bad record.
"""

from typing import TypeVar, Generic, Optional, Any, Dict
from dataclasses import dataclass, field as dc_field
from enum import Enum
from datetime import datetime, timezone


class ErrorCode(str, Enum):
    """Machine-readable failure codes; the HTTP layer maps them to status codes."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"

    # Business logic errors
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    INVALID_STATE = "INVALID_STATE"
    CONFLICT = "CONFLICT"

    # Caller and gateway identity
    UNAUTHORIZED = "UNAUTHORIZED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"

    # Subscription lifecycle
    ALREADY_HAS_ACTIVE_SUBSCRIPTION = "ALREADY_HAS_ACTIVE_SUBSCRIPTION"
    TRIAL_USED_BEFORE = "TRIAL_USED_BEFORE"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    TRIAL_CANCELLED = "TRIAL_CANCELLED"
    NO_ACTIVE_SUBSCRIPTION = "NO_ACTIVE_SUBSCRIPTION"

    # Entitlement and reconciliation
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    DUPLICATE_EVENT = "DUPLICATE_EVENT"

    # Database unavailable or timed out; safe to retry
    TRANSIENT_ERROR = "TRANSIENT_ERROR"


class ErrorSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class ServiceError:
    """Why an operation failed, and which input field caused it."""

    code: ErrorCode
    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    field: Optional[str] = None
    timestamp: datetime = dc_field(default_factory=lambda: datetime.now(timezone.utc))


TData = TypeVar("TData")


@dataclass
class ServiceResult(Generic[TData]):
    """
    Success or failure of one service call.

    ``message`` is the human-readable outcome in both cases; on failure
    it repeats ``error.message``. ``metadata`` carries side notes that
    are not part of the payload, such as a replay marker or the status
    a superseded record was closed with.
    """

    is_success: bool
    data: Optional[TData] = None
    error: Optional[ServiceError] = None
    message: Optional[str] = None
    metadata: Dict[str, Any] = dc_field(default_factory=dict)

    # ------------------------------------------------------------------ #
    # Constructors
    # ------------------------------------------------------------------ #

    @classmethod
    def success(
        cls,
        data: Optional[TData] = None,
        message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "ServiceResult[TData]":
        return cls(is_success=True, data=data, message=message, metadata=dict(metadata or {}))

    @classmethod
    def failure(cls, error: ServiceError) -> "ServiceResult[TData]":
        return cls(is_success=False, error=error, message=error.message)

    @classmethod
    def error_result(
        cls,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        field: Optional[str] = None,
    ) -> "ServiceResult[TData]":
        return cls.failure(ServiceError(code, message, severity, details, field))

    @classmethod
    def validation_failure(
        cls,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> "ServiceResult[TData]":
        return cls.error_result(ErrorCode.VALIDATION_ERROR, message, details, ErrorSeverity.WARNING, field)

    @classmethod
    def not_found(cls, resource_type: str, resource_id: Optional[str] = None) -> "ServiceResult[TData]":
        message = f"{resource_type} not found" if not resource_id else f"{resource_type} {resource_id} not found"
        return cls.error_result(
            ErrorCode.NOT_FOUND,
            message,
            {"resource_type": resource_type, "resource_id": resource_id},
            ErrorSeverity.WARNING,
        )

    @classmethod
    def conflict(cls, message: str, details: Optional[Dict[str, Any]] = None) -> "ServiceResult[TData]":
        return cls.error_result(ErrorCode.CONFLICT, message, details)

    @classmethod
    def quota_exceeded(cls, message: str, details: Dict[str, Any]) -> "ServiceResult[TData]":
        """
        Entitlement refusal.

        ``details`` carries the current/max/remaining figures and
        ``requiresUpgrade`` so the caller can render an upgrade prompt.
        """
        return cls.error_result(ErrorCode.QUOTA_EXCEEDED, message, details, ErrorSeverity.INFO)

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def code(self) -> Optional[str]:
        return self.error.code.value if self.error else None

    def add_metadata(self, key: str, value: Any) -> "ServiceResult[TData]":
        self.metadata[key] = value
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape: ``{success, message, data?, code?, details?, field?, metadata?}``."""
        body: Dict[str, Any] = {"success": self.is_success, "message": self.message}

        if self.is_success:
            if self.data is not None:
                body["data"] = self.data
        elif self.error is not None:
            body["code"] = self.error.code.value
            if self.error.details:
                body["details"] = self.error.details
            if self.error.field:
                body["field"] = self.error.field

        if self.metadata:
            body["metadata"] = self.metadata
        return body

    def __bool__(self) -> bool:
        return self.is_success

    def __repr__(self) -> str:
        state = "Success" if self.is_success else f"Failure[{self.code}]"
        return f"ServiceResult({state}: {self.message})" if self.message else f"ServiceResult({state})"


__all__ = [
    "ErrorCode",
    "ErrorSeverity",
    "ServiceError",
    "ServiceResult",
]
