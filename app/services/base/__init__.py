"""
Base services module for the billing core.

All services follow consistent patterns for:
- Result handling via ServiceResult
- Error management and logging
- Transaction safety
"""

from app.services.base.service_result import (
    ServiceResult,
    ServiceError,
    ErrorCode,
    ErrorSeverity,
)

from app.services.base.base_service import BaseService

__all__ = [
    "ServiceResult",
    "ServiceError",
    "ErrorCode",
    "ErrorSeverity",
    "BaseService",
]
