"""
ServiceResult to HTTP mapping.

Services never raise across their boundary; routes hand the result to
``to_response`` which picks the status code from the error code.
"""

from typing import Dict, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.services.base import ErrorCode, ServiceResult

STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_SIGNATURE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.BUSINESS_RULE_VIOLATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.INSUFFICIENT_PERMISSIONS: status.HTTP_403_FORBIDDEN,
    ErrorCode.QUOTA_EXCEEDED: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.NO_ACTIVE_SUBSCRIPTION: status.HTTP_404_NOT_FOUND,
    ErrorCode.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_HAS_ACTIVE_SUBSCRIPTION: status.HTTP_409_CONFLICT,
    ErrorCode.TRIAL_USED_BEFORE: status.HTTP_409_CONFLICT,
    ErrorCode.TRIAL_EXPIRED: status.HTTP_409_CONFLICT,
    ErrorCode.TRIAL_CANCELLED: status.HTTP_409_CONFLICT,
    ErrorCode.TRANSIENT_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(result: ServiceResult, success_status: int = status.HTTP_200_OK) -> int:
    if result.is_success:
        return success_status
    return STATUS_BY_CODE.get(result.error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def to_response(
    result: ServiceResult,
    success_status: int = status.HTTP_200_OK,
    status_code: Optional[int] = None,
) -> JSONResponse:
    """Render ``result.to_dict()`` with the mapped (or forced) status code."""
    return JSONResponse(
        status_code=status_code or status_for(result, success_status),
        content=jsonable_encoder(result.to_dict()),
    )
