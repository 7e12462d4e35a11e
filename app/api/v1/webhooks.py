"""
Payment gateway webhook.

The signature is computed over the exact bytes received, so the body
is read raw and parsed only after verification. Handled outcomes
answer 200 so the gateway stops retrying; only a bad signature or an
infrastructure failure gets an error status.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_reconciliation_service
from app.api.responses import to_response
from app.services.base import ErrorCode
from app.services.subscription import PaymentReconciliationService
from app.services.subscription.webhook_signature import SIGNATURE_HEADER

router = APIRouter(prefix="/payments", tags=["Payments"])

RETRYABLE_CODES = {
    ErrorCode.INVALID_SIGNATURE,
    ErrorCode.TRANSIENT_ERROR,
    ErrorCode.INTERNAL_ERROR,
}


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    signature: Optional[str] = Header(None, alias=SIGNATURE_HEADER),
    service: PaymentReconciliationService = Depends(get_reconciliation_service),
) -> JSONResponse:
    raw_body = await request.body()
    result = await run_in_threadpool(service.handle_webhook, raw_body, signature)

    if result.is_success or result.error.code not in RETRYABLE_CODES:
        return to_response(result, status_code=status.HTTP_200_OK)
    return to_response(result)
