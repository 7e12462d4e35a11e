"""
Subscription endpoints.

Plan browsing and pricing, the caller's current subscription, trial
activation, plan changes, cancellation and the live event socket.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse

from app.api.deps import (
    Caller,
    get_caller,
    get_connection_registry,
    get_lifecycle_service,
    get_plan_catalog_service,
)
from app.api.responses import to_response
from app.core.logging import get_logger
from app.schemas.subscription.cost import CostRequest
from app.schemas.subscription.plan import PlanViewer
from app.schemas.subscription.user_subscription import (
    CancelRequest,
    ChangePlanRequest,
    SubscribeRequest,
)
from app.services.notification import ConnectionRegistry
from app.services.subscription import PlanCatalogService, SubscriptionLifecycleService

logger = get_logger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


# --- Plans -----------------------------------------------------------------------

@router.get("/plans")
def list_plans(
    caller: Caller = Depends(get_caller),
    catalog: PlanCatalogService = Depends(get_plan_catalog_service),
) -> JSONResponse:
    viewer = PlanViewer(role=caller.role, property_id=caller.property_id, email=caller.email)
    return to_response(catalog.get_visible_plans(viewer))


@router.post("/plans/{plan_id}/calculate-cost")
def calculate_cost(
    plan_id: str,
    payload: CostRequest,
    catalog: PlanCatalogService = Depends(get_plan_catalog_service),
) -> JSONResponse:
    return to_response(catalog.calculate_cost(plan_id, payload.bed_count, payload.branch_count))


# --- Caller's subscription ---------------------------------------------------------

@router.get("/current")
def current_subscription(
    caller: Caller = Depends(get_caller),
    lifecycle: SubscriptionLifecycleService = Depends(get_lifecycle_service),
) -> JSONResponse:
    return to_response(lifecycle.get_current_subscription(caller.user_id))


@router.get("/history")
def subscription_history(
    caller: Caller = Depends(get_caller),
    lifecycle: SubscriptionLifecycleService = Depends(get_lifecycle_service),
) -> JSONResponse:
    return to_response(lifecycle.get_user_subscription_history(caller.user_id))


@router.get("/restrictions")
def restrictions(
    caller: Caller = Depends(get_caller),
    lifecycle: SubscriptionLifecycleService = Depends(get_lifecycle_service),
) -> JSONResponse:
    return to_response(lifecycle.get_restrictions(caller.user_id))


@router.post("/subscribe")
def subscribe(
    payload: SubscribeRequest,
    caller: Caller = Depends(get_caller),
    lifecycle: SubscriptionLifecycleService = Depends(get_lifecycle_service),
) -> JSONResponse:
    result = lifecycle.subscribe_user(
        caller.user_id,
        payload.plan_id,
        billing_cycle=payload.billing_cycle,
        bed_count=payload.bed_count,
        branch_count=payload.branch_count,
        created_by=caller.user_id,
    )
    return to_response(result, success_status=status.HTTP_201_CREATED)


@router.post("/trial")
def activate_trial(
    caller: Caller = Depends(get_caller),
    lifecycle: SubscriptionLifecycleService = Depends(get_lifecycle_service),
) -> JSONResponse:
    return to_response(lifecycle.activate_free_trial(caller.user_id), success_status=status.HTTP_201_CREATED)


@router.post("/change")
def change_plan(
    payload: ChangePlanRequest,
    caller: Caller = Depends(get_caller),
    lifecycle: SubscriptionLifecycleService = Depends(get_lifecycle_service),
) -> JSONResponse:
    result = lifecycle.change_user_subscription(
        caller.user_id,
        payload.new_plan_id,
        bed_count=payload.bed_count,
        branch_count=payload.branch_count,
    )
    return to_response(result)


@router.post("/cancel")
def cancel(
    payload: Optional[CancelRequest] = Body(None),
    caller: Caller = Depends(get_caller),
    lifecycle: SubscriptionLifecycleService = Depends(get_lifecycle_service),
) -> JSONResponse:
    reason = payload.reason if payload is not None else None
    return to_response(lifecycle.cancel_user_subscription(caller.user_id, reason))


# --- Live events -------------------------------------------------------------------

@router.websocket("/ws/{user_id}")
async def subscription_events(
    websocket: WebSocket,
    user_id: str,
    registry: ConnectionRegistry = Depends(get_connection_registry),
) -> None:
    """
    Push channel for subscription events.

    Inbound frames are only used as heartbeats.
    """
    await websocket.accept()
    registry.register(user_id, websocket)
    logger.info(f"Subscription socket opened for user {user_id}")
    try:
        while True:
            await websocket.receive_text()
            registry.touch(websocket)
    except WebSocketDisconnect as e:
        logger.info(f"Subscription socket closed for user {user_id} (code {e.code})")
    finally:
        registry.deregister(user_id, websocket)
