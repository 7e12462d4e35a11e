"""
API v1 Router - Main Entry Point
Aggregates the v1 endpoints of the billing core.
"""
from fastapi import APIRouter

from app.api.v1 import rooms, subscriptions, webhooks

router = APIRouter(
    responses={
        400: {"description": "Bad Request"},
        401: {"description": "Unauthorized"},
        403: {"description": "Quota exceeded"},
        404: {"description": "Not Found"},
        409: {"description": "Conflict"},
        422: {"description": "Validation Error"},
        500: {"description": "Internal Server Error"},
    }
)

router.include_router(subscriptions.router)
router.include_router(webhooks.router)
router.include_router(rooms.router)

__all__ = ["router"]
