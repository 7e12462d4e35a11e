# app/api/v1/__init__.py
"""
API v1 package.

Re-exports the router that aggregates the v1 sub-routers
(subscriptions, payments, rooms). The composition lives in
``app.api.v1.router``.
"""

from .router import router as api_router

__all__ = ["api_router"]
