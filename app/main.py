from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from app.api.deps import get_connection_registry, get_notifier
from app.api.v1.router import router as api_v1_router
from app.config.redis import get_async_redis_client
from app.config.settings import settings
from app.core.logging import configure_logging, get_logger
from app.core.middleware import register_middlewares
from app.db.init_db import init_db
from app.services.notification import SubscriptionEventRelay

logger = get_logger(__name__)


async def sweep_stale_connections() -> None:
    """Drop sockets whose peer vanished without a close frame."""
    registry = get_connection_registry()
    while True:
        await asyncio.sleep(settings.CONNECTION_SWEEP_INTERVAL_SECONDS)
        registry.sweep(settings.CONNECTION_STALE_SECONDS)


async def start_event_relay() -> Optional[SubscriptionEventRelay]:
    """Relay other instances' events to local sockets when fan-out is on."""
    if not settings.ENABLE_REDIS_FANOUT:
        return None
    relay = SubscriptionEventRelay(get_notifier(), get_async_redis_client())
    try:
        await relay.start()
    except RedisError as e:
        logger.error(f"Subscription event relay not started: {e}")
        return None
    return relay


def create_app() -> FastAPI:
    """
    Application factory for the FastAPI app.

    - Configures logging, title, version and debug mode from Settings.
    - Registers CORS and the core middlewares.
    - Includes the versioned API router under /api/v1.
    """
    configure_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        version=settings.API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Credentials cannot be combined with a wildcard origin
    wildcard = not settings.CORS_ORIGINS or settings.CORS_ORIGINS == ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if wildcard else settings.CORS_ORIGINS,
        allow_credentials=not wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middlewares(app)

    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    @app.on_event("startup")
    async def on_startup() -> None:
        # Services publish from worker threads; they need the serving loop
        get_notifier().bind_loop(asyncio.get_running_loop())
        app.state.connection_sweeper = asyncio.create_task(sweep_stale_connections())
        app.state.event_relay = await start_event_relay()

        if not settings.is_production():
            # Schema for dev/demo only; production runs migrations and the seed step
            init_db()
        logger.info(f"{settings.APP_NAME} started in {settings.ENVIRONMENT} mode")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        sweeper = getattr(app.state, "connection_sweeper", None)
        if sweeper is not None:
            sweeper.cancel()
        relay = getattr(app.state, "event_relay", None)
        if relay is not None:
            await relay.stop()

    @app.get("/health", tags=["Health"])
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
