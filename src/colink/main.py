"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from colink.analytics.router import router as analytics_router
from colink.auth.router import router as auth_router
from colink.auth.session import session_events
from colink.config import get_settings
from colink.database import close_db, create_schema, get_session, init_db
from colink.gamification.router import router as gamification_router
from colink.gamification.seed import seed_badges
from colink.health.router import router as health_router
from colink.messaging.router import router as messaging_router
from colink.middleware import setup_middleware
from colink.progress.router import router as progress_router
from colink.quests.router import router as quests_router
from colink.redis_client import close_redis, get_redis, init_redis
from colink.users.router import router as users_router
from colink.ws.bridge import PubSubBridge
from colink.ws.manager import manager
from colink.ws.router import router as ws_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.auto_create_schema:
        await create_schema()
    await init_redis(settings.redis_url)

    # Seed badge definitions (idempotent)
    try:
        async for db in get_session():
            await seed_badges(db)
    except Exception:
        logger.warning("Badge seeding failed (tables may not exist yet)", exc_info=True)

    # Sign-out closes the user's sockets
    manager.max_connections_per_user = settings.ws_max_connections_per_user
    listener = session_events.subscribe(manager.on_session_event)

    # Start the Redis pub/sub -> WebSocket bridge
    bridge = PubSubBridge(get_redis())
    bridge_task = asyncio.create_task(bridge.start())

    yield

    # Shutdown bridge
    await bridge.stop()
    bridge_task.cancel()
    try:
        await bridge_task
    except asyncio.CancelledError:
        pass

    session_events.unsubscribe(listener)
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CoLink API",
        description="Backend API for CoLink: gamified quests, badges and messaging for university courses",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(quests_router)
    app.include_router(progress_router)
    app.include_router(gamification_router)
    app.include_router(messaging_router)
    app.include_router(analytics_router)
    app.include_router(ws_router)

    return app


app = create_app()
