"""FastAPI application factory.

Learn: create_app() returns a configured FastAPI instance with its own
StreamRegistry on app.state; nothing real-time lives at module level, so
tests can build as many independent apps as they like.

Lifespan tries Redis: if it answers, publishes go through a RedisRelay
(cross-worker fan-out) and a relay task feeds the local registry. If not,
the registry itself is the publisher and the app runs single-process.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eventbell import __version__
from eventbell.api import api_router
from eventbell.config import settings
from eventbell.realtime.registry import StreamRegistry

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "eventbell.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from eventbell.realtime.pubsub import RedisRelay, close_redis, init_redis

    relay_task = None
    try:
        redis = await init_redis()
    except Exception as e:
        logger.warning("eventbell.redis_unavailable", error=str(e))
        # Redis is optional; streams fall back to in-process fan-out
    else:
        relay = RedisRelay(redis, app.state.registry)
        app.state.publisher = relay
        relay_task = asyncio.create_task(relay.run())
        logger.info("eventbell.redis_connected", url=settings.redis_url)

    yield

    logger.info("eventbell.shutdown")

    if relay_task is not None:
        relay_task.cancel()
        try:
            await relay_task
        except asyncio.CancelledError:
            pass
    app.state.publisher = app.state.registry
    await close_redis()

    from eventbell.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Eventbell",
        description="Real-time notifications for the event-ticketing platform",
        version=__version__,
        lifespan=lifespan,
    )

    registry = StreamRegistry()
    app.state.registry = registry
    app.state.publisher = registry

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from eventbell.middleware.rate_limit import RateLimitMiddleware
    from eventbell.middleware.request_id import RequestIdMiddleware
    from eventbell.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        write_rpm=settings.rate_limit_write_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    # Notifications channel (WebSocket)
    from eventbell.realtime.websocket import router as cable_router
    app.include_router(cable_router)

    return app


# Default app instance (used by uvicorn: eventbell.main:app)
app = create_app()
