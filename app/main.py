"""ASGI application for the sales analytics API."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from app.core.cache import CacheStore
from app.core.config import Settings, get_settings
from app.core.database import dispose_engine
from app.core.exceptions import register_exception_handlers
from app.core.health import router as health_router
from app.core.logging import configure_logging, get_logger
from app.core.middleware import RequestIdMiddleware
from app.features.analytics.routes import router as analytics_router
from app.features.sales.routes import router as sales_router

logger = get_logger(__name__)


def build_cache(settings: Settings) -> CacheStore:
    """Create the process-wide cache from settings."""
    return CacheStore(
        default_ttl=settings.cache_default_ttl,
        max_keys=settings.cache_max_keys,
        check_period=settings.cache_check_period,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Run the cache reaper for the lifetime of the process.

    Shutdown stops the reaper before the connection pool is disposed.
    """
    settings = get_settings()

    configure_logging()
    cache: CacheStore = app.state.cache
    cache.start()
    logger.info(
        "app.startup_completed",
        app_name=settings.app_name,
        app_env=settings.app_env,
        cache_max_keys=cache.max_keys,
    )

    yield

    await cache.stop()
    await dispose_engine()
    logger.info("app.shutdown_completed")


def create_app() -> FastAPI:
    """Assemble the app: cache, middleware, problem handlers, routers."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Cached sales listing, analytics and leaderboard API",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Exists before startup; ASGI test transports skip lifespan
    app.state.cache = build_cache(settings)

    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(sales_router)
    app.include_router(analytics_router)

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_config=None,
    )
