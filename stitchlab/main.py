"""ASGI entry point for the StitchLab analytics API."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stitchlab.core.config import get_settings
from stitchlab.core.database import get_engine
from stitchlab.core.exceptions import register_exception_handlers
from stitchlab.core.health import router as health_router
from stitchlab.core.logging import configure_logging, get_logger
from stitchlab.core.middleware import RequestIdMiddleware
from stitchlab.features.analytics.routes import router as analytics_router
from stitchlab.features.rollups.routes import router as rollups_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging on startup; release the connection pool on shutdown."""
    settings = get_settings()

    configure_logging()
    logger.info(
        "app.startup_completed",
        app_name=settings.app_name,
        app_env=settings.app_env,
        currency=settings.analytics_currency,
        rollup_max_buckets=settings.rollup_max_buckets,
    )

    yield

    await get_engine().dispose()
    logger.info("app.shutdown_completed")


def create_app() -> FastAPI:
    """Assemble the app: middleware, problem-details handlers and routers."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Garment production analytics: rollup refresh and role-scoped dashboards",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # First added is outermost
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(rollups_router)
    app.include_router(analytics_router)

    return app


app = create_app()
