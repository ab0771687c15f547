"""FastAPI application factory.

Creates the app with the tenant context middleware, logging middleware,
metrics middleware, CORS, Sentry, a lifespan that builds the tenancy services
and runs the purge scheduler, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse

from src.tenancy.api.middleware import LoggingMiddleware, TenantContextMiddleware
from src.tenancy.api.middleware.logging import configure_structlog
from src.tenancy.api.v1.router import router as v1_router
from src.tenancy.config import get_settings
from src.tenancy.core.database import close_db, get_session_factory, init_db
from src.tenancy.core.errors import TenancyError
from src.tenancy.core.monitoring import MetricsMiddleware, init_sentry
from src.tenancy.core.redis import close_redis
from src.tenancy.services.container import TenancyServices, build_services

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build services and bootstrap the platform on startup; release everything on shutdown."""
    settings = get_settings()
    configure_structlog()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    services: TenancyServices | None = getattr(app.state, "services", None)
    if services is None:
        await init_db()
        services = build_services(get_session_factory(), settings)
        app.state.services = services

    superadmin = await services.commerce.ensure_default_setup(
        settings.SUPERADMIN_EMAIL, settings.SUPERADMIN_PASSWORD
    )
    logger.info("startup.platform_ready", superadmin_id=str(superadmin.id))

    if settings.PURGE_SCHEDULER_ENABLED:
        services.purge_scheduler.start()

    yield

    services.purge_scheduler.stop()
    if settings.RESOLVER_CACHE_BACKEND == "redis":
        await close_redis()
    await close_db()
    logger.info("shutdown.complete")


async def tenancy_error_handler(request: Request, exc: TenancyError) -> JSONResponse:
    """Render domain errors as {"detail": ...} with their HTTP status."""
    if exc.status_code >= 500:
        logger.error("request.failed", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app(services: TenancyServices | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Prebuilt services (tests); otherwise built during lifespan.
    """
    settings = get_settings()

    app = FastAPI(
        title="Tenancy Core API",
        version="0.1.0",
        description="Multi-tenant isolation core for the commerce platform",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.add_exception_handler(TenancyError, tenancy_error_handler)

    # Middleware is added in reverse order (last added = outermost)

    # Tenant middleware (inner -- binds the request to the hostname's tenant)
    app.add_middleware(TenantContextMiddleware)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    return app


# Module-level app for uvicorn
app = create_app()
