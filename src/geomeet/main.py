"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events for database initialization and meeting service wiring,
and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.geomeet.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.geomeet.api.v1.router import router as v1_router
from src.geomeet.config import LockBackend, Settings, get_settings
from src.geomeet.core.database import close_db, get_session, init_db
from src.geomeet.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.geomeet.core.redis import close_lock_client, get_lock_client
from src.geomeet.meetings.locks import BucketLock, LocalBucketLock, RedisBucketLock
from src.geomeet.meetings.repository import MeetingRepository
from src.geomeet.meetings.service import MeetingLifecycleManager


def build_bucket_lock(settings: Settings) -> BucketLock:
    """Pick the bucket lock backend named by LOCK_BACKEND."""
    if settings.LOCK_BACKEND == LockBackend.redis:
        return RedisBucketLock(
            get_lock_client(),
            timeout_seconds=settings.LOCK_TIMEOUT_SECONDS,
            ttl_seconds=settings.LOCK_TTL_SECONDS,
        )
    return LocalBucketLock(timeout_seconds=settings.LOCK_TIMEOUT_SECONDS)


def build_meeting_service(settings: Settings) -> MeetingLifecycleManager:
    """Wire the lifecycle manager to the SQL repository and the bucket lock."""
    return MeetingLifecycleManager(
        index=MeetingRepository(session_factory=get_session),
        lock=build_bucket_lock(settings),
        conflict_radius_meters=settings.CONFLICT_RADIUS_METERS,
        near_radius_meters=settings.NEAR_RADIUS_METERS,
        lock_grid_degrees=settings.LOCK_GRID_DEGREES,
        default_page_size=settings.DEFAULT_PAGE_SIZE,
        max_page_size=settings.MAX_PAGE_SIZE,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and services on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    app.state.meeting_service = build_meeting_service(settings)
    log.info(
        "meetings.service_initialized",
        lock_backend=settings.LOCK_BACKEND.value,
        conflict_radius_meters=settings.CONFLICT_RADIUS_METERS,
    )

    yield

    await close_db()
    await close_lock_client()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Geomeet API",
        version="0.1.0",
        description="Propose in-person meetings on a map without same-day clashes nearby",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

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

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
