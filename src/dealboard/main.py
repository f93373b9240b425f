"""FastAPI application factory.

Creates the app with identity middleware, logging middleware, metrics
middleware, CORS, Sentry, exception handlers, lifespan events for database
and board initialization, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.dealboard.api.errors import register_exception_handlers
from src.dealboard.api.middleware.identity import IdentityMiddleware
from src.dealboard.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.dealboard.api.v1.router import router as v1_router
from src.dealboard.config import get_settings
from src.dealboard.core.database import close_db, get_session, init_db
from src.dealboard.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and the board registry; close DB on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    # Initialize Sentry if DSN is configured
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    from src.dealboard.board.service import BoardRegistry
    from src.dealboard.core.clock import SystemClock
    from src.dealboard.deals.persistence import PostgresDealPersistence
    from src.dealboard.deals.repository import DealRepository

    repository = DealRepository(session_factory=get_session)
    app.state.board_registry = BoardRegistry(
        persistence=PostgresDealPersistence(repository=repository),
        clock=SystemClock(settings.TIMEZONE),
        stale_after_days=settings.STALE_AFTER_DAYS,
        upcoming_limit=settings.UPCOMING_ACTIONS_LIMIT,
        max_boards=settings.BOARD_CACHE_SIZE,
    )
    log.info("board.registry_initialized", timezone=settings.TIMEZONE)

    yield

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Deal Board API",
        version="0.1.0",
        description="Kanban pipeline for tracking sales deals through fixed stages",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # Identity middleware (inner -- resolves the user from X-User-ID)
    app.add_middleware(IdentityMiddleware)

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

    register_exception_handlers(app)

    # Include v1 API router (health, stages, deals, board)
    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
