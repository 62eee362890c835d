"""
RiskQuote — FastAPI Application.

Run: uvicorn riskquote.main:app --host 0.0.0.0 --port 8002

  - GET  /api/v1/risk/{user_id}                        ← latest analysis + staleness
  - GET  /api/v1/risk/{user_id}/history                ← score history
  - POST /api/v1/risk/{user_id}/refresh                ← user-initiated recompute
  - GET  /api/v1/alerts/{user_id}                      ← alerts
  - GET  /api/v1/alerts/{user_id}/unacknowledged-count
  - POST /api/v1/alerts/{user_id}/acknowledge          ← acknowledge all
  - POST /api/v1/events                                ← change notifications
  - POST /api/v1/tracking/{user_id}                    ← health-tracking entries
  - GET  /health
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from riskquote.alerting.channels import AlertDispatcher, build_default_channels
from riskquote.api.routers.alerts import router as alerts_router
from riskquote.api.routers.events import router as events_router
from riskquote.api.routers.risk import router as risk_router
from riskquote.api.routers.tracking import router as tracking_router
from riskquote.config import settings
from riskquote.db.engine import Database
from riskquote.db.store import RecordStore, SqlRecordStore
from riskquote.errors import RecomputeError
from riskquote.middleware.error_handler import ErrorHandlerMiddleware, recompute_error_handler
from riskquote.middleware.request_context import RequestContextMiddleware
from riskquote.pipeline.recompute import RecomputePipeline
from riskquote.services.scheduler import RecomputeScheduler

logger = structlog.get_logger(__name__)


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Install the structlog processor chain (JSON or console renderer)."""
    level = (level or settings.log_level).upper()
    fmt = fmt or settings.log_format
    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if fmt == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def create_app(
    store: Optional[RecordStore] = None,
    pipeline: Optional[RecomputePipeline] = None,
    enable_scheduler: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Without an injected store the app persists through SQLAlchemy
    (DATABASE_URL). The periodic sweep runs unless disabled.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("riskquote_starting", version=settings.app_version)
        database: Optional[Database] = None
        if store is None:
            database = Database()
            app.state.store = SqlRecordStore(await database.connect())
        if getattr(app.state, "pipeline", None) is None:
            app.state.pipeline = RecomputePipeline(
                app.state.store,
                dispatcher=AlertDispatcher(build_default_channels()),
            )

        scheduler: Optional[RecomputeScheduler] = None
        if enable_scheduler:
            scheduler = RecomputeScheduler(app.state.pipeline, app.state.store)
            scheduler.start()

        yield

        if scheduler is not None:
            scheduler.stop()
        await app.state.pipeline.wait_idle()
        if database is not None:
            await database.close()
        logger.info("riskquote_shutdown")

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Risk Scoring & Premium Pricing Engine: additive explainable risk "
            "scores, premium quotes, trend predictions and score-change alerts."
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness check"},
            {"name": "risk", "description": "Risk analyses and refresh"},
            {"name": "alerts", "description": "Score-change alerts and acknowledgement"},
            {"name": "events", "description": "Change notifications that trigger recomputes"},
            {"name": "tracking", "description": "Wearable and manual health-tracking entries"},
        ],
    )

    # Injected dependencies are available without running the lifespan.
    if store is not None:
        app.state.store = store
        app.state.pipeline = pipeline or RecomputePipeline(store)

    # Last added = outermost
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_exception_handler(RecomputeError, recompute_error_handler)

    app.include_router(risk_router)
    app.include_router(alerts_router)
    app.include_router(events_router)
    app.include_router(tracking_router)

    @app.get("/health", tags=["health"])
    async def health():
        return {
            "status": "ok",
            "version": settings.app_version,
            "service": "riskquote",
        }

    return app


configure_logging()
app = create_app()
