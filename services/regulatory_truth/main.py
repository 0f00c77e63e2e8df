"""
Regulatory Truth Service - Main Application
===========================================

FastAPI application exposing semantic search, document parsing and the
discovery watchdog.

Version: 0.1.0
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from services.regulatory_truth import __version__
from services.regulatory_truth.alerting import create_alert_sink
from services.regulatory_truth.errors import CircuitOpenError
from services.regulatory_truth.parser import DocumentParser
from services.regulatory_truth.ratelimit import RateLimiterRegistry
from services.regulatory_truth.routes import parse, search, watchdog
from services.regulatory_truth.search import (
    PgVectorStore,
    SemanticSearchService,
    create_embedding_provider,
)
from services.regulatory_truth.storage import (
    ParsedDocumentRepository,
    RecordingAlertSink,
    WatchdogAlertRepository,
)
from shared.config import settings
from shared.database.postgres import PostgresClient
from shared.logging import get_logger, setup_logging
from shared.models.common import ErrorResponse, HealthResponse


# Setup logging
setup_logging(
    log_level=settings.log_level.value,
    json_logs=settings.is_production,
    service_name="regulatory-truth",
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifespan manager."""
    logger.info(
        "regulatory_truth_starting",
        environment=settings.environment.value,
        port=settings.port,
    )

    # Startup
    try:
        postgres = PostgresClient(settings.postgres, echo=settings.debug and settings.is_development)
        notifier = create_alert_sink(settings.alerting)
        alert_sink = RecordingAlertSink(WatchdogAlertRepository(postgres), notifier)
        embedder = create_embedding_provider(settings.embedding)

        app.state.postgres = postgres
        app.state.notifier = notifier
        app.state.alert_sink = alert_sink
        app.state.embedder = embedder
        app.state.search_service = SemanticSearchService(PgVectorStore(postgres), embedder)
        app.state.document_parser = DocumentParser()
        app.state.document_repository = ParsedDocumentRepository(postgres)
        app.state.rate_limiter_registry = RateLimiterRegistry.from_settings(settings, alert_sink)
    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("regulatory_truth_shutting_down")
    app.state.rate_limiter_registry.shutdown()
    await app.state.embedder.close()
    if hasattr(app.state.notifier, "close"):
        await app.state.notifier.close()
    await app.state.postgres.close()


# Create FastAPI application
app = FastAPI(
    title="Regulatory Truth Service",
    description="Sitemap discovery, provision parsing and temporal semantic search",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins_list,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """
    Service health check.

    Reports the database and the live rate limiter snapshot.
    """
    components: dict[str, dict[str, Any]] = {}

    components["postgres"] = await app.state.postgres.health_check()

    snapshot = app.state.rate_limiter_registry.health_snapshot()
    limiters_healthy = all(h.overall_healthy for h in snapshot.values())
    components["rate_limiters"] = {
        "status": "healthy" if limiters_healthy else "degraded",
        "sources": {source: h.model_dump(mode="json") for source, h in snapshot.items()},
    }

    all_healthy = all(c.get("status") == "healthy" for c in components.values())

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        service="regulatory-truth",
        version=__version__,
        components=components,
    )


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": "Regulatory Truth Service",
        "version": __version__,
        "docs": "/docs",
    }


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(
    search.router,
    prefix="/api/v1/search",
    tags=["Search"],
)

app.include_router(
    parse.router,
    prefix="/api/v1/parse",
    tags=["Parse"],
)

app.include_router(
    watchdog.router,
    prefix="/api/v1/watchdog",
    tags=["Watchdog"],
)


# ============================================================================
# Error Handlers
# ============================================================================


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail), status_code=exc.status_code).model_dump(
            mode="json", exclude_none=True
        ),
    )


@app.exception_handler(CircuitOpenError)
async def circuit_open_handler(request: Any, exc: CircuitOpenError) -> JSONResponse:
    """A source domain is failing fast."""
    logger.warning("circuit_open_rejected", domain=exc.domain, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        headers={"Retry-After": str(max(int(exc.retry_in_seconds), 1))},
        content=ErrorResponse(
            error=str(exc),
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="CIRCUIT_OPEN",
            details={"domain": exc.domain},
        ).model_dump(mode="json", exclude_none=True),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Any, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        ).model_dump(mode="json", exclude_none=True),
    )


# ============================================================================
# Run with Uvicorn
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.regulatory_truth.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.value.lower(),
    )
