"""
Main FastAPI application for the AskTennis stats API.
"""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text
from sqlalchemy.orm import Session

from asktennis.core.config import settings
from asktennis.core.database import SessionLocal, get_db, init_db
from asktennis.core.logging import configure_logging, get_logger
from asktennis.core.middleware import CorrelationIdMiddleware
from asktennis.core.rate_limit import limiter
from asktennis.core import metrics
from asktennis.api.routes import stats, sync
from asktennis.repositories import TennisRepository
from asktennis.services.cache.query_cache import QueryCache
from asktennis.services.provider.sportradar_client import SportradarClient
from asktennis.services.sync.engine import SyncEngine

# Load environment variables from .env file
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Configure structured logging with JSON formatter
configure_logging(
    level=settings.LOG_LEVEL,
    json_output=settings.LOG_JSON
)
logger = get_logger(__name__)


def build_sync_engine(client: SportradarClient, cache: QueryCache) -> SyncEngine:
    """Wire the sync engine from settings."""
    return SyncEngine(
        provider=client,
        session_factory=SessionLocal,
        cache=cache,
        fetch_attempts=settings.SYNC_FETCH_ATTEMPTS,
        retry_wait_seconds=settings.SYNC_RETRY_WAIT_SECONDS,
        interval_seconds=settings.SYNC_INTERVAL_SECONDS if settings.SYNC_ENABLED else None,
        results_lookback_days=settings.SYNC_RESULTS_LOOKBACK_DAYS,
        results_max_tournaments=settings.SYNC_RESULTS_MAX_TOURNAMENTS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    init_db()

    cache = QueryCache(
        max_entries=settings.QUERY_CACHE_MAX_ENTRIES,
        ttl_seconds=settings.QUERY_CACHE_TTL_SECONDS,
    )
    client = SportradarClient(settings.provider_config())
    engine = build_sync_engine(client, cache)

    app.state.query_cache = cache
    app.state.sync_engine = engine

    if settings.api_owns_sync():
        from asktennis.core.scheduler import start_scheduler
        await start_scheduler(
            engine,
            interval_seconds=settings.SYNC_INTERVAL_SECONDS,
            run_on_startup=settings.SYNC_ON_STARTUP,
        )
        logger.info("Sync scheduler started")
    else:
        logger.info(
            "Sync scheduler not started in the API "
            f"(SYNC_ENABLED={settings.SYNC_ENABLED}, SYNC_RUNNER={settings.SYNC_RUNNER})"
        )

    metrics.update_scheduler_metrics()
    logger.info("Application started")

    yield

    # Shutdown
    from asktennis.core.scheduler import stop_scheduler
    await stop_scheduler()
    await client.close()
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Tennis statistics API backed by a synced Sportradar store and a query cache",
    lifespan=lifespan
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add correlation ID middleware (must be added before CORS for proper header handling)
app.add_middleware(CorrelationIdMiddleware)

# Initialize Prometheus metrics BEFORE including routes
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API v1
app.include_router(sync.router, prefix="/api/v1")
app.include_router(stats.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "api_version": "v1",
            "sync": {
                "status": "/api/v1/sync/status",
                "force": "/api/v1/sync/force"
            },
            "stats": {
                "tournament_winner": "/api/v1/stats/tournament-winner",
                "head_to_head": "/api/v1/stats/head-to-head",
                "career": "/api/v1/stats/career",
                "grand_slams": "/api/v1/stats/grand-slams/{year}",
                "most_successful": "/api/v1/stats/most-successful",
                "rankings": "/api/v1/stats/rankings",
                "query": "/api/v1/stats/query",
                "cache": "/api/v1/stats/cache"
            },
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics"
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


def _idle_scheduler_status() -> str:
    if not settings.SYNC_ENABLED:
        return "disabled"
    if settings.SYNC_RUNNER == "standalone":
        return "external"
    return "stopped"


@app.get("/api/health")
def api_health(request: Request, db: Session = Depends(get_db)):
    """Detailed API health check with component-level status."""
    health_status = {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "components": {}
    }

    all_healthy = True

    # 1. Database
    try:
        db.execute(text("SELECT 1"))
        health_status["components"]["database"] = {
            "status": "connected",
            "counts": TennisRepository(db).table_counts()
        }
        metrics.update_db_pool_metrics()
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "error": str(e)
        }
        all_healthy = False

    # 2. Provider and sync
    engine = getattr(request.app.state, "sync_engine", None)
    if engine is not None:
        sync_status = engine.get_sync_status()
        health_status["components"]["provider"] = {
            "status": "configured" if sync_status.provider_available else "not_configured",
            "sync_running": sync_status.is_running,
            "last_sync_at": sync_status.last_sync_at.isoformat() if sync_status.last_sync_at else None,
            "last_error": sync_status.last_error
        }

    # 3. Scheduler
    from asktennis.core.scheduler import get_scheduler

    scheduler = get_scheduler()
    if scheduler and scheduler.running:
        next_run = scheduler.next_run_time()
        health_status["components"]["scheduler"] = {
            "status": "running",
            "interval_seconds": scheduler.interval_seconds,
            "next_run": next_run.isoformat() if next_run else None
        }
    else:
        health_status["components"]["scheduler"] = {
            "status": _idle_scheduler_status()
        }
    metrics.update_scheduler_metrics()

    # 4. Query cache
    cache = getattr(request.app.state, "query_cache", None)
    if cache is not None:
        health_status["components"]["query_cache"] = {
            "status": "ok",
            "size": len(cache),
            "max_entries": cache.max_entries
        }

    if not all_healthy:
        health_status["status"] = "degraded"

    status_code = 200 if all_healthy else 503
    return JSONResponse(status_code=status_code, content=health_status)


# Exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "asktennis.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
