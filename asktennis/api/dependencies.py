"""
FastAPI dependencies for the process-wide singletons.

The query cache and sync engine are created in the application lifespan
and stored on app.state; tests can set them directly.
"""
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from asktennis.core.config import settings
from asktennis.core.database import get_db
from asktennis.services.cache.query_cache import QueryCache
from asktennis.services.query_resolver import QueryResolver
from asktennis.services.sync.engine import SyncEngine


def get_query_cache(request: Request) -> QueryCache:
    cache = getattr(request.app.state, "query_cache", None)
    if cache is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Query cache not initialized")
    return cache


def get_sync_engine(request: Request) -> SyncEngine:
    engine = getattr(request.app.state, "sync_engine", None)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Sync engine not initialized")
    return engine


def get_query_resolver(
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
) -> QueryResolver:
    """Request-scoped resolver over the shared cache."""
    return QueryResolver(db, cache, max_limit=settings.QUERY_MAX_LIMIT)
