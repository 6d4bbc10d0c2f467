"""Stats API routes.

Read-only statistical lookups resolved through the process-wide query
cache, plus cache inspection and an admin flush.

Outcome mapping:
- ok -> 200
- not_found -> 200 with status "not_found" and message "No data available"
- invalid_argument -> 422
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from asktennis.api.dependencies import get_query_cache, get_query_resolver
from asktennis.core.auth import require_admin
from asktennis.core.config import settings
from asktennis.core.logging import get_logger
from asktennis.core.rate_limit import limiter
from asktennis.services.cache.query_cache import QueryCache
from asktennis.services.query_resolver import (
    INVALID_ARGUMENT,
    QueryOutcome,
    QueryResolver,
    StatsQuery,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/stats", tags=["stats"])


def _respond(outcome: QueryOutcome):
    if outcome.status == INVALID_ARGUMENT:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=outcome.to_dict())
    return outcome.to_dict()


@router.get("/tournament-winner")
@limiter.limit(settings.QUERY_RATE_LIMIT)
def tournament_winner(
    request: Request,
    tournament: str = Query(..., description="Tournament name, e.g. Wimbledon"),
    year: int = Query(..., description="Season"),
    tour: Optional[str] = Query(None, description="ATP or WTA"),
    resolver: QueryResolver = Depends(get_query_resolver),
):
    """Who won a tournament in a given year."""
    return _respond(resolver.get_tournament_winner(tournament, year, tour))


@router.get("/head-to-head")
@limiter.limit(settings.QUERY_RATE_LIMIT)
def head_to_head(
    request: Request,
    player_a: str = Query(...),
    player_b: str = Query(...),
    resolver: QueryResolver = Depends(get_query_resolver),
):
    """Head-to-head record, oriented as player_a vs player_b."""
    return _respond(resolver.get_head_to_head(player_a, player_b))


@router.get("/career")
@limiter.limit(settings.QUERY_RATE_LIMIT)
def career(
    request: Request,
    player: str = Query(...),
    resolver: QueryResolver = Depends(get_query_resolver),
):
    return _respond(resolver.get_player_career_stats(player))


@router.get("/grand-slams/{year}")
@limiter.limit(settings.QUERY_RATE_LIMIT)
def grand_slams(
    request: Request,
    year: int,
    tour: Optional[str] = Query(None),
    resolver: QueryResolver = Depends(get_query_resolver),
):
    """Champions of the four majors, in calendar order."""
    return _respond(resolver.get_grand_slam_winners(year, tour))


@router.get("/most-successful")
@limiter.limit(settings.QUERY_RATE_LIMIT)
def most_successful(
    request: Request,
    limit: int = Query(10),
    tour: Optional[str] = Query(None),
    resolver: QueryResolver = Depends(get_query_resolver),
):
    return _respond(resolver.get_most_successful_players(limit, tour))


@router.get("/rankings")
@limiter.limit(settings.QUERY_RATE_LIMIT)
def rankings(
    request: Request,
    tour: str = Query("ATP"),
    limit: int = Query(10),
    resolver: QueryResolver = Depends(get_query_resolver),
):
    """Latest synced ranking for a tour."""
    return _respond(resolver.get_current_rankings(tour, limit))


@router.post("/query")
@limiter.limit(settings.QUERY_RATE_LIMIT)
def query(
    request: Request,
    body: StatsQuery,
    resolver: QueryResolver = Depends(get_query_resolver),
):
    """Resolve a typed request from the natural-language front end."""
    return _respond(resolver.resolve(body))


@router.get("/cache")
def cache_stats(cache: QueryCache = Depends(get_query_cache)):
    return cache.stats()


@router.post("/cache/clear")
def clear_cache(
    cache: QueryCache = Depends(get_query_cache),
    _: bool = Depends(require_admin),
):
    """Drop every cached query result."""
    removed = cache.invalidate_all()
    logger.info(f"Query cache cleared by admin ({removed} entries)")
    return {"status": "cleared", "removed": removed}
