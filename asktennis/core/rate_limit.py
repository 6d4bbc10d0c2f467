"""
Rate limiting for the public stats endpoints.

Storage is in-memory unless RATE_LIMIT_STORAGE=redis, which needs the
redis client (pip install ".[redis]"). Set
RATE_LIMIT_ENABLED=false to turn limiting off (tests, local runs).
"""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from asktennis.core.config import settings


def get_rate_limit_key(request: Request) -> str:
    """
    Get the rate limit key for a request.

    Uses IP address, with fallback to X-Forwarded-For for proxied requests.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[settings.QUERY_RATE_LIMIT],
    storage_uri=settings.REDIS_URL if settings.RATE_LIMIT_STORAGE == "redis" else "memory://",
    enabled=settings.RATE_LIMIT_ENABLED
)
