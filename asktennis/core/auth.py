"""
Admin authentication for operational endpoints.

Forced sync and cache flush are guarded by a shared admin token sent in
the X-Admin-Token header. Read-only stats endpoints are public.
"""
import secrets
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader
from starlette.requests import Request

from asktennis.core.config import settings
from asktennis.core.logging import get_logger

logger = get_logger(__name__)

ADMIN_TOKEN_HEADER = "X-Admin-Token"

admin_token_header = APIKeyHeader(name=ADMIN_TOKEN_HEADER, auto_error=False)


def validate_admin_token(admin_token: Optional[str] = None) -> bool:
    """
    Validate admin token for administrative operations.

    Without a configured ADMIN_TOKEN the check is skipped outside
    production and refused in production.

    Raises:
        HTTPException: If token is missing or invalid
    """
    if not settings.ADMIN_TOKEN:
        if settings.is_production():
            raise HTTPException(
                status_code=status.HTTP_501_NOT_IMPLEMENTED,
                detail="Admin functionality not enabled. Set ADMIN_TOKEN environment variable."
            )
        logger.debug("ADMIN_TOKEN not configured - allowing admin request in development mode")
        return True

    if not admin_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Admin token missing. Provide {ADMIN_TOKEN_HEADER} header."
        )

    if not secrets.compare_digest(admin_token, settings.ADMIN_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin token."
        )

    return True


def require_admin(request: Request, admin_token: Optional[str] = Security(admin_token_header)) -> bool:
    """FastAPI dependency guarding admin endpoints."""
    try:
        return validate_admin_token(admin_token)
    except HTTPException:
        client = request.client.host if request.client else "unknown"
        logger.warning(f"Rejected admin request to {request.url.path} from {client}")
        raise
