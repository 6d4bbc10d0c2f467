"""Sync API routes.

Provides endpoints for:
- Sync status (never blocks on an in-flight run)
- Forced sync, inline or in the background (admin token required)
"""
from typing import Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.responses import JSONResponse

from asktennis.api.dependencies import get_sync_engine
from asktennis.core.auth import require_admin
from asktennis.core.logging import get_logger
from asktennis.services.sync.engine import SyncEngine

logger = get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status")
async def get_sync_status(engine: SyncEngine = Depends(get_sync_engine)) -> Dict:
    """
    Current sync state.

    Returns:
    - is_running, provider_available
    - last_sync_at / last_attempt_at (ISO timestamps)
    - last_error of the most recent failed run, cleared by the next success
    - last_result: counts and per-batch outcomes of the last run
    - next_sync_in_seconds
    """
    return engine.get_sync_status().to_dict()


@router.post("/force")
async def force_sync(
    background_tasks: BackgroundTasks,
    background: bool = Query(False, description="Schedule the run and return 202 immediately"),
    engine: SyncEngine = Depends(get_sync_engine),
    _: bool = Depends(require_admin),
):
    """
    Trigger a sync now.

    Inline runs return the SyncResult. A run already in progress is not
    queued: the response status is "already_running".
    """
    if background:
        if engine.is_running():
            return {"status": "already_running", "message": "sync already in progress"}

        background_tasks.add_task(engine.force_sync, "manual")
        logger.info("Forced sync scheduled in background")
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"status": "scheduled", "message": "sync started in background"},
        )

    result = await engine.force_sync(trigger="manual")
    return result.to_dict()
