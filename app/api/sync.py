"""
Sync API endpoints for monitoring closed-ticket sync runs.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, verify_api_key
from app.schemas import SyncRunResponse, SyncStatusResponse
from app.services import get_sync_status

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(verify_api_key)
):
    """
    Get last sync runs and whether a sync is running now.

    Returns:
    - last_run: Most recent run, whatever its outcome
    - last_successful_run: Most recent run with no failures
    - is_running: Whether a sync is in progress in this process
    - current_progress: What the running sync is doing
    """
    status = await get_sync_status(db)

    last_run = status["last_run"]
    last_successful = status["last_successful_run"]

    return SyncStatusResponse(
        last_run=SyncRunResponse.model_validate(last_run) if last_run else None,
        last_successful_run=(
            SyncRunResponse.model_validate(last_successful) if last_successful else None
        ),
        is_running=status["is_running"],
        current_progress=status["current_progress"],
    )
