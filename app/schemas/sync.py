from pydantic import BaseModel, ConfigDict
from typing import List, Optional, Any
from datetime import datetime

class SyncClosedResponse(BaseModel):
    """Response for the closed-ticket sync endpoint."""
    ok: bool = True
    imported: int
    since: str
    failed: int = 0
    failed_ids: List[Any] = []

class SyncErrorResponse(BaseModel):
    """Body returned when a sync or webhook call fails."""
    ok: bool = False
    error: str

class SyncRunResponse(BaseModel):
    """One recorded sync run."""
    id: int
    since: str
    status: str
    imported: int
    failed: int
    failed_ids: Optional[List[Any]] = None
    error: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class SyncStatusResponse(BaseModel):
    """Response for sync status endpoint."""
    last_run: Optional[SyncRunResponse] = None
    last_successful_run: Optional[SyncRunResponse] = None
    is_running: bool = False
    current_progress: Optional[str] = None
