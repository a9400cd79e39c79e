from app.schemas.common import HealthResponse
from app.schemas.ticket import (
    TicketListItem, TicketListResponse, TicketDetailResponse
)
from app.schemas.sync import (
    SyncClosedResponse, SyncErrorResponse, SyncRunResponse, SyncStatusResponse
)

__all__ = [
    # Common
    "HealthResponse",
    # Ticket
    "TicketListItem",
    "TicketListResponse",
    "TicketDetailResponse",
    # Sync
    "SyncClosedResponse",
    "SyncErrorResponse",
    "SyncRunResponse",
    "SyncStatusResponse",
]
