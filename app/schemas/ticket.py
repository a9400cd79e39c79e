from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime

class TicketListItem(BaseModel):
    """Row of the ticket list."""
    ticket_id: str  # string so 64-bit ids survive JSON clients
    requester_email: Optional[str] = None
    organization: Optional[str] = None
    subject: Optional[str] = None
    type: Optional[str] = None
    created_at: datetime

class TicketListResponse(BaseModel):
    page: int
    page_size: int
    total: int
    rows: List[TicketListItem]

class TicketDetailResponse(BaseModel):
    id: int
    subject: Optional[str] = None
    status: int
    priority: int
    type: Optional[str] = None
    source: Optional[str] = None
    requester_email: Optional[str] = None
    requester_name: Optional[str] = None
    organization: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    captured_at: Optional[datetime] = None
    freshdesk_url: str

    model_config = ConfigDict(from_attributes=True)
