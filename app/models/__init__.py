"""
Database models for the Freshdesk ticket mirror.
"""

from app.models.organization import TicketOrg
from app.models.requester import TicketRequester
from app.models.source_map import FdSourceMap
from app.models.ticket import FreshdeskTicket, CLOSED_STATUS
from app.models.sync_run import (
    SyncRun,
    SYNC_STATUS_RUNNING,
    SYNC_STATUS_COMPLETED,
    SYNC_STATUS_PARTIAL,
    SYNC_STATUS_FAILED,
)

__all__ = [
    "TicketOrg",
    "TicketRequester",
    "FdSourceMap",
    "FreshdeskTicket",
    "SyncRun",
    "CLOSED_STATUS",
    "SYNC_STATUS_RUNNING",
    "SYNC_STATUS_COMPLETED",
    "SYNC_STATUS_PARTIAL",
    "SYNC_STATUS_FAILED",
]
