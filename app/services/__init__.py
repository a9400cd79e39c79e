"""
Services module for external API clients and business logic.
"""

from app.services.freshdesk import (
    FreshdeskClient,
    FreshdeskAPIError,
    FreshdeskRateLimitError,
    FreshdeskRejectedError,
    FreshdeskUnavailableError,
    get_freshdesk_client
)
from app.services.reconciler import (
    TicketReconciler,
    DataContractViolation,
    BatchResult
)
from app.services.sync import (
    SyncService,
    SyncResult,
    SyncInProgressError,
    SyncTimeoutError,
    build_closed_query,
    get_sync_service,
    get_sync_status
)

__all__ = [
    "FreshdeskClient",
    "FreshdeskAPIError",
    "FreshdeskRateLimitError",
    "FreshdeskRejectedError",
    "FreshdeskUnavailableError",
    "get_freshdesk_client",
    "TicketReconciler",
    "DataContractViolation",
    "BatchResult",
    "SyncService",
    "SyncResult",
    "SyncInProgressError",
    "SyncTimeoutError",
    "build_closed_query",
    "get_sync_service",
    "get_sync_status",
]
