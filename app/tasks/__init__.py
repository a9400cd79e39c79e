"""
Background scheduling module.

Provides the periodic closed-ticket sync job.
"""

from app.tasks.scheduler import (
    setup_scheduler,
    shutdown_scheduler,
    get_job_status,
    closed_ticket_sync_job,
    next_sync_cursor,
    pending_retry_ids
)

__all__ = [
    "setup_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "closed_ticket_sync_job",
    "next_sync_cursor",
    "pending_retry_ids",
]
