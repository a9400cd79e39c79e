"""
SyncRun model for auditing closed-ticket sync runs.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.utils.datetime import utcnow

SYNC_STATUS_RUNNING = "running"
SYNC_STATUS_COMPLETED = "completed"
SYNC_STATUS_PARTIAL = "partial"
SYNC_STATUS_FAILED = "failed"


class SyncRun(Base):
    """
    One invocation of the closed-ticket sync.

    The pipeline itself never reads these rows. The scheduler uses the last
    finished run (completed or partial) to choose its next ``since`` value
    and to retry that run's ``failed_ids``.
    """

    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    since: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=SYNC_STATUS_RUNNING,
        server_default=SYNC_STATUS_RUNNING,
        index=True
    )
    imported: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    failed: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    # Ids the next run retries directly (None for search results without an id)
    failed_ids: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    error: Mapped[Optional[str]] = mapped_column(Text)

    started_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        server_default=func.now(),
        index=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return (
            f"<SyncRun(id={self.id}, status={self.status}, "
            f"since={self.since}, imported={self.imported}, failed={self.failed})>"
        )
