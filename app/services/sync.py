"""
Sync service for mirroring closed Freshdesk tickets.

This module provides the SyncService class that:
1. Pages through the Freshdesk search for closed tickets updated since a cursor
2. Hydrates every ticket of a page concurrently, bounded by a run-wide limiter
3. Hands each hydrated page to the TicketReconciler before the next page
4. Records every run in the sync_runs table, with the ids that failed

The cursor (``since``) is always supplied by the caller. The pipeline does
not persist or advance it. Ids that failed in an earlier run can be passed
back in and are fetched directly.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.events import EventBus, EventKind
from app.models import (
    SyncRun,
    SYNC_STATUS_COMPLETED,
    SYNC_STATUS_FAILED,
    SYNC_STATUS_PARTIAL,
    SYNC_STATUS_RUNNING,
)
from app.services.freshdesk import FreshdeskClient, get_freshdesk_client
from app.services.normalization import to_int
from app.services.reconciler import TicketReconciler
from app.utils.datetime import utcnow

logger = logging.getLogger(__name__)

CLOSED_STATUS_QUERY = "status:5 AND updated_at:>'{since}'"

# One sync per process. Progress lives beside the lock so any request can read it.
_sync_lock = asyncio.Lock()
_sync_progress: Optional[str] = None


class SyncInProgressError(RuntimeError):
    """Raised when a sync is triggered while another one is running."""
    pass


class SyncTimeoutError(Exception):
    """Raised when a sync run exceeds its configured time budget."""
    pass


def build_closed_query(since: str) -> str:
    """Search query for closed tickets updated at or after ``since``."""
    return CLOSED_STATUS_QUERY.format(since=since)


def _set_progress(message: Optional[str]) -> None:
    global _sync_progress
    _sync_progress = message


@dataclass
class SyncResult:
    """Counters for one sync run."""
    since: str
    imported: int = 0
    pages: int = 0
    retried: int = 0
    failed_ids: List[Any] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_ids)

    @property
    def partial(self) -> bool:
        return bool(self.failed_ids)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "since": self.since,
            "imported": self.imported,
            "pages": self.pages,
            "retried": self.retried,
            "failed": self.failed,
            "failed_ids": list(self.failed_ids),
        }


class SyncService:
    """Handles syncing closed tickets from Freshdesk to the database."""

    def __init__(
        self,
        db: AsyncSession,
        freshdesk_client: FreshdeskClient,
        events: Optional[EventBus] = None,
        concurrency: int = 10,
        aliases: Optional[Mapping[str, str]] = None,
        require_organization: bool = False,
        run_timeout: Optional[float] = None,
    ):
        """
        Initialize sync service.

        Args:
            db: Async database session
            freshdesk_client: Configured Freshdesk API client
            events: Event bus for requester and sync notifications
            concurrency: Maximum in-flight ticket detail requests per run
            aliases: Organization alias map for the reconciler
            require_organization: Reject tickets without a resolvable organization
            run_timeout: Seconds before the whole run is cancelled
        """
        self.db = db
        self.freshdesk = freshdesk_client
        self.events = events
        self.concurrency = concurrency
        self.run_timeout = run_timeout
        self.reconciler = TicketReconciler(
            db,
            events=events,
            aliases=aliases,
            require_organization=require_organization,
        )

    @property
    def is_running(self) -> bool:
        """Check if a sync is currently running in this process."""
        return _sync_lock.locked()

    @property
    def current_progress(self) -> Optional[str]:
        """Get current sync progress message."""
        return _sync_progress

    async def sync_closed_tickets(self, since: str, retry_ids: Sequence[Any] = ()) -> SyncResult:
        """
        Mirror closed tickets updated at or after ``since``.

        Args:
            since: ISO-8601 lower bound, passed to Freshdesk as given
            retry_ids: Ticket ids that failed in an earlier run. They are
                fetched directly after the search pages (unless the search
                already returned them), since the cursor may have moved past
                them.

        Returns:
            SyncResult with imported count and the ids that failed

        Raises:
            SyncInProgressError: If another sync is already running
            SyncTimeoutError: If the run exceeded ``run_timeout``
            FreshdeskAPIError: If a search request fails
            SQLAlchemyError: If a local write fails
        """
        if _sync_lock.locked():
            raise SyncInProgressError("Sync already in progress")

        async with _sync_lock:
            _set_progress("Starting sync...")
            result = SyncResult(since=since)
            run_id = await self._start_run(since)
            logger.info(f"Starting closed-ticket sync since {since} (run {run_id})")

            try:
                if self.run_timeout:
                    await asyncio.wait_for(self._sync(result, retry_ids), timeout=self.run_timeout)
                else:
                    await self._sync(result, retry_ids)
            except asyncio.TimeoutError as e:
                await self._finish_run(run_id, result, error=f"Timed out after {self.run_timeout}s")
                raise SyncTimeoutError(
                    f"Sync exceeded {self.run_timeout} seconds "
                    f"({result.imported} tickets imported before cancellation)"
                ) from e
            except Exception as e:
                await self._finish_run(run_id, result, error=str(e) or repr(e))
                raise
            finally:
                _set_progress(None)

            await self._finish_run(run_id, result)

        logger.info(
            f"Sync complete: {result.imported} tickets imported, "
            f"{result.failed} failed, {result.pages} page(s), {result.retried} retried"
        )
        if self.events is not None:
            await self.events.emit(EventKind.SYNC_COMPLETED, result.as_dict())

        return result

    async def _sync(self, result: SyncResult, retry_ids: Sequence[Any] = ()) -> None:
        limiter = asyncio.Semaphore(self.concurrency)
        query = build_closed_query(result.since)
        seen = set()

        async for stubs in self.freshdesk.paginate_search(query):
            result.pages += 1
            seen.update(stub.get("id") for stub in stubs)
            _set_progress(f"Hydrating page {result.pages} ({len(stubs)} tickets)...")
            await self._reconcile_stubs(stubs, limiter, result)
            _set_progress(f"Synced {result.imported} tickets...")

        retry_stubs = [
            {"id": ticket_id}
            for ticket_id in dict.fromkeys(to_int(value) for value in retry_ids)
            if ticket_id is not None and ticket_id not in seen
        ]
        if retry_stubs:
            logger.info(f"Retrying {len(retry_stubs)} ticket(s) that failed in an earlier run")
            _set_progress(f"Retrying {len(retry_stubs)} earlier failure(s)...")
            result.retried = len(retry_stubs)
            await self._reconcile_stubs(retry_stubs, limiter, result)

    async def _reconcile_stubs(
        self,
        stubs: Sequence[Mapping[str, Any]],
        limiter: asyncio.Semaphore,
        result: SyncResult
    ) -> None:
        tickets, fetch_failures = await self.hydrate_page(stubs, limiter)
        result.failed_ids.extend(fetch_failures)

        batch = await self.reconciler.upsert_ticket_batch(tickets)
        result.imported += batch.imported
        result.failed_ids.extend(batch.failed_ids)

    async def hydrate_page(
        self,
        stubs: Sequence[Mapping[str, Any]],
        limiter: asyncio.Semaphore
    ) -> Tuple[List[Dict[str, Any]], List[Any]]:
        """
        Fetch full detail for every stub of a page.

        All fetches settle before this returns. A failed fetch is logged and
        reported by id, and the other tickets of the page are still returned.

        Args:
            stubs: Search results ({id, updated_at})
            limiter: Run-wide semaphore bounding in-flight requests

        Returns:
            Tuple of (hydrated tickets in page order, ids that failed)
        """
        async def fetch(ticket_id: Any) -> Dict[str, Any]:
            async with limiter:
                return await self.freshdesk.get_ticket(ticket_id)

        ids = [stub.get("id") for stub in stubs]
        outcomes = await asyncio.gather(
            *(fetch(ticket_id) for ticket_id in ids if ticket_id is not None),
            return_exceptions=True
        )

        tickets: List[Dict[str, Any]] = []
        failed: List[Any] = [None] * sum(1 for ticket_id in ids if ticket_id is None)
        if failed:
            logger.warning(f"{len(failed)} search result(s) without an id")

        for ticket_id, outcome in zip((i for i in ids if i is not None), outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Error fetching ticket {ticket_id}: {outcome}")
                failed.append(ticket_id)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                tickets.append(outcome)

        return tickets, failed

    async def _start_run(self, since: str) -> int:
        run = SyncRun(since=since, status=SYNC_STATUS_RUNNING, started_at=utcnow())
        self.db.add(run)
        await self.db.commit()
        return run.id

    async def _finish_run(
        self,
        run_id: int,
        result: SyncResult,
        error: Optional[str] = None
    ) -> None:
        """Record the outcome of a run (after rolling back any pending work)."""
        await self.db.rollback()
        run = await self.db.get(SyncRun, run_id)
        if error is not None:
            run.status = SYNC_STATUS_FAILED
        elif result.partial:
            run.status = SYNC_STATUS_PARTIAL
        else:
            run.status = SYNC_STATUS_COMPLETED
        run.imported = result.imported
        run.failed = result.failed
        run.failed_ids = list(result.failed_ids)
        run.error = error
        run.completed_at = utcnow()
        await self.db.commit()

    async def get_last_successful_run(self) -> Optional[SyncRun]:
        """
        Most recent run that finished without failures.

        Returns:
            SyncRun, or None if no run has completed cleanly
        """
        result = await self.db.execute(
            select(SyncRun)
            .where(SyncRun.status == SYNC_STATUS_COMPLETED)
            .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_last_finished_run(self) -> Optional[SyncRun]:
        """
        Most recent run that reached the end of its window.

        Partial runs count: the tickets they missed are in ``failed_ids``
        and are retried by the next run, so the window can move on.
        """
        result = await self.db.execute(
            select(SyncRun)
            .where(SyncRun.status.in_((SYNC_STATUS_COMPLETED, SYNC_STATUS_PARTIAL)))
            .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_sync_status(self) -> dict:
        return await get_sync_status(self.db)


async def get_sync_status(db: AsyncSession) -> dict:
    """
    Get current sync status.

    Needs no Freshdesk client, so status requests never open one.

    Returns:
        Dict containing:
        - last_run: Latest SyncRun (any status) or None
        - last_successful_run: Latest completed SyncRun or None
        - is_running: Whether a sync is running in this process
        - current_progress: Progress message of the running sync
    """
    latest = select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(1)
    last_run = (await db.execute(latest)).scalar_one_or_none()
    last_successful = (
        await db.execute(latest.where(SyncRun.status == SYNC_STATUS_COMPLETED))
    ).scalar_one_or_none()

    return {
        "last_run": last_run,
        "last_successful_run": last_successful,
        "is_running": _sync_lock.locked(),
        "current_progress": _sync_progress,
    }


def get_sync_service(
    db: AsyncSession,
    freshdesk_client: Optional[FreshdeskClient] = None,
    events: Optional[EventBus] = None,
) -> SyncService:
    """
    Factory function to create SyncService with dependencies.

    Args:
        db: Async database session
        freshdesk_client: Client to use (defaults to one built from settings)
        events: Event bus to notify

    Returns:
        Configured SyncService instance

    Example:
        >>> async with AsyncSessionLocal() as db:
        ...     sync_service = get_sync_service(db)
        ...     await sync_service.sync_closed_tickets("2025-01-01T00:00:00Z")
    """
    from app.config import settings

    return SyncService(
        db=db,
        freshdesk_client=freshdesk_client or get_freshdesk_client(),
        events=events,
        concurrency=settings.SYNC_CONCURRENCY,
        aliases=settings.ORG_ALIASES,
        require_organization=settings.SYNC_REQUIRE_ORGANIZATION,
        run_timeout=settings.SYNC_RUN_TIMEOUT,
    )
