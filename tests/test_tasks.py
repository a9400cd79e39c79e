"""
Tests for the scheduled closed-ticket sync.

Tests the scheduler setup and the scheduled job itself.
"""

import pytest
from datetime import datetime, timedelta
from sqlalchemy import select
from unittest.mock import AsyncMock, MagicMock, patch

from app.config import settings
from app.models import SyncRun
from app.services import SyncInProgressError, SyncResult
from app.services.freshdesk import FreshdeskRejectedError
from app.services.sync import SyncService
from app.tasks import closed_ticket_sync_job, get_job_status, setup_scheduler, shutdown_scheduler
from app.tasks.scheduler import scheduler


@pytest.mark.asyncio
class TestScheduler:
    """Test scheduler configuration and management."""

    async def test_disabled_by_default(self, monkeypatch):
        monkeypatch.setattr(settings, "SYNC_SCHEDULE_ENABLED", False)

        assert setup_scheduler() is False
        assert scheduler.running is False

    async def test_setup_scheduler(self, monkeypatch):
        monkeypatch.setattr(settings, "SYNC_SCHEDULE_ENABLED", True)
        monkeypatch.setattr(settings, "SYNC_CRON", "*/30 * * * *")

        assert setup_scheduler() is True
        try:
            jobs = get_job_status()
            assert [job["id"] for job in jobs] == ["closed_ticket_sync"]
            assert jobs[0]["next_run"] is not None
        finally:
            shutdown_scheduler()

        # Safe to call twice
        shutdown_scheduler()


@pytest.mark.asyncio
@pytest.mark.sync
class TestClosedTicketSyncJob:
    """The scheduled job wiring."""

    @staticmethod
    def _service(**kwargs):
        service = MagicMock()
        service.get_last_finished_run = AsyncMock(return_value=None)
        service.freshdesk.close = AsyncMock()
        service.sync_closed_tickets = AsyncMock(**kwargs)
        return service

    async def test_job_runs_sync(self, session_factory):
        service = self._service(return_value=SyncResult(since="x", imported=3))

        with patch("app.tasks.scheduler.AsyncSessionLocal", session_factory), \
                patch("app.tasks.scheduler.get_sync_service", return_value=service):
            result = await closed_ticket_sync_job()

        assert result.imported == 3
        since = service.sync_closed_tickets.await_args.args[0]
        assert since.endswith("Z")
        assert service.sync_closed_tickets.await_args.kwargs["retry_ids"] == []
        service.freshdesk.close.assert_awaited_once()

    async def test_job_skips_when_running(self, session_factory):
        service = self._service(side_effect=SyncInProgressError("Sync already in progress"))

        with patch("app.tasks.scheduler.AsyncSessionLocal", session_factory), \
                patch("app.tasks.scheduler.get_sync_service", return_value=service):
            assert await closed_ticket_sync_job() is None

        service.freshdesk.close.assert_awaited_once()

    async def test_job_propagates_failures(self, session_factory):
        service = self._service(side_effect=RuntimeError("boom"))

        with patch("app.tasks.scheduler.AsyncSessionLocal", session_factory), \
                patch("app.tasks.scheduler.get_sync_service", return_value=service):
            with pytest.raises(RuntimeError):
                await closed_ticket_sync_job()

    async def test_job_passes_failed_ids_of_last_partial_run(self, session_factory):
        service = self._service(return_value=SyncResult(since="x"))
        service.get_last_finished_run = AsyncMock(return_value=SyncRun(
            since="2025-01-01T00:00:00Z",
            status="partial",
            started_at=datetime(2025, 1, 10, 12, 0),
            failed_ids=[101, None, 102],
        ))

        with patch("app.tasks.scheduler.AsyncSessionLocal", session_factory), \
                patch("app.tasks.scheduler.get_sync_service", return_value=service):
            await closed_ticket_sync_job()

        call = service.sync_closed_tickets.await_args
        assert call.args[0] == "2025-01-10T11:50:00Z"
        assert call.kwargs["retry_ids"] == [101, 102]


@pytest.mark.asyncio
@pytest.mark.sync
class TestRepeatedScheduledRuns:
    """Several scheduled runs in a row against the same database."""

    async def test_ticket_that_always_fails_does_not_stall_cursor(
        self, session_factory, mock_freshdesk_client, make_fd_ticket
    ):
        # 101 is only in the first search window; later windows have moved past it
        windows = iter([
            [[{"id": 100}, {"id": 101}]],
            [[{"id": 100}]],
            [[{"id": 100}]],
        ])

        async def paginate_search(query):
            for page in next(windows):
                yield page

        ticket = make_fd_ticket(100)

        async def get_ticket(ticket_id, *args, **kwargs):
            if ticket_id == 101:
                raise FreshdeskRejectedError("HTTP 404", status_code=404)
            return ticket

        mock_freshdesk_client.paginate_search = paginate_search
        mock_freshdesk_client.get_ticket.side_effect = get_ticket

        clock = [datetime(2025, 1, 10, 12, 0)]
        results = []

        with patch("app.tasks.scheduler.AsyncSessionLocal", session_factory), \
                patch("app.tasks.scheduler.get_sync_service",
                      side_effect=lambda db, events=None: SyncService(
                          db=db, freshdesk_client=mock_freshdesk_client)), \
                patch("app.services.sync.utcnow", side_effect=lambda: clock[0]):
            for _ in range(3):
                results.append(await closed_ticket_sync_job())
                clock[0] += timedelta(hours=1)

        assert [result.since for result in results[1:]] == [
            "2025-01-10T11:50:00Z",
            "2025-01-10T12:50:00Z",
        ]
        assert [result.failed_ids for result in results] == [[101], [101], [101]]
        assert [result.retried for result in results] == [0, 1, 1]
        assert all(result.imported == 1 for result in results)

        async with session_factory() as db:
            runs = (await db.execute(select(SyncRun).order_by(SyncRun.id))).scalars().all()
        assert [run.status for run in runs] == ["partial", "partial", "partial"]
        assert runs[-1].failed_ids == [101]

    async def test_retried_ticket_clears_once_fetchable(
        self, session_factory, db_session, mock_freshdesk_client, make_fd_ticket,
        make_paginate, create_sync_run
    ):
        await create_sync_run(
            status="partial",
            failed=1,
            failed_ids=[101],
            started_at=datetime(2025, 1, 10, 12, 0),
        )
        tickets = {100: make_fd_ticket(100), 101: make_fd_ticket(101)}

        async def get_ticket(ticket_id, *args, **kwargs):
            return tickets[ticket_id]

        mock_freshdesk_client.paginate_search = make_paginate([[{"id": 100}]])
        mock_freshdesk_client.get_ticket.side_effect = get_ticket

        with patch("app.tasks.scheduler.AsyncSessionLocal", session_factory), \
                patch("app.tasks.scheduler.get_sync_service",
                      side_effect=lambda db, events=None: SyncService(
                          db=db, freshdesk_client=mock_freshdesk_client)):
            result = await closed_ticket_sync_job()

        assert result.since == "2025-01-10T11:50:00Z"
        assert result.retried == 1
        assert result.imported == 2
        assert result.failed_ids == []

        async with session_factory() as db:
            last = (await db.execute(
                select(SyncRun).order_by(SyncRun.id.desc()).limit(1)
            )).scalar_one()
        assert last.status == "completed"
        assert last.failed_ids == []
