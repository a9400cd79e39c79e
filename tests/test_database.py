"""
Tests for engine URL handling and the request-scoped session.
"""

import pytest
from sqlalchemy import func, select
from unittest.mock import patch

from app.database import get_async_database_url, get_db, get_engine_options
from app.models import SyncRun


@pytest.mark.parametrize("url, expected", [
    ("postgresql://u:p@db:5432/mirror", "postgresql+asyncpg://u:p@db:5432/mirror"),
    ("postgres://u:p@db:5432/mirror", "postgresql+asyncpg://u:p@db:5432/mirror"),
    ("postgresql+asyncpg://u:p@db/mirror", "postgresql+asyncpg://u:p@db/mirror"),
    ("sqlite+aiosqlite:///./mirror.db", "sqlite+aiosqlite:///./mirror.db"),
])
def test_async_database_url(url, expected):
    assert get_async_database_url(url) == expected


def test_sqlite_gets_no_pool_sizing():
    assert get_engine_options("sqlite+aiosqlite:///:memory:") == {}
    assert get_engine_options("postgresql+asyncpg://db/mirror")["pool_pre_ping"] is True


@pytest.mark.asyncio
@pytest.mark.database
class TestGetDb:

    async def test_commits_when_handler_returns(self, session_factory):
        with patch("app.database.AsyncSessionLocal", session_factory):
            sessions = get_db()
            session = await sessions.__anext__()
            session.add(SyncRun(since="2025-01-01T00:00:00Z"))
            with pytest.raises(StopAsyncIteration):
                await sessions.__anext__()

        async with session_factory() as db:
            assert await db.scalar(select(func.count()).select_from(SyncRun)) == 1

    async def test_rolls_back_when_handler_raises(self, session_factory):
        with patch("app.database.AsyncSessionLocal", session_factory):
            sessions = get_db()
            session = await sessions.__anext__()
            session.add(SyncRun(since="2025-01-01T00:00:00Z"))
            with pytest.raises(RuntimeError):
                await sessions.athrow(RuntimeError("handler failed"))

        async with session_factory() as db:
            assert await db.scalar(select(func.count()).select_from(SyncRun)) == 0
