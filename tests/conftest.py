"""
Pytest fixtures and configuration for the ticket mirror tests.

This module provides shared fixtures for:
- Test database setup/teardown with async support
- Mock Freshdesk client for sync and API testing
- Test authentication headers
- Sample Freshdesk payloads and model factories
"""

import os

# Settings are read at import time, so the environment comes first
os.environ.setdefault("FRESHDESK_DOMAIN", "test.freshdesk.com")
os.environ.setdefault("FRESHDESK_API_KEY", "test_fd_key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("API_KEY", "test_api_key")
os.environ.setdefault("FD_WEBHOOK_SECRET", "test_webhook_secret")

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable, Dict, List
from unittest.mock import AsyncMock, MagicMock
from faker import Faker

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.events import EventBus
from app.models import FreshdeskTicket, TicketOrg, FdSourceMap, SyncRun
from app.services.freshdesk import FreshdeskClient

fake = Faker()

# In-memory SQLite; StaticPool keeps the single connection the schema lives on
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Create test database engine with in-memory SQLite.

    Each test gets a fresh database instance.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Clean database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


def _paginate(pages: List[List[dict]]) -> Callable:
    async def paginate_search(query):
        for page in pages:
            yield page
    return paginate_search


@pytest.fixture
def make_paginate() -> Callable[[List[List[dict]]], Callable]:
    """Replacement for ``FreshdeskClient.paginate_search`` yielding fixed pages."""
    return _paginate


@pytest.fixture
def mock_freshdesk_client() -> MagicMock:
    """
    Create mock Freshdesk client for testing.

    ``get_ticket`` is an AsyncMock; tests set ``paginate_search`` with
    the ``make_paginate`` fixture.
    """
    mock_client = MagicMock(spec=FreshdeskClient)

    mock_client.get_ticket = AsyncMock()
    mock_client.search_tickets = AsyncMock()
    mock_client.paginate_search = _paginate([])
    mock_client.close = AsyncMock()

    return mock_client


@pytest.fixture
def make_fd_ticket() -> Callable[..., Dict]:
    """
    Factory for hydrated Freshdesk tickets (``GET /tickets/{id}?include=...``).
    """
    def _make(ticket_id: int, company_name="Acme Corp", **overrides) -> Dict:
        email = overrides.pop("email", None) or fake.unique.email().lower()
        requester_id = overrides.pop("requester_id", fake.unique.random_int(min=1000, max=999999))
        ticket = {
            "id": ticket_id,
            "subject": fake.sentence(),
            "status": 5,
            "priority": 2,
            "type": "Incident",
            "source": 1,
            "requester_id": requester_id,
            "company_id": None,
            "created_at": "2025-01-02T10:00:00Z",
            "updated_at": "2025-01-03T12:30:00Z",
            "requester": {
                "id": requester_id,
                "name": fake.name(),
                "email": email,
                "phone": None,
                "mobile": None,
            },
            "company": {"id": None, "name": company_name} if company_name else {},
            "stats": {"closed_at": "2025-01-03T12:30:00Z"},
        }
        ticket.update(overrides)
        return ticket

    return _make


@pytest.fixture
def sample_fd_ticket(make_fd_ticket) -> Dict:
    """Single closed ticket for Acme Corp."""
    return make_fd_ticket(
        100,
        subject="Printer offline",
        email="jane.doe@acme.com",
        requester_id=5001,
        requester={
            "id": 5001,
            "name": "Jane Doe",
            "email": "jane.doe@acme.com",
            "phone": "+56 9 1234 5678",
        },
    )


@pytest_asyncio.fixture
async def create_org(db_session: AsyncSession):
    """Factory fixture for creating organizations."""
    async def _create_org(name: str = None, domains=(), company_ids=()) -> TicketOrg:
        org = TicketOrg(name=(name or fake.company()).strip().upper())
        db_session.add(org)
        await db_session.flush()
        for domain in domains:
            db_session.add(FdSourceMap(domain=domain, ticket_org_id=org.id))
        for company_id in company_ids:
            db_session.add(FdSourceMap(company_id=company_id, ticket_org_id=org.id))
        await db_session.commit()
        await db_session.refresh(org)
        return org

    return _create_org


@pytest_asyncio.fixture
async def create_ticket(db_session: AsyncSession):
    """Factory fixture for creating mirrored tickets directly."""
    async def _create_ticket(**kwargs) -> FreshdeskTicket:
        defaults = {
            "id": fake.unique.random_int(min=10000, max=99999),
            "subject": fake.sentence(),
            "status": 5,
            "priority": 1,
            "type": "Question",
            "source": "2",
            "requester_email": fake.email(),
            "created_at": datetime(2025, 1, 15, 9, 0) - timedelta(days=1),
            "updated_at": datetime(2025, 1, 15, 9, 0),
        }
        defaults.update(kwargs)

        ticket = FreshdeskTicket(**defaults)
        db_session.add(ticket)
        await db_session.commit()
        await db_session.refresh(ticket)
        return ticket

    return _create_ticket


@pytest_asyncio.fixture
async def create_sync_run(db_session: AsyncSession):
    """Factory fixture for recorded sync runs."""
    async def _create_sync_run(**kwargs) -> SyncRun:
        defaults = {
            "since": "2025-01-01T00:00:00Z",
            "status": "completed",
            "imported": 0,
            "failed": 0,
            "started_at": datetime(2025, 1, 10, 12, 0),
            "completed_at": datetime(2025, 1, 10, 12, 1),
        }
        defaults.update(kwargs)

        run = SyncRun(**defaults)
        db_session.add(run)
        await db_session.commit()
        await db_session.refresh(run)
        return run

    return _create_sync_run


@pytest.fixture
def auth_header() -> dict:
    """Valid API key header for /api routes."""
    return {"X-API-Key": os.environ["API_KEY"]}


@pytest.fixture
def invalid_auth_header() -> dict:
    return {"X-API-Key": "wrong_key"}


@pytest.fixture
def webhook_header() -> dict:
    return {"X-FD-Secret": os.environ["FD_WEBHOOK_SECRET"]}
