"""
Async engine and sessions for the ticket mirror.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite) for tests and local
CLI runs. Schema changes go through Alembic.
"""

from typing import Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
from app.config import settings


class Base(DeclarativeBase):
    pass


def get_async_database_url(url: str) -> str:
    """Point plain postgres URLs (either scheme spelling) at the asyncpg driver."""
    for scheme in ("postgresql://", "postgres://"):
        if url.startswith(scheme):
            return "postgresql+asyncpg://" + url[len(scheme):]
    return url


def get_engine_options(url: str) -> Dict[str, Any]:
    # SQLite pools take no size arguments
    if url.startswith("sqlite"):
        return {}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


_database_url = get_async_database_url(settings.DATABASE_URL)

engine: AsyncEngine = create_async_engine(_database_url, **get_engine_options(_database_url))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session: committed when the handler returns, rolled back if it raises."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def close_db() -> None:
    """Dispose of pooled connections (app shutdown and CLI exit)."""
    await engine.dispose()
