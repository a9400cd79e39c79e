"""
API dependency functions for database sessions, clients and authentication.
"""

from typing import AsyncGenerator, Optional
from fastapi import Header, HTTPException, Request, status
import secrets

from app.config import settings
from app.database import get_db
from app.events import EventBus
from app.services.freshdesk import FreshdeskClient, get_freshdesk_client

__all__ = ["get_db", "get_freshdesk", "get_event_bus", "verify_api_key"]


async def get_freshdesk() -> AsyncGenerator[FreshdeskClient, None]:
    """
    Freshdesk client dependency.

    Yields a client whose HTTP connection pool is closed after the request.
    """
    async with get_freshdesk_client() as client:
        yield client


def get_event_bus(request: Request) -> EventBus:
    """The application's event bus (created in the lifespan / app factory)."""
    return request.app.state.events


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key")
) -> bool:
    """
    API key authentication for /api routes.

    Compares the X-API-Key header with the configured key in constant time.

    Args:
        x_api_key: Key from request header

    Returns:
        bool: True if key is valid

    Raises:
        HTTPException: 401 if key is missing or invalid
    """
    if not x_api_key or not secrets.compare_digest(x_api_key.encode(), settings.API_KEY.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )
    return True
