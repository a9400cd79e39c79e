"""
Main API router aggregating all endpoint modules.
"""

from fastapi import APIRouter

from app.api import freshdesk, tickets, sync

api_router = APIRouter(prefix="/api")

api_router.include_router(freshdesk.router)
api_router.include_router(tickets.router)
api_router.include_router(sync.router)
