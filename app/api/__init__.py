"""
API endpoints module.
"""

from app.api import freshdesk, tickets, sync
from app.api.router import api_router

__all__ = [
    "freshdesk",
    "tickets",
    "sync",
    "api_router",
]
