"""
Freshdesk Ticket Mirror API - Main FastAPI Application
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import __version__
from app.api.router import api_router
from app.config import settings
from app.database import close_db
from app.events import EventBus
from app.middleware import RequestLoggingMiddleware
from app.schemas import HealthResponse
from app.tasks import setup_scheduler, shutdown_scheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for startup and shutdown events.

    Handles:
    - Scheduled sync startup (when SYNC_SCHEDULE_ENABLED)
    - Scheduler shutdown and database connection cleanup
    """
    logger.info("Starting up Freshdesk Ticket Mirror API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"CORS Origins: {settings.cors_origins_list}")

    # Tables are managed by Alembic
    setup_scheduler(events=app.state.events)
    logger.info("Startup complete")

    yield

    logger.info("Shutting down Freshdesk Ticket Mirror API...")
    shutdown_scheduler()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with its own event bus."""
    application = FastAPI(
        title="Freshdesk Ticket Mirror API",
        description="Mirrors closed Freshdesk tickets into a relational store",
        version=__version__,
        lifespan=lifespan,
    )
    application.state.events = EventBus()

    application.add_middleware(RequestLoggingMiddleware)

    cors_origins = settings.cors_origins_list
    if settings.ENVIRONMENT == "production" and "*" in cors_origins:
        logger.warning(
            "CORS is set to allow all origins (*) in production. "
            "Set CORS_ORIGINS to specific origins."
        )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key", "X-FD-Secret"],
        max_age=600,
    )

    @application.get("/health", response_model=HealthResponse)
    async def health_check():
        """
        Health check endpoint.

        Returns:
            dict: Health status
        """
        return {
            "status": "healthy",
            "service": "freshdesk-ticket-mirror",
            "version": __version__
        }

    @application.get("/")
    async def root():
        """API information."""
        return {
            "name": "Freshdesk Ticket Mirror API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health"
        }

    application.include_router(api_router)
    return application


app = create_app()
