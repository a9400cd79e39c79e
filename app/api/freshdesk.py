"""
Freshdesk API endpoints: closed-ticket sync trigger and automation webhook.
"""

import logging
import secrets
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_event_bus, get_freshdesk, verify_api_key
from app.config import settings
from app.events import EventBus
from app.models import CLOSED_STATUS
from app.schemas import SyncClosedResponse, SyncErrorResponse
from app.services import (
    FreshdeskClient,
    SyncInProgressError,
    TicketReconciler,
    get_sync_service,
)
from app.services.normalization import to_int
from app.utils.datetime import default_since

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fd", tags=["freshdesk"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


@router.get(
    "/sync-closed",
    response_model=SyncClosedResponse,
    responses={409: {"model": SyncErrorResponse}, 500: {"model": SyncErrorResponse}},
)
async def sync_closed(
    since: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    freshdesk: FreshdeskClient = Depends(get_freshdesk),
    events: EventBus = Depends(get_event_bus),
    _: bool = Depends(verify_api_key)
):
    """
    Mirror closed Freshdesk tickets updated since ``since``.

    Runs inline and answers once the run is over.

    Args:
        since: ISO-8601 lower bound (default: SYNC_DEFAULT_LOOKBACK_DAYS ago)

    Returns:
        ``{ok, imported, since, failed, failed_ids}``. ``failed`` > 0 means
        some tickets could not be fetched or were malformed. The rest were
        still saved.
    """
    since = since or default_since(settings.SYNC_DEFAULT_LOOKBACK_DAYS)
    sync_service = get_sync_service(db, freshdesk_client=freshdesk, events=events)

    try:
        result = await sync_service.sync_closed_tickets(since)
    except SyncInProgressError as e:
        return _error(409, str(e))
    except Exception as e:
        logger.error(f"Closed-ticket sync since {since} failed: {e}", exc_info=True)
        return _error(500, str(e) or "error")

    return SyncClosedResponse(
        ok=True,
        imported=result.imported,
        since=since,
        failed=result.failed,
        failed_ids=result.failed_ids,
    )


async def _read_payload(request: Request) -> Dict[str, Any]:
    """Webhook body as a dict; Freshdesk sends JSON or form-encoded data."""
    raw = await request.body()
    if not raw:
        return {}

    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(raw.decode("utf-8", errors="replace")))

    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def extract_ticket_id(payload: Mapping[str, Any], query: Mapping[str, Any]) -> Optional[int]:
    """
    Ticket id from a webhook call.

    Looked up in ``ticket_id``, ``id``, ``ticket.id``, ``data.ticket_id``
    and finally the ``ticket_id`` query parameter.
    """
    ticket = payload.get("ticket") if isinstance(payload.get("ticket"), dict) else {}
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}

    for candidate in (
        payload.get("ticket_id"),
        payload.get("id"),
        ticket.get("id"),
        data.get("ticket_id"),
        query.get("ticket_id"),
    ):
        ticket_id = to_int(candidate)
        if ticket_id is not None and ticket_id > 0:
            return ticket_id
    return None


@router.post("/webhook")
async def freshdesk_webhook(
    request: Request,
    x_fd_secret: Optional[str] = Header(None, alias="X-FD-Secret"),
    db: AsyncSession = Depends(get_db),
    freshdesk: FreshdeskClient = Depends(get_freshdesk),
    events: EventBus = Depends(get_event_bus),
):
    """
    Freshdesk automation webhook.

    Requires the ``X-FD-Secret`` header. Fetches the hydrated ticket and
    mirrors it if it is closed.

    Returns:
        ``{ok: true, saved: id}``, or ``{ok: true, skipped: "not closed", id, status}``
    """
    incoming = (x_fd_secret or "").strip()
    expected = settings.FD_WEBHOOK_SECRET.strip()
    if not incoming or not expected or not secrets.compare_digest(incoming.encode(), expected.encode()):
        return _error(401, "unauthorized")

    payload = await _read_payload(request)
    ticket_id = extract_ticket_id(payload, request.query_params)
    if ticket_id is None:
        return _error(400, "missing ticket_id")

    try:
        ticket = await freshdesk.get_ticket(ticket_id)

        status = to_int(ticket.get("status"))
        if status != CLOSED_STATUS:
            return {"ok": True, "skipped": "not closed", "id": ticket_id, "status": status}

        reconciler = TicketReconciler(
            db,
            events=events,
            aliases=settings.ORG_ALIASES,
            require_organization=settings.SYNC_REQUIRE_ORGANIZATION,
        )
        batch = await reconciler.upsert_ticket_batch([ticket])
    except Exception as e:
        logger.error(f"Webhook for ticket {ticket_id} failed: {e}", exc_info=True)
        return _error(500, str(e) or "error")

    if batch.failed:
        return _error(422, f"ticket {ticket_id} is malformed")

    logger.info(f"Webhook saved ticket {ticket_id}")
    return {"ok": True, "saved": ticket_id}
