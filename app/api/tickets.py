"""
Tickets API endpoints for browsing the mirrored Freshdesk tickets.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager, selectinload

from app.api.deps import get_db, verify_api_key
from app.config import settings
from app.filters import Contains, DateRange, Equals, compile_predicates, month_range
from app.models import FreshdeskTicket, TicketOrg, TicketRequester
from app.schemas import TicketDetailResponse, TicketListItem, TicketListResponse

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    status: Optional[int] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(verify_api_key)
):
    """
    List mirrored tickets, newest first.

    Supports filtering by:
    - status: Freshdesk status code (5 = closed)
    - year / month: Creation date within a calendar year or month (UTC)
    - search: Case-insensitive match on subject, requester email, organization
    """
    predicates = []

    if status is not None:
        predicates.append(Equals(FreshdeskTicket.status, status))

    if year is not None:
        try:
            start, end = month_range(year, month)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        predicates.append(DateRange(FreshdeskTicket.created_at, start, end))
    elif month is not None:
        raise HTTPException(status_code=400, detail="month requires year")

    if search:
        predicates.append(Contains(
            (
                FreshdeskTicket.subject,
                FreshdeskTicket.requester_email,
                TicketRequester.email,
                TicketOrg.name,
            ),
            search,
        ))

    query = (
        select(FreshdeskTicket)
        .outerjoin(FreshdeskTicket.ticket_org)
        .outerjoin(FreshdeskTicket.ticket_requester)
    )
    clauses = compile_predicates(predicates)
    if clauses:
        query = query.where(*clauses)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = (
        query.options(
            contains_eager(FreshdeskTicket.ticket_org),
            contains_eager(FreshdeskTicket.ticket_requester),
        )
        .order_by(FreshdeskTicket.created_at.desc(), FreshdeskTicket.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(query)
    tickets = result.scalars().all()

    rows = [
        TicketListItem(
            ticket_id=str(ticket.id),
            requester_email=(
                ticket.ticket_requester.email if ticket.ticket_requester else None
            ) or ticket.requester_email,
            organization=ticket.ticket_org.name if ticket.ticket_org else None,
            subject=ticket.subject,
            type=ticket.type,
            created_at=ticket.created_at,
        )
        for ticket in tickets
    ]

    return TicketListResponse(page=page, page_size=page_size, total=total or 0, rows=rows)


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
async def get_ticket(
    ticket_id: int,
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(verify_api_key)
):
    """
    Get a single mirrored ticket with its organization and requester.

    Args:
        ticket_id: Freshdesk ticket ID
    """
    query = (
        select(FreshdeskTicket)
        .where(FreshdeskTicket.id == ticket_id)
        .options(
            selectinload(FreshdeskTicket.ticket_org),
            selectinload(FreshdeskTicket.ticket_requester),
        )
    )
    result = await db.execute(query)
    ticket = result.scalar_one_or_none()

    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")

    return TicketDetailResponse(
        id=ticket.id,
        subject=ticket.subject,
        status=ticket.status,
        priority=ticket.priority,
        type=ticket.type,
        source=ticket.source,
        requester_email=ticket.requester_email,
        requester_name=ticket.ticket_requester.name if ticket.ticket_requester else None,
        organization=ticket.ticket_org.name if ticket.ticket_org else None,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
        captured_at=ticket.captured_at,
        freshdesk_url=f"https://{settings.FRESHDESK_DOMAIN}/a/tickets/{ticket.id}",
    )
