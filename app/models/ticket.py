"""
Ticket model for mirrored Freshdesk tickets.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.utils.datetime import utcnow

CLOSED_STATUS = 5


class FreshdeskTicket(Base):
    """
    Local mirror of a Freshdesk ticket.

    The primary key is the remote ticket id, so there is never more than one
    row per remote ticket. Remote timestamps are stored as naive UTC.
    """

    __tablename__ = "freshdesk_tickets"

    # Remote id, never generated locally
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    subject: Mapped[Optional[str]] = mapped_column(String(500))
    status: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    priority: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    type: Mapped[Optional[str]] = mapped_column(String(100))
    source: Mapped[Optional[str]] = mapped_column(String(50))
    requester_email: Mapped[Optional[str]] = mapped_column(String(255), index=True)

    # Remote timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    # Last time the local row was written by a sync
    captured_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        server_default=func.now()
    )

    ticket_org_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("ticket_orgs.id", ondelete="SET NULL"),
        index=True
    )
    ticket_requester_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("ticket_requesters.id", ondelete="SET NULL"),
        index=True
    )

    # Relationships
    ticket_org: Mapped[Optional["TicketOrg"]] = relationship(
        "TicketOrg",
        back_populates="tickets"
    )
    ticket_requester: Mapped[Optional["TicketRequester"]] = relationship(
        "TicketRequester",
        back_populates="tickets"
    )

    @property
    def is_closed(self) -> bool:
        return self.status == CLOSED_STATUS

    def __repr__(self) -> str:
        return f"<FreshdeskTicket(id={self.id}, status={self.status}, subject='{self.subject}')>"
