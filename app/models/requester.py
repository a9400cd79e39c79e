"""
Requester model for people who open tickets.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.utils.datetime import utcnow


class TicketRequester(Base):
    """
    Ticket requester, matched by Freshdesk requester id first and by
    lower-cased email second.
    """

    __tablename__ = "ticket_requesters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    fd_requester_id: Mapped[Optional[int]] = mapped_column(BigInteger, unique=True)

    ticket_org_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("ticket_orgs.id", ondelete="SET NULL"),
        index=True
    )

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Relationships
    ticket_org: Mapped[Optional["TicketOrg"]] = relationship(
        "TicketOrg",
        back_populates="requesters"
    )
    tickets: Mapped[List["FreshdeskTicket"]] = relationship(
        "FreshdeskTicket",
        back_populates="ticket_requester"
    )

    def __repr__(self) -> str:
        return (
            f"<TicketRequester(id={self.id}, email='{self.email}', "
            f"fd_requester_id={self.fd_requester_id})>"
        )
