"""
Organization model: local cache of Freshdesk companies.
"""

from datetime import datetime
from typing import List

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.utils.datetime import utcnow


class TicketOrg(Base):
    """
    Organization a ticket belongs to.

    ``name`` is always the normalized key (see
    ``app.services.normalization.normalize_org_name``) and is unique, so
    every seed and sync path that goes through the normalizer lands on the
    same row.
    """

    __tablename__ = "ticket_orgs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        server_default=func.now()
    )

    # Relationships
    tickets: Mapped[List["FreshdeskTicket"]] = relationship(
        "FreshdeskTicket",
        back_populates="ticket_org"
    )
    requesters: Mapped[List["TicketRequester"]] = relationship(
        "TicketRequester",
        back_populates="ticket_org"
    )
    source_maps: Mapped[List["FdSourceMap"]] = relationship(
        "FdSourceMap",
        back_populates="ticket_org",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<TicketOrg(id={self.id}, name='{self.name}')>"
