"""
FdSourceMap model: routes Freshdesk companies and email domains to orgs.
"""

from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class FdSourceMap(Base):
    """
    Fallback mapping used when a ticket carries no company name.

    Each row maps either an email domain or a Freshdesk company id (never
    both empty) onto a TicketOrg.
    """

    __tablename__ = "fd_source_map"
    __table_args__ = (
        CheckConstraint(
            "domain IS NOT NULL OR company_id IS NOT NULL",
            name="ck_fd_source_map_key"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    company_id: Mapped[Optional[int]] = mapped_column(BigInteger, unique=True)
    ticket_org_id: Mapped[int] = mapped_column(
        ForeignKey("ticket_orgs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    ticket_org: Mapped["TicketOrg"] = relationship(
        "TicketOrg",
        back_populates="source_maps"
    )

    def __repr__(self) -> str:
        return (
            f"<FdSourceMap(id={self.id}, domain={self.domain!r}, "
            f"company_id={self.company_id}, ticket_org_id={self.ticket_org_id})>"
        )
