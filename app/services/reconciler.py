"""
Reconciler for hydrated Freshdesk tickets.

Takes ticket records as returned by ``GET /tickets/{id}?include=requester,company,stats``
and makes the local mirror match them:

1. Validates the record (id, status, timestamps)
2. Resolves the organization by normalized company name, falling back to
   the FdSourceMap (company id, then requester email domain)
3. Resolves or creates the requester by Freshdesk requester id, then email
4. Upserts the ticket keyed on its remote id, touching the row only when a
   mirrored field actually changed

Each record is committed on its own, so an interrupted batch leaves the
already-processed records in place and a re-run converges.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.events import EventBus, EventKind
from app.models import FdSourceMap, FreshdeskTicket, TicketOrg, TicketRequester
from app.services.normalization import (
    clean_phone,
    email_domain,
    email_local_part,
    normalize_email,
    normalize_org_name,
    to_int,
)
from app.utils.datetime import parse_remote_datetime, utcnow

logger = logging.getLogger(__name__)

# Columns overwritten on every sync (last sync wins)
MIRRORED_COLUMNS = (
    "subject",
    "status",
    "priority",
    "type",
    "source",
    "requester_email",
    "created_at",
    "updated_at",
    "ticket_org_id",
    "ticket_requester_id",
)


class DataContractViolation(ValueError):
    """A remote ticket record is missing data the mirror cannot do without."""

    def __init__(self, message: str, ticket_id: Any = None):
        super().__init__(message)
        self.ticket_id = ticket_id


@dataclass
class ParsedTicket:
    id: int
    subject: Optional[str]
    status: int
    priority: int
    type: Optional[str]
    source: Optional[str]
    created_at: datetime
    updated_at: datetime
    requester_email: Optional[str]
    requester_name: Optional[str]
    requester_phone: Optional[str]
    fd_requester_id: Optional[int]
    company_name: Optional[str]
    company_id: Optional[int]


@dataclass
class BatchResult:
    """Outcome of reconciling one batch."""
    imported: int = 0
    failed_ids: List[Any] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_ids)


def parse_ticket(record: Mapping[str, Any]) -> ParsedTicket:
    """
    Validate a hydrated ticket record and pull out the fields we mirror.

    Raises:
        DataContractViolation: If id, status or timestamps are missing/invalid
    """
    raw_id = record.get("id")
    ticket_id = to_int(raw_id)
    if ticket_id is None:
        raise DataContractViolation(f"Ticket record without a valid id: {raw_id!r}", raw_id)

    status = to_int(record.get("status"))
    if status is None:
        raise DataContractViolation(f"Ticket {ticket_id} has no status", ticket_id)

    created_at = parse_remote_datetime(record.get("created_at"))
    updated_at = parse_remote_datetime(record.get("updated_at"))
    if created_at is None or updated_at is None:
        raise DataContractViolation(
            f"Ticket {ticket_id} has invalid timestamps "
            f"(created_at={record.get('created_at')!r}, updated_at={record.get('updated_at')!r})",
            ticket_id
        )

    requester = record.get("requester") or {}
    company = record.get("company") or {}
    source = record.get("source")

    return ParsedTicket(
        id=ticket_id,
        subject=record.get("subject"),
        status=status,
        priority=to_int(record.get("priority")) or 1,
        type=record.get("type"),
        source=str(source) if source is not None else None,
        created_at=created_at,
        updated_at=updated_at,
        requester_email=normalize_email(record.get("email") or requester.get("email")),
        requester_name=(requester.get("name") or "").strip() or None,
        requester_phone=clean_phone(requester.get("phone") or requester.get("mobile")),
        fd_requester_id=to_int(record.get("requester_id") or requester.get("id")),
        company_name=company.get("name"),
        company_id=to_int(
            record.get("company_id") or company.get("id") or requester.get("company_id")
        ),
    )


class TicketReconciler:
    """Upserts hydrated Freshdesk tickets and their related rows."""

    def __init__(
        self,
        db: AsyncSession,
        events: Optional[EventBus] = None,
        aliases: Optional[Mapping[str, str]] = None,
        require_organization: bool = False,
    ):
        """
        Args:
            db: Async database session
            events: Bus notified about requester changes (optional)
            aliases: Normalized org name -> canonical org name
            require_organization: Reject tickets whose organization cannot be resolved
        """
        self.db = db
        self.events = events
        self.aliases = dict(aliases or {})
        self.require_organization = require_organization
        self._org_ids: Dict[str, int] = {}
        self._pending_events: List[Tuple[EventKind, Dict[str, Any]]] = []

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise NotImplementedError(f"Upserts are not implemented for {dialect}")

    async def upsert_ticket_batch(self, tickets: Sequence[Mapping[str, Any]]) -> BatchResult:
        """
        Reconcile a batch of hydrated tickets in order.

        Malformed records are logged and skipped. Database errors roll back
        the current record and propagate.

        Returns:
            BatchResult with the number imported and the ids that were skipped
        """
        result = BatchResult()

        for record in tickets:
            try:
                await self.upsert_ticket(record)
            except DataContractViolation as e:
                await self.db.rollback()
                self._org_ids.clear()
                self._pending_events.clear()
                logger.warning(f"Skipping malformed ticket: {e}")
                result.failed_ids.append(e.ticket_id)
                continue
            except SQLAlchemyError:
                await self.db.rollback()
                self._org_ids.clear()
                self._pending_events.clear()
                raise

            await self.db.commit()
            await self._flush_events()
            result.imported += 1

        return result

    async def upsert_ticket(self, record: Mapping[str, Any]) -> int:
        """
        Upsert one ticket and its organization/requester (no commit).

        Returns:
            The ticket id
        """
        parsed = parse_ticket(record)

        ticket_org_id = await self.resolve_org_id(parsed)
        if ticket_org_id is None and self.require_organization:
            raise DataContractViolation(
                f"Ticket {parsed.id} has no resolvable organization", parsed.id
            )

        ticket_requester_id = await self.resolve_requester_id(
            fd_requester_id=parsed.fd_requester_id,
            email=parsed.requester_email,
            phone=parsed.requester_phone,
            name=parsed.requester_name,
            ticket_org_id=ticket_org_id,
        )

        values = {
            "id": parsed.id,
            "subject": parsed.subject,
            "status": parsed.status,
            "priority": parsed.priority,
            "type": parsed.type,
            "source": parsed.source,
            "requester_email": parsed.requester_email,
            "created_at": parsed.created_at,
            "updated_at": parsed.updated_at,
            "ticket_org_id": ticket_org_id,
            "ticket_requester_id": ticket_requester_id,
            "captured_at": utcnow(),
        }

        table = FreshdeskTicket.__table__
        stmt = self._insert(FreshdeskTicket).values(**values)
        excluded = stmt.excluded
        changed = or_(*(table.c[name].is_distinct_from(excluded[name]) for name in MIRRORED_COLUMNS))

        update_set = {name: excluded[name] for name in MIRRORED_COLUMNS}
        update_set["captured_at"] = excluded["captured_at"]

        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_=update_set,
            where=changed,
        )
        await self.db.execute(stmt)
        logger.debug(f"Upserted ticket {parsed.id}")

        return parsed.id

    async def upsert_org(self, name: str) -> int:
        """
        Get or create an organization by normalized name.

        Args:
            name: Raw organization name (normalized here)

        Returns:
            TicketOrg id

        Raises:
            ValueError: If the name is blank
        """
        key = normalize_org_name(name, self.aliases)
        if key is None:
            raise ValueError("Organization name is blank")

        if key in self._org_ids:
            return self._org_ids[key]

        stmt = (
            self._insert(TicketOrg)
            .values(name=key, created_at=utcnow())
            .on_conflict_do_nothing(index_elements=[TicketOrg.__table__.c.name])
        )
        await self.db.execute(stmt)

        result = await self.db.execute(select(TicketOrg.id).where(TicketOrg.name == key))
        org_id = result.scalar_one()
        self._org_ids[key] = org_id
        return org_id

    async def map_source(
        self,
        org_name: str,
        domain: Optional[str] = None,
        company_id: Optional[int] = None
    ) -> int:
        """
        Point an email domain or a Freshdesk company id at an organization.

        Each row holds one key; when both are given only the domain is mapped.
        Re-mapping an existing key moves it to the new org.

        Returns:
            TicketOrg id the key now maps to

        Raises:
            ValueError: If neither a domain nor a company id is given
        """
        domain = (domain or "").strip().lower() or None
        if domain is None and company_id is None:
            raise ValueError("A domain or a company id is required")

        org_id = await self.upsert_org(org_name)
        table = FdSourceMap.__table__
        key = table.c.domain if domain is not None else table.c.company_id

        stmt = (
            self._insert(FdSourceMap)
            .values(domain=domain, company_id=company_id if domain is None else None, ticket_org_id=org_id)
            .on_conflict_do_update(index_elements=[key], set_={"ticket_org_id": org_id})
        )
        await self.db.execute(stmt)
        return org_id

    async def resolve_org_id(self, parsed: ParsedTicket) -> Optional[int]:
        """
        Organization for a ticket: company name first, then FdSourceMap by
        company id, then FdSourceMap by requester email domain.
        """
        if normalize_org_name(parsed.company_name) is not None:
            return await self.upsert_org(parsed.company_name)

        if parsed.company_id is not None:
            result = await self.db.execute(
                select(FdSourceMap.ticket_org_id).where(FdSourceMap.company_id == parsed.company_id)
            )
            org_id = result.scalar_one_or_none()
            if org_id is not None:
                return org_id

        domain = email_domain(parsed.requester_email)
        if domain:
            result = await self.db.execute(
                select(FdSourceMap.ticket_org_id).where(FdSourceMap.domain == domain)
            )
            org_id = result.scalar_one_or_none()
            if org_id is not None:
                return org_id

        logger.info(f"Ticket {parsed.id}: no organization resolved")
        return None

    async def resolve_requester_id(
        self,
        fd_requester_id: Optional[int],
        email: Optional[str],
        phone: Optional[str],
        name: Optional[str],
        ticket_org_id: Optional[int],
    ) -> Optional[int]:
        """
        Find or create the requester for a ticket.

        Lookup is by Freshdesk requester id, then by email. Existing rows only
        get missing fields filled in (plus a changed name), and ``updated_at``
        moves only when something changed. Without an id or an email there
        is nothing stable to match on, so no requester is linked.
        """
        if fd_requester_id is None and email is None:
            return None

        requester = None
        if fd_requester_id is not None:
            requester = await self._requester_by(TicketRequester.fd_requester_id, fd_requester_id)
        if requester is None and email:
            requester = await self._requester_by(TicketRequester.email, email)

        if requester is None:
            requester = TicketRequester(
                name=name or email_local_part(email) or "Requester",
                email=email,
                phone=phone,
                fd_requester_id=fd_requester_id,
                ticket_org_id=ticket_org_id,
                updated_at=utcnow(),
            )
            self.db.add(requester)
            await self.db.flush()
            self._queue_event(EventKind.REQUESTER_CREATED, requester)
            return requester.id

        changes: Dict[str, Any] = {}
        if fd_requester_id is not None and requester.fd_requester_id is None:
            changes["fd_requester_id"] = fd_requester_id
        if email and not requester.email:
            if await self._requester_by(TicketRequester.email, email) is None:
                changes["email"] = email
        if phone and not requester.phone:
            changes["phone"] = phone
        if name and name != requester.name:
            changes["name"] = name
        if ticket_org_id and not requester.ticket_org_id:
            changes["ticket_org_id"] = ticket_org_id

        if changes:
            for key, value in changes.items():
                setattr(requester, key, value)
            requester.updated_at = utcnow()
            await self.db.flush()
            self._queue_event(EventKind.REQUESTER_UPDATED, requester, changed=sorted(changes))

        return requester.id

    async def _requester_by(self, column, value) -> Optional[TicketRequester]:
        result = await self.db.execute(select(TicketRequester).where(column == value))
        return result.scalar_one_or_none()

    def _queue_event(self, kind: EventKind, requester: TicketRequester, **extra) -> None:
        if self.events is None:
            return
        payload = {
            "id": requester.id,
            "name": requester.name,
            "email": requester.email,
            "fd_requester_id": requester.fd_requester_id,
            "ticket_org_id": requester.ticket_org_id,
        }
        payload.update(extra)
        self._pending_events.append((kind, payload))

    async def _flush_events(self) -> None:
        pending, self._pending_events = self._pending_events, []
        for kind, payload in pending:
            await self.events.emit(kind, payload)
