"""CLI tools for the ticket mirror: seeding organizations and running syncs."""

import asyncio
import json
from typing import Optional, Sequence

import click

from app.config import settings
from app.database import AsyncSessionLocal, close_db
from app.events import EventBus
from app.services import SyncInProgressError, TicketReconciler, get_sync_service
from app.services.normalization import normalize_org_name, to_int
from app.utils.datetime import default_since


def _run(coro):
    """Run a coroutine and dispose of the engine afterwards."""
    async def runner():
        try:
            return await coro
        finally:
            await close_db()
    return asyncio.run(runner())


def _reconciler(db) -> TicketReconciler:
    return TicketReconciler(db, aliases=settings.ORG_ALIASES)


@click.group()
def cli():
    """Freshdesk ticket mirror CLI tools."""
    pass


async def _seed_orgs(names: Sequence[str]) -> int:
    async with AsyncSessionLocal() as db:
        reconciler = _reconciler(db)
        for name in names:
            await reconciler.upsert_org(name)
        await db.commit()
    return len(names)


@cli.command()
@click.argument("names", nargs=-1, required=True)
def seed_orgs(names: Sequence[str]):
    """
    Create organizations (names are trimmed, upper-cased and aliased).

    Example:
        python -m app.cli seed-orgs "Alianz" "Clinica Nace"
    """
    names = [name for name in names if normalize_org_name(name)]
    if not names:
        raise click.UsageError("No non-blank organization names given")

    count = _run(_seed_orgs(names))
    click.echo(f"✓ Seeded {count} organization(s)")


async def _map_sources(org: str, domains: Sequence[str] = (), company_ids: Sequence[int] = ()) -> int:
    async with AsyncSessionLocal() as db:
        reconciler = _reconciler(db)
        org_id = None
        for domain in domains:
            org_id = await reconciler.map_source(org, domain=domain)
        for company_id in company_ids:
            org_id = await reconciler.map_source(org, company_id=company_id)
        await db.commit()
    return org_id


@cli.command()
@click.argument("org")
@click.argument("domains", nargs=-1, required=True)
def map_domain(org: str, domains: Sequence[str]):
    """
    Map requester email domains to an organization.

    Example:
        python -m app.cli map-domain "Clinica Nace" clinicanace.cl nace.cl
    """
    if not normalize_org_name(org):
        raise click.UsageError("Organization name is blank")

    org_id = _run(_map_sources(org, domains=domains))
    click.echo(f"✓ Mapped {len(domains)} domain(s) to {normalize_org_name(org, settings.ORG_ALIASES)} (id {org_id})")


@cli.command()
@click.argument("org")
@click.argument("company_ids", nargs=-1, required=True)
def map_company(org: str, company_ids: Sequence[str]):
    """
    Map Freshdesk company ids to an organization.

    Example:
        python -m app.cli map-company Bodegal 73000589521
    """
    if not normalize_org_name(org):
        raise click.UsageError("Organization name is blank")

    parsed = [to_int(value) for value in company_ids]
    if any(value is None for value in parsed):
        raise click.BadParameter("Company ids must be integers", param_hint="COMPANY_IDS")

    org_id = _run(_map_sources(org, company_ids=parsed))
    click.echo(f"✓ Mapped {len(parsed)} company id(s) to {normalize_org_name(org, settings.ORG_ALIASES)} (id {org_id})")


async def _sync_closed(since: str) -> dict:
    async with AsyncSessionLocal() as db:
        sync_service = get_sync_service(db, events=EventBus())
        try:
            result = await sync_service.sync_closed_tickets(since)
        finally:
            await sync_service.freshdesk.close()
    return result.as_dict()


@cli.command()
@click.option("--since", default=None, help="ISO-8601 lower bound (default: lookback window)")
def sync_closed(since: Optional[str]):
    """
    Mirror closed tickets updated since --since and print the result as JSON.

    Example:
        python -m app.cli sync-closed --since 2025-01-01T00:00:00Z
    """
    since = since or default_since(settings.SYNC_DEFAULT_LOOKBACK_DAYS)
    try:
        result = _run(_sync_closed(since))
    except SyncInProgressError as e:
        raise click.ClickException(str(e))

    click.echo(json.dumps({"ok": True, **result}, default=str))
    if result["failed"]:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
