"""CLI entry point for the evenntz coordinator."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Awaitable, Callable

import click

from evenntz_coordinator.config import load_config
from evenntz_coordinator.errors import CoordinatorError
from evenntz_coordinator.manifest import load_manifest
from evenntz_coordinator.models.config import CoordinatorConfig
from evenntz_coordinator.models.records import PublicationOutcome, TicketOutcome
from evenntz_coordinator.runtime import CoordinatorRuntime


def _require_secret(cfg: CoordinatorConfig) -> None:
    """Exit with error if no keypair secret is configured."""
    if not cfg.keypair_secret:
        click.echo("Error: No keypair secret configured.", err=True)
        click.echo("Set EVENNTZ_SECRET env var or keypair_secret in config.", err=True)
        sys.exit(1)


def _require_factory(cfg: CoordinatorConfig) -> None:
    """Exit with error if no factory contract ID is configured."""
    if not cfg.factory_contract_id:
        click.echo("Error: No factory contract ID configured.", err=True)
        click.echo("Set EVENNTZ_FACTORY_ID or check deployments.json.", err=True)
        sys.exit(1)


def _run(
    ctx: click.Context,
    body: Callable[[CoordinatorRuntime], Awaitable[int]],
    *,
    signing: bool = False,
) -> None:
    """Build the runtime, run ``body`` and exit with its status code."""
    cfg = load_config(ctx.obj["config_path"])
    _require_factory(cfg)
    if signing:
        _require_secret(cfg)

    async def _inner() -> int:
        async with CoordinatorRuntime(cfg) as runtime:
            return await body(runtime)

    try:
        code = asyncio.run(_inner())
    except CoordinatorError as exc:
        click.echo(f"Error ({exc.kind}): {exc}", err=True)
        code = 1
    sys.exit(code)


def _print_publication(outcome: PublicationOutcome) -> int:
    click.echo(f"Attempt:    {outcome.attempt_id}")
    click.echo(f"Status:     {outcome.status.value}")
    if outcome.failure:
        click.echo(f"Failure:    {outcome.failure.value}")
    if outcome.event_address:
        click.echo(f"Event:      {outcome.event_address}")
    if outcome.record_id:
        click.echo(f"Record:     {outcome.record_id}")
    if outcome.content_id:
        click.echo(f"Media CID:  {outcome.content_id}")
    if outcome.tx_handle:
        click.echo(f"Tx:         {outcome.tx_handle.tx_hash}")
    if outcome.compensated and outcome.compensation_tx:
        click.echo(f"Deactivate: {outcome.compensation_tx.tx_hash}")
    if outcome.uncompensated_address:
        click.echo(f"UNCOMPENSATED EVENT: {outcome.uncompensated_address}")
    if outcome.error:
        click.echo(f"Error:      {outcome.error}")
    if outcome.needs_attention:
        click.echo("Follow up with 'evenntz reconcile " + outcome.attempt_id + "'.")
    return 0 if outcome.success else 1


def _print_ticket(outcome: TicketOutcome) -> int:
    verdict = "ok" if outcome.success else f"FAILED ({outcome.failure.value})"
    click.echo(f"{outcome.operation.value}: {verdict}")
    if outcome.ticket_contract:
        click.echo(f"  Ticket contract: {outcome.ticket_contract}")
    if outcome.token_id is not None:
        click.echo(f"  Token:           {outcome.token_id}")
    if outcome.tx_handle:
        click.echo(f"  Tx:              {outcome.tx_handle.tx_hash}")
    if outcome.error:
        click.echo(f"  Error:           {outcome.error}")
    return 0 if outcome.success else 1


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """evenntz - event publication and ticket lifecycle coordinator."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show coordinator configuration."""
    cfg = load_config(ctx.obj["config_path"])
    click.echo(f"Network:    {cfg.network}")
    click.echo(f"RPC URL:    {cfg.rpc_url}")
    click.echo(f"Factory:    {cfg.factory_contract_id or '(not set)'}")
    click.echo(f"Kubo RPC:   {cfg.kubo_rpc_url}")
    click.echo(f"Store:      {cfg.store_backend.value}")
    if cfg.store_backend.value == "http":
        click.echo(f"API URL:    {cfg.api_url}")
    click.echo(f"DB path:    {cfg.db_path}")
    click.echo(f"Timeout:    {cfg.confirmation_timeout:g}s")
    click.echo(f"Secret:     {'***configured***' if cfg.keypair_secret else '(not set)'}")


# ── Publication ────────────────────────────────────────


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False))
@click.option("--timeout", type=float, default=None, help="Confirmation timeout (seconds)")
@click.pass_context
def publish(ctx: click.Context, manifest: str, timeout: float | None) -> None:
    """Publish the event described by a TOML manifest."""
    try:
        request = load_manifest(manifest)
    except CoordinatorError as exc:
        click.echo(f"Error ({exc.kind}): {exc}", err=True)
        sys.exit(1)

    async def _publish(runtime: CoordinatorRuntime) -> int:
        outcome = await runtime.publication.publish(request, confirmation_timeout=timeout)
        return _print_publication(outcome)

    _run(ctx, _publish, signing=True)


@cli.command()
@click.pass_context
def pending(ctx: click.Context) -> None:
    """List publications needing follow-up."""

    async def _pending(runtime: CoordinatorRuntime) -> int:
        entries = await runtime.journal.get_unresolved()
        if not entries:
            click.echo("No unresolved publications.")
            return 0
        for e in entries:
            click.echo(f"{e.attempt_id}  {e.status:<20} {e.metadata.get('name', '?')}")
            if e.tx_hash:
                click.echo(f"    tx:    {e.tx_hash}")
            if e.event_address:
                click.echo(f"    event: {e.event_address}")
            if e.error:
                click.echo(f"    error: {e.error}")
        return 0

    _run(ctx, _pending)


@cli.command()
@click.argument("attempt_id")
@click.option("--timeout", type=float, default=None, help="Confirmation timeout (seconds)")
@click.pass_context
def reconcile(ctx: click.Context, attempt_id: str, timeout: float | None) -> None:
    """Resolve an indeterminate or compensated-failure publication."""

    async def _reconcile(runtime: CoordinatorRuntime) -> int:
        entry = await runtime.journal.get_entry(attempt_id)
        if entry is None:
            click.echo(f"No journal entry for attempt {attempt_id}.", err=True)
            return 1
        if entry.resolved:
            click.echo(f"Attempt {attempt_id} already resolved ({entry.status}).")
            return 0
        outcome = await runtime.publication.reconcile(entry, confirmation_timeout=timeout)
        return _print_publication(outcome)

    _run(ctx, _reconcile, signing=True)


@cli.command()
@click.argument("event_address")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def deactivate(ctx: click.Context, event_address: str, yes: bool) -> None:
    """Deactivate a published event and mark its record."""
    if not yes:
        click.confirm(f"Deactivate event {event_address}?", abort=True)

    async def _deactivate(runtime: CoordinatorRuntime) -> int:
        receipt = await runtime.publication.deactivate(event_address)
        click.echo(f"Deactivated in ledger {receipt.ledger} (tx {receipt.tx_hash})")
        return 0

    _run(ctx, _deactivate, signing=True)


# ── Reads ──────────────────────────────────────────────


@cli.command()
@click.argument("event_address")
@click.pass_context
def event(ctx: click.Context, event_address: str) -> None:
    """Show an event's on-ledger state and its local record."""

    async def _event(runtime: CoordinatorRuntime) -> int:
        ev = await runtime.gateway.get_event(event_address)
        ticket = await runtime.gateway.resolve_ticket_contract(event_address)
        record = await runtime.store.find_by_ledger_address(event_address)
        click.echo(f"Event:      {ev.address}")
        click.echo(f"Name:       {ev.name}")
        click.echo(f"Kind:       {ev.kind.name.lower()}")
        click.echo(f"Price:      {ev.effective_price}")
        click.echo(f"Organizer:  {ev.organizer}")
        click.echo(f"Active:     {ev.active}")
        if ev.max_tickets is not None:
            click.echo(f"Capacity:   {ev.max_tickets}")
        click.echo(f"Tickets:    {ticket}")
        if record is None:
            click.echo("Record:     (none)")
        else:
            click.echo(f"Record:     {record.record_id} ({record.status})")
            click.echo(f"Starts:     {record.fields.schedule.start.isoformat()}")
        return 0

    _run(ctx, _event)


@cli.command()
@click.option("--active-only", is_flag=True, help="Hide deactivated events")
@click.pass_context
def events(ctx: click.Context, active_only: bool) -> None:
    """List events registered with the factory."""

    async def _events(runtime: CoordinatorRuntime) -> int:
        summaries = await runtime.gateway.list_events(active_only=active_only)
        for s in summaries:
            flag = "" if s.active else "  (inactive)"
            click.echo(f"{s.address}  {s.kind.name.lower():<17} {s.name}{flag}")
        click.echo(f"{len(summaries)} event(s)")
        return 0

    _run(ctx, _events)


@cli.command()
@click.argument("event_address")
@click.argument("token_id", type=int)
@click.pass_context
def ticket(ctx: click.Context, event_address: str, token_id: int) -> None:
    """Show one ticket's owner and resale listing."""

    async def _ticket(runtime: CoordinatorRuntime) -> int:
        pos = await runtime.gateway.get_ticket(event_address, token_id)
        click.echo(f"Ticket:     {pos.ticket_contract} #{pos.token_id}")
        click.echo(f"Owner:      {pos.owner or '(checked in)'}")
        click.echo(f"URI:        {pos.metadata_uri}")
        if pos.listing:
            click.echo(f"Listed at:  {pos.listing.price} (resales: {pos.listing.resale_count})")
        return 0

    _run(ctx, _ticket)


@cli.command()
@click.argument("event_address")
@click.pass_context
def analytics(ctx: click.Context, event_address: str) -> None:
    """Tickets sold, check-ins and revenue for one event."""

    async def _analytics(runtime: CoordinatorRuntime) -> int:
        a = await runtime.analytics.compute_event_analytics(event_address)
        click.echo(f"Tickets sold: {a.tickets_sold}")
        click.echo(f"Check-ins:    {a.check_ins} ({a.check_in_rate:.1f}%)")
        click.echo(f"Unit price:   {a.unit_price}")
        click.echo(f"Revenue:      {a.total_revenue} (sold x unit price)")
        return 0

    _run(ctx, _analytics)


@cli.command("organizer-stats")
@click.argument("organizer", required=False)
@click.pass_context
def organizer_stats(ctx: click.Context, organizer: str | None) -> None:
    """Totals over an organizer's active events (default: own address)."""

    async def _stats(runtime: CoordinatorRuntime) -> int:
        who = organizer or runtime.public_key
        if not who:
            click.echo("Error: give an organizer address or configure a secret.", err=True)
            return 1
        stats = await runtime.analytics.compute_organizer_stats(who)
        click.echo(f"Organizer:    {stats.organizer}")
        click.echo(f"Events:       {stats.total_events}")
        click.echo(f"Tickets sold: {stats.total_tickets_sold}")
        click.echo(f"Check-ins:    {stats.total_check_ins}")
        click.echo(f"Revenue:      {stats.total_revenue}")
        return 0

    _run(ctx, _stats)


# ── Tickets ────────────────────────────────────────────


@cli.command()
@click.argument("event_address")
@click.option("--uri", "metadata_uri", required=True, help="Ticket metadata URI")
@click.option("--value", type=int, default=0, help="Amount attached (stroops)")
@click.pass_context
def buy(ctx: click.Context, event_address: str, metadata_uri: str, value: int) -> None:
    """Buy a primary ticket."""

    async def _buy(runtime: CoordinatorRuntime) -> int:
        return _print_ticket(await runtime.tickets.purchase(event_address, metadata_uri, value))

    _run(ctx, _buy, signing=True)


@cli.command("list-resale")
@click.argument("event_address")
@click.argument("token_id", type=int)
@click.argument("price", type=int)
@click.pass_context
def list_resale(ctx: click.Context, event_address: str, token_id: int, price: int) -> None:
    """List an owned ticket for resale."""

    async def _list(runtime: CoordinatorRuntime) -> int:
        return _print_ticket(
            await runtime.tickets.list_for_resale(event_address, token_id, price)
        )

    _run(ctx, _list, signing=True)


@cli.command("buy-resale")
@click.argument("event_address")
@click.argument("token_id", type=int)
@click.argument("value", type=int)
@click.pass_context
def buy_resale(ctx: click.Context, event_address: str, token_id: int, value: int) -> None:
    """Buy a ticket listed for resale."""

    async def _buy(runtime: CoordinatorRuntime) -> int:
        return _print_ticket(await runtime.tickets.buy_resale(event_address, token_id, value))

    _run(ctx, _buy, signing=True)


@cli.command("cancel-resale")
@click.argument("event_address")
@click.argument("token_id", type=int)
@click.pass_context
def cancel_resale(ctx: click.Context, event_address: str, token_id: int) -> None:
    """Withdraw a resale listing."""

    async def _cancel(runtime: CoordinatorRuntime) -> int:
        return _print_ticket(await runtime.tickets.cancel_resale(event_address, token_id))

    _run(ctx, _cancel, signing=True)


@cli.command("check-in")
@click.argument("event_address")
@click.argument("token_id", type=int)
@click.pass_context
def check_in(ctx: click.Context, event_address: str, token_id: int) -> None:
    """Check a ticket in at the door (burns it)."""

    async def _check_in(runtime: CoordinatorRuntime) -> int:
        return _print_ticket(await runtime.tickets.check_in(event_address, token_id))

    _run(ctx, _check_in, signing=True)


@cli.command()
@click.argument("event_address")
@click.argument("user")
@click.option("--revoke", is_flag=True, help="Revoke instead of approve")
@click.pass_context
def approve(ctx: click.Context, event_address: str, user: str, revoke: bool) -> None:
    """Approve (or revoke) an attendee of an approval-required event."""

    async def _approve(runtime: CoordinatorRuntime) -> int:
        if revoke:
            outcome = await runtime.tickets.revoke_attendee(event_address, user)
        else:
            outcome = await runtime.tickets.approve_attendee(event_address, user)
        return _print_ticket(outcome)

    _run(ctx, _approve, signing=True)


# ── Organizations ──────────────────────────────────────


@cli.group()
def org():
    """Organizer profile commands."""


@org.command("register")
@click.option("--name", required=True, help="Organization name")
@click.option("--description", default="", help="Short description")
@click.option("--website", default="", help="Website URL")
@click.option("--update", is_flag=True, help="Update an existing profile")
@click.pass_context
def org_register(
    ctx: click.Context, name: str, description: str, website: str, update: bool
) -> None:
    """Register (or update) the configured address as an organizer."""

    async def _register(runtime: CoordinatorRuntime) -> int:
        gw = runtime.gateway
        if update:
            handle = await gw.update_organization(name, description, website)
        else:
            handle = await gw.register_organization(name, description, website)
        receipt = await gw.await_confirmation(handle, runtime.cfg.confirmation_timeout)
        if not receipt.success:
            click.echo(f"Rejected: {receipt.revert_reason}", err=True)
            return 1
        click.echo(f"Organization saved (tx {handle.tx_hash})")
        return 0

    _run(ctx, _register, signing=True)


@org.command("show")
@click.argument("owner", required=False)
@click.pass_context
def org_show(ctx: click.Context, owner: str | None) -> None:
    """Show an organizer profile (default: own address)."""

    async def _show(runtime: CoordinatorRuntime) -> int:
        who = owner or runtime.public_key
        if not who:
            click.echo("Error: give an owner address or configure a secret.", err=True)
            return 1
        o = await runtime.gateway.get_organization(who)
        if o is None:
            click.echo("Organization: NOT REGISTERED")
            return 1
        click.echo(f"Organization: {o.name}")
        click.echo(f"  Owner:       {o.owner}")
        click.echo(f"  Description: {o.description}")
        click.echo(f"  Website:     {o.website}")
        click.echo(f"  Active:      {o.active}")
        return 0

    _run(ctx, _show)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
