"""LedgerGateway - typed operations over the factory, event and ticket contracts."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from stellar_sdk import Keypair

from evenntz_coordinator.errors import ContractInterfaceMismatch, NoSigningIdentity
from evenntz_coordinator.interfaces.ledger import ContractCall, ContractRole, LedgerClient
from evenntz_coordinator.models.domain import (
    Event,
    EventKind,
    EventSummary,
    Organization,
    ResaleListing,
    TicketPosition,
)
from evenntz_coordinator.models.records import ConfirmationReceipt, TxHandle
from evenntz_coordinator.stellar.abi import lookup

log = logging.getLogger(__name__)


def _as_kind(raw: Any) -> EventKind:
    return EventKind(int(raw))


class LedgerGateway:
    """Role-checked contract calls with a per-process ticket-contract cache.

    The signing identity is attached per session (constructor or
    ``attach_signer``) or passed per call. Writes without one raise
    NoSigningIdentity before anything touches the network. Writes return a
    TxHandle; confirmation is a separate ``await_confirmation`` call.
    """

    def __init__(
        self,
        client: LedgerClient,
        factory_address: str,
        signer: Keypair | None = None,
    ) -> None:
        self._client = client
        self.factory_address = factory_address
        self._signer = signer
        self._ticket_contracts: dict[str, str] = {}
        self._resolve_locks: dict[str, asyncio.Lock] = {}

    # ── Signing identity ───────────────────────────────────

    @property
    def signer(self) -> Keypair | None:
        return self._signer

    def attach_signer(self, signer: Keypair | None) -> None:
        self._signer = signer

    def require_signer(self, signer: Keypair | None) -> Keypair:
        keypair = signer or self._signer
        if keypair is None:
            raise NoSigningIdentity()
        return keypair

    # ── Generic calls ──────────────────────────────────────

    def _call(
        self,
        role: ContractRole,
        address: str,
        function: str,
        args: tuple[Any, ...],
        value: int | None = None,
    ) -> ContractCall:
        spec = lookup(role, function)
        if spec is None:
            raise ContractInterfaceMismatch(
                address, function, f"not part of the {role.value} interface"
            )
        if value is not None and not spec.payable:
            raise ContractInterfaceMismatch(
                address, function, "function does not accept a value"
            )
        return ContractCall(
            contract_address=address,
            role=role,
            function=function,
            args=args,
            value=value,
        )

    async def read(
        self, role: ContractRole, address: str, function: str, *args: Any
    ) -> Any:
        spec = lookup(role, function)
        if spec is not None and spec.mutates:
            raise ContractInterfaceMismatch(
                address, function, "state-changing function cannot be read"
            )
        call = self._call(role, address, function, args)
        return await self._client.read(call)

    async def write(
        self,
        role: ContractRole,
        address: str,
        function: str,
        *args: Any,
        value: int | None = None,
        signer: Keypair | None = None,
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        call = self._call(role, address, function, args, value)
        return await self._client.submit(call, keypair)

    async def await_confirmation(
        self, handle: TxHandle, timeout: float
    ) -> ConfirmationReceipt:
        return await self._client.await_confirmation(handle, timeout)

    async def transaction_status(self, handle: TxHandle) -> ConfirmationReceipt | None:
        return await self._client.transaction_status(handle)

    async def close(self) -> None:
        await self._client.close()

    # ── Ticket-contract resolution ─────────────────────────

    async def resolve_ticket_contract(self, event_address: str) -> str:
        """Ticket NFT contract of an event, read once per process and cached."""
        cached = self._ticket_contracts.get(event_address)
        if cached is not None:
            return cached
        lock = self._resolve_locks.setdefault(event_address, asyncio.Lock())
        try:
            async with lock:
                cached = self._ticket_contracts.get(event_address)
                if cached is not None:
                    return cached
                address = await self.read(ContractRole.EVENT, event_address, "ticket_contract")
                if not isinstance(address, str) or not address:
                    raise ContractInterfaceMismatch(
                        event_address, "ticket_contract", f"unexpected value {address!r}"
                    )
                self._ticket_contracts[event_address] = address
                log.debug(
                    "Resolved ticket contract %s for event %s", address[:16], event_address[:16],
                )
                return address
        finally:
            if not lock.locked() and self._resolve_locks.get(event_address) is lock:
                del self._resolve_locks[event_address]

    def invalidate(self, event_address: str) -> None:
        self._ticket_contracts.pop(event_address, None)

    def clear(self) -> None:
        self._ticket_contracts.clear()

    @property
    def cached_ticket_contracts(self) -> dict[str, str]:
        return dict(self._ticket_contracts)

    # ── Factory ────────────────────────────────────────────

    async def create_event(
        self,
        name: str,
        kind: EventKind,
        price: int,
        max_tickets: int,
        signer: Keypair | None = None,
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        return await self.write(
            ContractRole.FACTORY,
            self.factory_address,
            "create_event",
            keypair.public_key,
            name,
            int(kind),
            price if kind is EventKind.PAID else 0,
            max_tickets,
            signer=keypair,
        )

    async def deactivate_event(
        self, event_address: str, signer: Keypair | None = None
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        return await self.write(
            ContractRole.FACTORY,
            self.factory_address,
            "deactivate_event",
            keypair.public_key,
            event_address,
            signer=keypair,
        )

    async def list_events(self, active_only: bool = False) -> list[EventSummary]:
        raw = await self.read(ContractRole.FACTORY, self.factory_address, "get_all_events")
        try:
            events = [
                EventSummary(
                    address=item["address"],
                    name=item["name"],
                    kind=_as_kind(item["kind"]),
                    ticket_price=int(item["price"]),
                    organizer=item["organizer"],
                    active=bool(item["active"]),
                )
                for item in raw or []
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise ContractInterfaceMismatch(
                self.factory_address, "get_all_events", f"undecodable result: {exc}"
            ) from exc
        if active_only:
            events = [e for e in events if e.active]
        return events

    async def register_organization(
        self,
        name: str,
        description: str,
        website: str,
        signer: Keypair | None = None,
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        return await self.write(
            ContractRole.FACTORY,
            self.factory_address,
            "register_organization",
            keypair.public_key,
            name,
            description,
            website,
            signer=keypair,
        )

    async def update_organization(
        self,
        name: str,
        description: str,
        website: str,
        signer: Keypair | None = None,
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        return await self.write(
            ContractRole.FACTORY,
            self.factory_address,
            "update_organization",
            keypair.public_key,
            name,
            description,
            website,
            signer=keypair,
        )

    async def deactivate_organization(
        self, owner: str, signer: Keypair | None = None
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        return await self.write(
            ContractRole.FACTORY,
            self.factory_address,
            "deactivate_organization",
            keypair.public_key,
            owner,
            signer=keypair,
        )

    async def get_organization(self, owner: str) -> Organization | None:
        raw = await self.read(
            ContractRole.FACTORY, self.factory_address, "get_organization", owner
        )
        if raw is None:
            return None
        try:
            return Organization(
                owner=raw.get("owner", owner),
                name=raw["name"],
                description=raw.get("description", ""),
                website=raw.get("website", ""),
                active=bool(raw.get("active", True)),
            )
        except (AttributeError, KeyError, TypeError) as exc:
            raise ContractInterfaceMismatch(
                self.factory_address, "get_organization", f"undecodable result: {exc}"
            ) from exc

    async def is_registered(self, owner: str) -> bool:
        org = await self.get_organization(owner)
        return org is not None and org.active

    # ── Event contract ─────────────────────────────────────

    async def get_event(self, event_address: str) -> Event:
        """Read an event's attributes in parallel."""
        name, kind, price, organizer, active, max_tickets = await asyncio.gather(
            self.read(ContractRole.EVENT, event_address, "event_name"),
            self.read(ContractRole.EVENT, event_address, "event_type"),
            self.read(ContractRole.EVENT, event_address, "ticket_price"),
            self.read(ContractRole.EVENT, event_address, "owner"),
            self.read(ContractRole.EVENT, event_address, "is_active"),
            self.read(ContractRole.EVENT, event_address, "max_tickets"),
        )
        try:
            return Event(
                address=event_address,
                name=str(name),
                kind=_as_kind(kind),
                ticket_price=int(price),
                organizer=str(organizer),
                active=bool(active),
                max_tickets=int(max_tickets) if max_tickets is not None else None,
            )
        except (TypeError, ValueError) as exc:
            raise ContractInterfaceMismatch(
                event_address, "event_type", f"undecodable result: {exc}"
            ) from exc

    async def ticket_price(self, event_address: str) -> int:
        return int(await self.read(ContractRole.EVENT, event_address, "ticket_price"))

    async def buy_ticket(
        self,
        event_address: str,
        metadata_uri: str,
        value: int,
        signer: Keypair | None = None,
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        return await self.write(
            ContractRole.EVENT,
            event_address,
            "buy_ticket",
            keypair.public_key,
            metadata_uri,
            value=value,
            signer=keypair,
        )

    async def mint_for_user(
        self,
        event_address: str,
        user: str,
        metadata_uri: str,
        signer: Keypair | None = None,
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        return await self.write(
            ContractRole.EVENT,
            event_address,
            "mint_for_user",
            keypair.public_key,
            user,
            metadata_uri,
            signer=keypair,
        )

    async def approve_user(
        self, event_address: str, user: str, signer: Keypair | None = None
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        return await self.write(
            ContractRole.EVENT, event_address, "approve_user",
            keypair.public_key, user, signer=keypair,
        )

    async def revoke_user(
        self, event_address: str, user: str, signer: Keypair | None = None
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        return await self.write(
            ContractRole.EVENT, event_address, "revoke_user",
            keypair.public_key, user, signer=keypair,
        )

    async def check_in(
        self, event_address: str, token_id: int, signer: Keypair | None = None
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        return await self.write(
            ContractRole.EVENT, event_address, "check_in",
            keypair.public_key, token_id, signer=keypair,
        )

    # ── Ticket contract ────────────────────────────────────

    async def next_token_id(self, event_address: str) -> int:
        ticket = await self.resolve_ticket_contract(event_address)
        return int(await self.read(ContractRole.TICKET, ticket, "next_token_id"))

    async def burned_tickets_count(self, event_address: str) -> int:
        ticket = await self.resolve_ticket_contract(event_address)
        return int(await self.read(ContractRole.TICKET, ticket, "burned_tickets_count"))

    async def get_resale_info(self, event_address: str, token_id: int) -> ResaleListing:
        ticket = await self.resolve_ticket_contract(event_address)
        raw = await self.read(ContractRole.TICKET, ticket, "get_resale_info", token_id)
        try:
            return ResaleListing(
                listed=bool(raw["listed"]),
                price=int(raw["price"]),
                resale_count=int(raw.get("resale_count", 0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ContractInterfaceMismatch(
                ticket, "get_resale_info", f"undecodable result: {exc}"
            ) from exc

    async def get_ticket(self, event_address: str, token_id: int) -> TicketPosition:
        ticket = await self.resolve_ticket_contract(event_address)
        owner, uri, listing = await asyncio.gather(
            self.read(ContractRole.TICKET, ticket, "owner_of", token_id),
            self.read(ContractRole.TICKET, ticket, "token_uri", token_id),
            self.get_resale_info(event_address, token_id),
        )
        return TicketPosition(
            ticket_contract=ticket,
            token_id=token_id,
            owner=owner or None,
            metadata_uri=str(uri or ""),
            listing=listing if listing.listed else None,
        )

    async def list_for_resale(
        self,
        event_address: str,
        token_id: int,
        price: int,
        signer: Keypair | None = None,
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        ticket = await self.resolve_ticket_contract(event_address)
        return await self.write(
            ContractRole.TICKET, ticket, "list_for_resale",
            keypair.public_key, token_id, price, signer=keypair,
        )

    async def buy_resale(
        self,
        event_address: str,
        token_id: int,
        value: int,
        signer: Keypair | None = None,
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        ticket = await self.resolve_ticket_contract(event_address)
        return await self.write(
            ContractRole.TICKET, ticket, "buy_resale",
            keypair.public_key, token_id, value=value, signer=keypair,
        )

    async def cancel_resale(
        self, event_address: str, token_id: int, signer: Keypair | None = None
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        ticket = await self.resolve_ticket_contract(event_address)
        return await self.write(
            ContractRole.TICKET, ticket, "cancel_resale",
            keypair.public_key, token_id, signer=keypair,
        )

    async def airdrop_tickets(
        self,
        event_address: str,
        users: list[str],
        metadata_uri: str,
        signer: Keypair | None = None,
    ) -> TxHandle:
        keypair = self.require_signer(signer)
        ticket = await self.resolve_ticket_contract(event_address)
        return await self.write(
            ContractRole.TICKET, ticket, "airdrop_tickets",
            keypair.public_key, list(users), metadata_uri, signer=keypair,
        )
