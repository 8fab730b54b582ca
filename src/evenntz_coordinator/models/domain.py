"""Ledger-owned entities and the off-chain metadata that references them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class EventKind(int, Enum):
    """Event admission model, encoded on-ledger as a u32."""

    FREE = 0
    PAID = 1
    APPROVAL_REQUIRED = 2


@dataclass(frozen=True)
class Event:
    """An event contract as read back from the ledger."""

    address: str
    name: str
    kind: EventKind
    ticket_price: int  # smallest currency unit (stroops)
    organizer: str
    active: bool = True
    max_tickets: int | None = None

    @property
    def effective_price(self) -> int:
        """Price a buyer must attach. Only Paid events charge."""
        return self.ticket_price if self.kind is EventKind.PAID else 0


@dataclass(frozen=True)
class EventSummary:
    """One entry of the factory's event registry."""

    address: str
    name: str
    kind: EventKind
    ticket_price: int
    organizer: str
    active: bool


@dataclass(frozen=True)
class Organization:
    """Organizer profile held by the factory contract."""

    owner: str
    name: str
    description: str
    website: str
    active: bool = True


@dataclass(frozen=True)
class ResaleListing:
    """On-ledger resale offer for a single ticket."""

    listed: bool
    price: int
    resale_count: int = 0


@dataclass(frozen=True)
class TicketPosition:
    """A ticket NFT: (ticket contract, token id) plus its current state."""

    ticket_contract: str
    token_id: int
    owner: str | None  # None once burned at check-in
    metadata_uri: str
    listing: ResaleListing | None = None

    @property
    def checked_in(self) -> bool:
        return self.owner is None


@dataclass(frozen=True)
class Schedule:
    """Event start/end as timezone-aware timestamps."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class Location:
    venue_name: str = ""
    address: str = ""
    label: str = ""
    lat: float | None = None
    lng: float | None = None


@dataclass(frozen=True)
class TicketTier:
    """Off-chain tier breakdown. Feeds max_tickets and the on-ledger price."""

    name: str
    price: int
    quantity: int


@dataclass
class MetadataFields:
    """Fields written to the off-chain store for a published event."""

    name: str
    description: str
    content_id: str
    schedule: Schedule
    location: Location
    organization_id: str
    ledger_address: str | None
    tiers: list[TicketTier] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    media_url: str = ""


@dataclass
class EventMetadataRecord:
    """An off-chain event record as persisted by a MetadataStore."""

    record_id: str
    fields: MetadataFields
    status: str = "active"  # active | deactivated
    created_at: str = ""
    updated_at: str = ""

    @property
    def ledger_address(self) -> str | None:
        return self.fields.ledger_address


def metadata_to_dict(fields: MetadataFields) -> dict:
    """JSON-ready form of MetadataFields (timestamps as ISO 8601)."""
    return {
        "name": fields.name,
        "description": fields.description,
        "content_id": fields.content_id,
        "media_url": fields.media_url,
        "schedule": {
            "start": fields.schedule.start.isoformat(),
            "end": fields.schedule.end.isoformat(),
        },
        "location": {
            "venue_name": fields.location.venue_name,
            "address": fields.location.address,
            "label": fields.location.label,
            "lat": fields.location.lat,
            "lng": fields.location.lng,
        },
        "tiers": [
            {"name": t.name, "price": t.price, "quantity": t.quantity}
            for t in fields.tiers
        ],
        "tags": list(fields.tags),
        "organization_id": fields.organization_id,
        "ledger_address": fields.ledger_address,
    }


def metadata_from_dict(data: dict) -> MetadataFields:
    schedule = data["schedule"]
    location = data.get("location") or {}
    return MetadataFields(
        name=data["name"],
        description=data.get("description", ""),
        content_id=data["content_id"],
        media_url=data.get("media_url", ""),
        schedule=Schedule(
            start=datetime.fromisoformat(schedule["start"]),
            end=datetime.fromisoformat(schedule["end"]),
        ),
        location=Location(
            venue_name=location.get("venue_name", ""),
            address=location.get("address", ""),
            label=location.get("label", ""),
            lat=location.get("lat"),
            lng=location.get("lng"),
        ),
        tiers=[
            TicketTier(name=t["name"], price=int(t["price"]), quantity=int(t["quantity"]))
            for t in data.get("tiers", [])
        ],
        tags=list(data.get("tags", [])),
        organization_id=str(data.get("organization_id", "")),
        ledger_address=data.get("ledger_address"),
    )
