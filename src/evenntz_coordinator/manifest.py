"""Publication manifests - a TOML description of one event to publish.

Example::

    name = "Rooftop Jazz"
    description = "Live quartet"
    kind = "paid"                      # free | paid | approval
    organization_id = "org-42"
    media = "banner.png"               # relative to the manifest
    start = 2026-11-01T19:00:00+01:00
    end = 2026-11-01T23:00:00+01:00
    tags = ["music"]

    [location]
    venue_name = "Skyline"
    address = "1 Main St"
    lat = 52.37
    lng = 4.89

    [[tiers]]
    name = "General"
    price = 1000
    quantity = 50
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from evenntz_coordinator.errors import InvalidPublicationInput
from evenntz_coordinator.models.domain import EventKind, Location, Schedule, TicketTier
from evenntz_coordinator.models.records import PublicationRequest

_KINDS = {
    "free": EventKind.FREE,
    "paid": EventKind.PAID,
    "approval": EventKind.APPROVAL_REQUIRED,
}


def _timestamp(value: object, key: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as exc:
            raise InvalidPublicationInput([f"{key} is not an ISO 8601 timestamp"]) from exc
    raise InvalidPublicationInput([f"{key} is required"])


def load_manifest(path: str | Path) -> PublicationRequest:
    """Parse a manifest into a PublicationRequest (media bytes read from disk)."""
    p = Path(path).expanduser()
    with open(p, "rb") as f:
        raw = tomllib.load(f)

    kind_name = str(raw.get("kind", "free")).lower()
    if kind_name not in _KINDS:
        raise InvalidPublicationInput([f"unknown event kind {kind_name!r}"])

    media = b""
    media_name = "banner"
    if media_path := raw.get("media"):
        media_file = (p.parent / media_path).resolve()
        if not media_file.exists():
            raise InvalidPublicationInput([f"media file {media_path} not found"])
        media = media_file.read_bytes()
        media_name = media_file.name

    loc = raw.get("location", {})
    return PublicationRequest(
        name=str(raw.get("name", "")),
        description=str(raw.get("description", "")),
        media=media,
        media_filename=media_name,
        schedule=Schedule(
            start=_timestamp(raw.get("start"), "start"),
            end=_timestamp(raw.get("end"), "end"),
        ),
        organization_id=str(raw.get("organization_id", "")),
        kind=_KINDS[kind_name],
        tiers=[
            TicketTier(name=t.get("name", ""), price=int(t.get("price", 0)),
                       quantity=int(t.get("quantity", 0)))
            for t in raw.get("tiers", [])
        ],
        location=Location(
            venue_name=loc.get("venue_name", ""),
            address=loc.get("address", ""),
            label=loc.get("label", ""),
            lat=loc.get("lat"),
            lng=loc.get("lng"),
        ),
        tags=list(raw.get("tags", [])),
    )
