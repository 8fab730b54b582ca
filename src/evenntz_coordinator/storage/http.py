"""HTTP MetadataStore - the web application's /api/events endpoint."""

from __future__ import annotations

import logging
from datetime import datetime

import httpx

from evenntz_coordinator.errors import (
    RecordNotFound,
    StoreError,
    StoreUnavailable,
    StoreWriteUnconfirmed,
    ValidationError,
)
from evenntz_coordinator.models.domain import (
    EventMetadataRecord,
    Location,
    MetadataFields,
    Schedule,
    TicketTier,
)

log = logging.getLogger(__name__)


def _fields_to_body(fields: MetadataFields) -> dict:
    loc = fields.location
    return {
        "name": fields.name,
        "eventDescription": fields.description,
        "bannerCid": fields.content_id,
        "bannerUrl": fields.media_url,
        "startAt": fields.schedule.start.isoformat(),
        "endAt": fields.schedule.end.isoformat(),
        "location": loc.label,
        "venueName": loc.venue_name,
        "venueAddress": loc.address,
        "lat": loc.lat,
        "lng": loc.lng,
        "tags": list(fields.tags),
        "ticketTiers": [
            {"name": t.name, "price": t.price, "quantity": t.quantity}
            for t in fields.tiers
        ],
        "organizationId": fields.organization_id,
        "blockchainEventAddress": fields.ledger_address,
    }


def _body_to_record(data: dict) -> EventMetadataRecord:
    return EventMetadataRecord(
        record_id=str(data["id"]),
        fields=MetadataFields(
            name=data["name"],
            description=data.get("eventDescription", ""),
            content_id=data.get("bannerCid", ""),
            media_url=data.get("bannerUrl", ""),
            schedule=Schedule(
                start=datetime.fromisoformat(data["startAt"]),
                end=datetime.fromisoformat(data["endAt"]),
            ),
            location=Location(
                venue_name=data.get("venueName", ""),
                address=data.get("venueAddress", ""),
                label=data.get("location", ""),
                lat=data.get("lat"),
                lng=data.get("lng"),
            ),
            tiers=[
                TicketTier(name=t["name"], price=int(t["price"]), quantity=int(t["quantity"]))
                for t in data.get("ticketTiers", [])
            ],
            tags=list(data.get("tags", [])),
            organization_id=str(data.get("organizationId", "")),
            ledger_address=data.get("blockchainEventAddress"),
        ),
        status=data.get("status", "active"),
        created_at=data.get("createdAt", ""),
        updated_at=data.get("updatedAt", ""),
    )


def _unwrap(payload: dict) -> dict:
    """Responses may wrap the record as {"event": {...}}."""
    return payload.get("event", payload) if isinstance(payload, dict) else payload


class HttpMetadataStore:
    """MetadataStore backed by the web application's JSON API.

    4xx answers are the API refusing the record (ValidationError); transport
    failures and 5xx are StoreUnavailable and may be retried. A 2xx create
    whose body names no id is resolved by ledger address, otherwise it is
    StoreWriteUnconfirmed and is not retried.
    """

    def __init__(
        self,
        api_url: str,
        api_token: str = "",
        request_timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._api_token = api_token
        self._request_timeout = request_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def initialize(self) -> None:
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            headers=headers,
            timeout=httpx.Timeout(self._request_timeout, connect=5),
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        assert self._client is not None, "Store not initialized. Call initialize() first."
        return self._client

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise StoreUnavailable(f"{method} {path} failed: {exc}") from exc
        if resp.status_code >= 500:
            raise StoreUnavailable(f"{method} {path}: HTTP {resp.status_code}")
        return resp

    @staticmethod
    def _refusal(resp: httpx.Response) -> str:
        try:
            body = resp.json()
            detail = body.get("error") or body.get("message") or ""
        except (ValueError, AttributeError):
            detail = resp.text[:200]
        return f"HTTP {resp.status_code} {detail}".strip()

    async def create_record(self, fields: MetadataFields) -> str:
        resp = await self._request("POST", "/events", json=_fields_to_body(fields))
        if resp.status_code >= 400:
            raise ValidationError(f"event record refused: {self._refusal(resp)}")
        try:
            record_id = str(_unwrap(resp.json())["id"])
        except (ValueError, KeyError, TypeError) as exc:
            # Accepted but unreadable: never retried, the record may exist
            record_id = await self._created_id(fields, f"malformed create response: {exc}")
        log.info(
            "Stored record %s for event %s",
            record_id[:8], (fields.ledger_address or "?")[:16],
        )
        return record_id

    async def _created_id(self, fields: MetadataFields, detail: str) -> str:
        if not fields.ledger_address:
            raise StoreWriteUnconfirmed(detail)
        try:
            record = await self.find_by_ledger_address(fields.ledger_address)
        except (StoreError, KeyError, ValueError, TypeError) as exc:
            raise StoreWriteUnconfirmed(f"{detail}; lookup failed: {exc}") from exc
        if record is None:
            raise StoreWriteUnconfirmed(f"{detail}; no record for {fields.ledger_address[:16]}")
        log.warning("%s; found record %s by ledger address", detail, record.record_id[:8])
        return record.record_id

    async def get_record(self, record_id: str) -> EventMetadataRecord:
        resp = await self._request("GET", f"/events/{record_id}")
        if resp.status_code == 404:
            raise RecordNotFound(f"record {record_id} not found")
        if resp.status_code >= 400:
            raise ValidationError(self._refusal(resp))
        return _body_to_record(_unwrap(resp.json()))

    async def find_by_ledger_address(self, address: str) -> EventMetadataRecord | None:
        records = await self._query({"blockchainEventAddress": address})
        return records[0] if records else None

    async def list_records(
        self, organization_id: str | None = None, status: str | None = None
    ) -> list[EventMetadataRecord]:
        params = {}
        if organization_id is not None:
            params["organizationId"] = organization_id
        if status is not None:
            params["status"] = status
        return await self._query(params)

    async def _query(self, params: dict) -> list[EventMetadataRecord]:
        resp = await self._request("GET", "/events", params=params)
        if resp.status_code >= 400:
            raise ValidationError(self._refusal(resp))
        payload = resp.json()
        items = payload.get("events", []) if isinstance(payload, dict) else payload
        return [_body_to_record(item) for item in items]

    async def mark_record(self, record_id: str, status: str) -> None:
        resp = await self._request("PATCH", f"/events/{record_id}", json={"status": status})
        if resp.status_code == 404:
            raise RecordNotFound(f"record {record_id} not found")
        if resp.status_code >= 400:
            raise ValidationError(self._refusal(resp))
