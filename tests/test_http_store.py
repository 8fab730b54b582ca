"""HttpMetadataStore against a local fake events API."""

from __future__ import annotations

import pytest
from aiohttp import web

from evenntz_coordinator.coordinator.publication import PublicationCoordinator
from evenntz_coordinator.errors import (
    RecordNotFound,
    StoreUnavailable,
    StoreWriteUnconfirmed,
    ValidationError,
)
from evenntz_coordinator.models.records import PublicationStatus
from evenntz_coordinator.storage.http import HttpMetadataStore
from tests.factories import make_fields, make_request
from tests.mocks import CREATED_EVENT_ADDRESS


@pytest.fixture
async def events_api():
    """Fake /api/events. ``state["fail"]`` forces an HTTP status on the next write,
    ``state["bare_ack"]`` stores a create but answers without its id.
    """
    state = {"events": {}, "fail": None, "auth": [], "bare_ack": False}

    def _failure():
        status = state["fail"]
        state["fail"] = None
        if status:
            return web.json_response({"error": "forced failure"}, status=status)
        return None

    async def create(request):
        state["auth"].append(request.headers.get("Authorization"))
        forced = _failure()
        if forced is not None:
            return forced
        body = await request.json()
        if not body.get("name"):
            return web.json_response({"error": "name required"}, status=422)
        record_id = str(len(state["events"]) + 1)
        state["events"][record_id] = dict(body, id=record_id, status="active")
        if state["bare_ack"]:
            return web.json_response({"ok": True}, status=201)
        return web.json_response({"event": state["events"][record_id]}, status=201)

    async def get(request):
        item = state["events"].get(request.match_info["id"])
        if item is None:
            return web.json_response({"error": "not found"}, status=404)
        return web.json_response(item)

    async def query(request):
        items = list(state["events"].values())
        for key, value in request.query.items():
            items = [i for i in items if str(i.get(key)) == value]
        return web.json_response({"events": items})

    async def patch(request):
        forced = _failure()
        if forced is not None:
            return forced
        item = state["events"].get(request.match_info["id"])
        if item is None:
            return web.json_response({"error": "not found"}, status=404)
        item.update(await request.json())
        return web.json_response(item)

    app = web.Application()
    app.router.add_post("/api/events", create)
    app.router.add_get("/api/events", query)
    app.router.add_get("/api/events/{id}", get)
    app.router.add_patch("/api/events/{id}", patch)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    yield f"http://127.0.0.1:{port}/api", state
    await runner.cleanup()


@pytest.fixture
async def http_store(events_api):
    url, _ = events_api
    s = HttpMetadataStore(url, api_token="tok", request_timeout=5)
    await s.initialize()
    yield s
    await s.close()


async def test_create_and_get(http_store, events_api):
    _, state = events_api
    fields = make_fields(ledger_address="CEVT1")

    record_id = await http_store.create_record(fields)
    record = await http_store.get_record(record_id)

    assert record.fields.name == fields.name
    assert record.fields.schedule == fields.schedule
    assert record.fields.tiers == fields.tiers
    assert record.ledger_address == "CEVT1"
    assert state["auth"] == ["Bearer tok"]
    assert state["events"][record_id]["bannerCid"] == "bafytestcid"


async def test_find_by_ledger_address(http_store):
    record_id = await http_store.create_record(make_fields(ledger_address="CEVT1"))
    await http_store.create_record(make_fields(ledger_address="CEVT2"))

    found = await http_store.find_by_ledger_address("CEVT1")

    assert found.record_id == record_id
    assert await http_store.find_by_ledger_address("CNOPE") is None


async def test_list_and_mark(http_store):
    record_id = await http_store.create_record(make_fields())

    await http_store.mark_record(record_id, "deactivated")

    assert await http_store.list_records(status="active") == []
    assert [r.record_id for r in await http_store.list_records(status="deactivated")] == [record_id]


async def test_refused_record_is_validation_error(http_store):
    with pytest.raises(ValidationError):
        await http_store.create_record(make_fields(name=""))


async def test_server_error_is_unavailable(http_store, events_api):
    _, state = events_api
    state["fail"] = 503
    with pytest.raises(StoreUnavailable):
        await http_store.create_record(make_fields())


async def test_missing_record(http_store):
    with pytest.raises(RecordNotFound):
        await http_store.get_record("999")
    with pytest.raises(RecordNotFound):
        await http_store.mark_record("999", "deactivated")


async def test_unreachable_api():
    s = HttpMetadataStore("http://127.0.0.1:1/api", request_timeout=1)
    await s.initialize()
    try:
        with pytest.raises(StoreUnavailable):
            await s.create_record(make_fields())
    finally:
        await s.close()


# ── Acknowledged creates without an id ───────────────────────────


async def test_bare_create_ack_resolved_by_ledger_address(http_store, events_api):
    _, state = events_api
    state["bare_ack"] = True

    record_id = await http_store.create_record(make_fields(ledger_address="CEVT1"))

    assert state["events"][record_id]["blockchainEventAddress"] == "CEVT1"
    assert len(state["auth"]) == 1


async def test_bare_create_ack_without_address_is_not_retryable(http_store, events_api):
    _, state = events_api
    state["bare_ack"] = True

    with pytest.raises(StoreWriteUnconfirmed) as excinfo:
        await http_store.create_record(make_fields(ledger_address=None))

    assert not excinfo.value.retryable
    assert len(state["events"]) == 1


async def test_publication_with_bare_create_ack_keeps_one_record(
    gateway, ledger, uploader, retry, http_store, events_api,
):
    """The API stores the event but answers without an id: published, never compensated."""
    _, state = events_api
    state["bare_ack"] = True
    coordinator = PublicationCoordinator(gateway, uploader, http_store, retry=retry)

    outcome = await coordinator.publish(make_request())

    assert outcome.status is PublicationStatus.PUBLISHED
    assert len(state["auth"]) == 1
    stored = [e for e in state["events"].values()
              if e["blockchainEventAddress"] == CREATED_EVENT_ADDRESS]
    assert [e["id"] for e in stored] == [outcome.record_id]
    assert ledger.submits_of("deactivate_event") == []
