"""KuboMediaUploader against a local fake Kubo RPC server."""

from __future__ import annotations

import pytest
from aiohttp import web

from evenntz_coordinator.errors import PayloadTooLarge, UploadError, UploadTransportError
from evenntz_coordinator.ipfs.uploader import KuboMediaUploader

FAKE_CID = "bafkreihdwdcefgh4dqkjv67uzcmw7ojee6xedzdetojuzjevtenxquvyku"


@pytest.fixture
async def kubo_server():
    """Fake /api/v0/add. ``state["reply"]`` picks the response."""
    state = {"reply": "ok", "requests": []}

    async def handle_add(request):
        reader = await request.multipart()
        part = await reader.next()
        data = await part.read()
        state["requests"].append({
            "params": dict(request.query),
            "filename": part.filename,
            "data": bytes(data),
        })
        reply = state["reply"]
        if reply == "ok":
            return web.json_response({"Name": part.filename, "Hash": FAKE_CID, "Size": str(len(data))})
        if reply == "no-hash":
            return web.json_response({"Name": part.filename})
        if reply == "garbage":
            return web.Response(text="not json", content_type="text/plain")
        return web.Response(status=int(reply), text="refused")

    app = web.Application()
    app.router.add_post("/api/v0/add", handle_add)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    yield f"http://127.0.0.1:{port}", state
    await runner.cleanup()


@pytest.fixture
def uploader_for(kubo_server):
    url, _ = kubo_server
    return KuboMediaUploader(
        kubo_rpc_url=url,
        gateway_url="https://gw.example",
        upload_timeout=5,
        max_upload_size=1024,
    )


async def test_upload_returns_cid_and_gateway_url(uploader_for, kubo_server):
    _, state = kubo_server

    content = await uploader_for.upload(b"banner-bytes", "banner.png")

    assert content.cid == FAKE_CID
    assert content.url == f"https://gw.example/ipfs/{FAKE_CID}"
    assert content.size == len(b"banner-bytes")
    request = state["requests"][0]
    assert request["filename"] == "banner.png"
    assert request["data"] == b"banner-bytes"
    assert request["params"]["cid-version"] == "1"
    assert request["params"]["pin"] == "true"


async def test_same_bytes_upload_to_same_cid(uploader_for, kubo_server):
    _, state = kubo_server

    first = await uploader_for.upload(b"banner-bytes", "banner.png")
    second = await uploader_for.upload(b"banner-bytes", "banner.png")

    assert first == second
    assert len(state["requests"]) == 2
    assert state["requests"][0] == state["requests"][1]


async def test_oversized_payload_never_sent(uploader_for, kubo_server):
    _, state = kubo_server
    with pytest.raises(PayloadTooLarge):
        await uploader_for.upload(b"x" * 2048)
    assert state["requests"] == []


@pytest.mark.parametrize("reply, error", [
    ("413", PayloadTooLarge),
    ("503", UploadTransportError),
    ("400", UploadError),
    ("no-hash", UploadTransportError),
    ("garbage", UploadTransportError),
])
async def test_error_mapping(uploader_for, kubo_server, reply, error):
    _, state = kubo_server
    state["reply"] = reply
    with pytest.raises(error):
        await uploader_for.upload(b"banner-bytes")


async def test_client_error_is_not_transport_error(uploader_for, kubo_server):
    """4xx other than 413 is a permanent refusal, not retryable."""
    _, state = kubo_server
    state["reply"] = "400"
    with pytest.raises(UploadError) as info:
        await uploader_for.upload(b"banner-bytes")
    assert not info.value.retryable


async def test_unreachable_node():
    uploader = KuboMediaUploader(kubo_rpc_url="http://127.0.0.1:1", upload_timeout=1)
    with pytest.raises(UploadTransportError):
        await uploader.upload(b"banner-bytes")
