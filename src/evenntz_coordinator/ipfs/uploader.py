"""Kubo media uploader - adds event assets via the Kubo HTTP RPC."""

from __future__ import annotations

import logging

import httpx

from evenntz_coordinator.errors import PayloadTooLarge, UploadError, UploadTransportError
from evenntz_coordinator.models.records import ContentIdentifier

log = logging.getLogger(__name__)


class KuboMediaUploader:
    """Uploads single assets to a Kubo node via /api/v0/add.

    Add parameters are fixed so identical bytes always hash to the same CID.
    One attempt per call; retrying is the coordinator's job.
    """

    def __init__(
        self,
        kubo_rpc_url: str = "http://127.0.0.1:5001",
        gateway_url: str = "https://ipfs.io",
        upload_timeout: float = 60.0,
        max_upload_size: int = 10_485_760,
    ) -> None:
        self._base_url = kubo_rpc_url.rstrip("/")
        self._gateway_url = gateway_url.rstrip("/")
        self._upload_timeout = upload_timeout
        self._max_upload_size = max_upload_size

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}/api/v0/{endpoint}"

    def gateway_url(self, cid: str) -> str:
        return f"{self._gateway_url}/ipfs/{cid}"

    async def upload(self, data: bytes, filename: str = "asset") -> ContentIdentifier:
        if len(data) > self._max_upload_size:
            raise PayloadTooLarge(len(data), self._max_upload_size)

        log.info("Uploading %s (%d bytes) to Kubo", filename, len(data))
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._upload_timeout, connect=10),
            ) as client:
                resp = await client.post(
                    self._url("add"),
                    params={
                        "wrap-with-directory": "false",
                        "chunker": "size-262144",
                        "raw-leaves": "true",
                        "cid-version": "1",
                        "hash": "sha2-256",
                        "pin": "true",
                    },
                    files={"file": (filename, data)},
                )
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 413:
                raise PayloadTooLarge(len(data), self._max_upload_size) from exc
            if status >= 500:
                raise UploadTransportError(f"Kubo HTTP {status}") from exc
            raise UploadError(f"Kubo refused upload: HTTP {status}") from exc
        except httpx.HTTPError as exc:
            raise UploadTransportError(f"Kubo unreachable: {exc}") from exc
        except ValueError as exc:
            raise UploadTransportError(f"malformed Kubo response: {exc}") from exc

        cid = body.get("Hash", "")
        if not cid:
            raise UploadTransportError("Kubo response carried no CID")
        size = body.get("Size")
        log.info("Uploaded %s as %s", filename, cid)
        return ContentIdentifier(
            cid=cid,
            url=self.gateway_url(cid),
            size=int(size) if size is not None else len(data),
        )
