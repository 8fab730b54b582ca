"""MediaUploader protocol - content-addressed uploads."""

from __future__ import annotations

from typing import Protocol

from evenntz_coordinator.models.records import ContentIdentifier


class MediaUploader(Protocol):
    """Uploads one asset to content-addressed storage.

    Identical bytes always yield the same identifier, so retries are safe.
    """

    async def upload(self, data: bytes, filename: str = "asset") -> ContentIdentifier:
        ...
