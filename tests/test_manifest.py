"""Publication manifests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from evenntz_coordinator.coordinator.publication import validate_request
from evenntz_coordinator.errors import InvalidPublicationInput
from evenntz_coordinator.manifest import load_manifest
from evenntz_coordinator.models.domain import EventKind

MANIFEST = """
name = "Rooftop Jazz"
description = "Live quartet"
kind = "paid"
organization_id = "org-42"
media = "banner.png"
start = 2026-11-01T19:00:00Z
end = "2026-11-01T23:00:00+00:00"
tags = ["music"]

[location]
venue_name = "Skyline"
lat = 52.37

[[tiers]]
name = "General"
price = 1000
quantity = 50

[[tiers]]
name = "VIP"
price = 2500
quantity = 10
"""


@pytest.fixture
def manifest_dir(tmp_path):
    (tmp_path / "banner.png").write_bytes(b"\x89PNG banner")
    return tmp_path


def test_load_manifest(manifest_dir):
    path = manifest_dir / "event.toml"
    path.write_text(MANIFEST)

    request = load_manifest(path)

    assert request.name == "Rooftop Jazz"
    assert request.kind is EventKind.PAID
    assert request.media == b"\x89PNG banner"
    assert request.media_filename == "banner.png"
    assert request.schedule.start == datetime(2026, 11, 1, 19, tzinfo=timezone.utc)
    assert request.schedule.end == datetime(2026, 11, 1, 23, tzinfo=timezone.utc)
    assert request.max_tickets == 60
    assert request.ticket_price == 1000
    assert request.location.venue_name == "Skyline"
    assert validate_request(request) == []


def test_unknown_kind(manifest_dir):
    path = manifest_dir / "event.toml"
    path.write_text(MANIFEST.replace('kind = "paid"', 'kind = "vip-only"'))
    with pytest.raises(InvalidPublicationInput):
        load_manifest(path)


def test_missing_media_file(manifest_dir):
    path = manifest_dir / "event.toml"
    path.write_text(MANIFEST.replace("banner.png", "missing.png"))
    with pytest.raises(InvalidPublicationInput):
        load_manifest(path)


def test_missing_start(manifest_dir):
    path = manifest_dir / "event.toml"
    path.write_text(MANIFEST.replace("start = 2026-11-01T19:00:00Z\n", ""))
    with pytest.raises(InvalidPublicationInput):
        load_manifest(path)


def test_local_time_fails_validation(manifest_dir):
    """TOML local datetimes carry no zone → request refused before upload."""
    path = manifest_dir / "event.toml"
    path.write_text(MANIFEST.replace("2026-11-01T19:00:00Z", "2026-11-01T19:00:00"))

    problems = validate_request(load_manifest(path))

    assert any("timezone" in p for p in problems)
