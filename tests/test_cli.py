"""CLI commands over an injected runtime."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from evenntz_coordinator import cli as cli_module
from evenntz_coordinator.cli import cli
from evenntz_coordinator.errors import LedgerTransportError
from evenntz_coordinator.runtime import CoordinatorRuntime
from tests.conftest import EVENT_ADDRESS, FACTORY_ID, TEST_SECRET, TICKET_ADDRESS, seed_event
from tests.mocks import CREATED_EVENT_ADDRESS, MockLedgerClient, MockUploader


@pytest.fixture
def cli_ledger(monkeypatch, tmp_path):
    """Point the CLI at mock collaborators and a throwaway database."""
    ledger = MockLedgerClient()
    monkeypatch.setenv("EVENNTZ_FACTORY_ID", FACTORY_ID)
    monkeypatch.setenv("EVENNTZ_SECRET", TEST_SECRET)
    monkeypatch.setenv("EVENNTZ_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.delenv("EVENNTZ_STORE_URL", raising=False)
    monkeypatch.setattr(
        cli_module,
        "CoordinatorRuntime",
        lambda cfg: CoordinatorRuntime(cfg, ledger_client=ledger, uploader=MockUploader()),
    )
    return ledger


def test_status_hides_secret(cli_ledger):
    result = CliRunner().invoke(cli, ["status"])

    assert result.exit_code == 0
    assert FACTORY_ID in result.output
    assert TEST_SECRET not in result.output
    assert "***configured***" in result.output


def test_publish_manifest(cli_ledger, tmp_path):
    (tmp_path / "banner.png").write_bytes(b"\x89PNG")
    manifest = tmp_path / "event.toml"
    manifest.write_text(
        'name = "Open Mic"\nkind = "free"\norganization_id = "org-1"\n'
        'media = "banner.png"\n'
        "start = 2026-11-01T19:00:00Z\nend = 2026-11-01T22:00:00Z\n"
    )

    result = CliRunner().invoke(cli, ["publish", str(manifest)])

    assert result.exit_code == 0, result.output
    assert "published" in result.output
    assert CREATED_EVENT_ADDRESS in result.output


def test_publish_requires_secret(cli_ledger, tmp_path, monkeypatch):
    monkeypatch.delenv("EVENNTZ_SECRET")
    (tmp_path / "banner.png").write_bytes(b"\x89PNG")
    manifest = tmp_path / "event.toml"
    manifest.write_text(
        'name = "Open Mic"\norganization_id = "org-1"\nmedia = "banner.png"\n'
        "start = 2026-11-01T19:00:00Z\nend = 2026-11-01T22:00:00Z\n"
    )

    result = CliRunner().invoke(cli, ["publish", str(manifest)])

    assert result.exit_code == 1
    assert cli_ledger.submitted == []


def test_pending_empty(cli_ledger):
    result = CliRunner().invoke(cli, ["pending"])
    assert result.exit_code == 0
    assert "No unresolved publications." in result.output


def test_buy_resale_value_mismatch(cli_ledger):
    seed_event(cli_ledger)
    cli_ledger.set_read(TICKET_ADDRESS, "get_resale_info", {"listed": True, "price": 600})

    result = CliRunner().invoke(cli, ["buy-resale", EVENT_ADDRESS, "7", "500"])

    assert result.exit_code == 1
    assert "value_mismatch" in result.output
    assert cli_ledger.submitted == []


def test_analytics_unavailable_exits_nonzero(cli_ledger):
    seed_event(cli_ledger)
    cli_ledger.set_read(TICKET_ADDRESS, "burned_tickets_count", LedgerTransportError("timeout"))

    result = CliRunner().invoke(cli, ["analytics", EVENT_ADDRESS])

    assert result.exit_code != 0


def test_analytics(cli_ledger):
    seed_event(cli_ledger, price=1000, sold=10, burned=4)

    result = CliRunner().invoke(cli, ["analytics", EVENT_ADDRESS])

    assert result.exit_code == 0
    assert "Revenue:      10000" in result.output
    assert "40.0%" in result.output
