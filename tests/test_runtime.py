"""CoordinatorRuntime wiring."""

from __future__ import annotations

from evenntz_coordinator.models.config import StoreBackend
from evenntz_coordinator.runtime import CoordinatorRuntime
from evenntz_coordinator.storage.http import HttpMetadataStore
from tests.conftest import TEST_PUBLIC, make_test_config
from tests.factories import make_request
from tests.mocks import MockLedgerClient, MockUploader


async def test_sqlite_backend_shares_journal(ledger, uploader):
    async with CoordinatorRuntime(make_test_config(), ledger_client=ledger, uploader=uploader) as rt:
        assert rt.store is rt.journal
        assert rt.public_key == TEST_PUBLIC

        outcome = await rt.publication.publish(make_request())

        assert outcome.success
        record = await rt.store.get_record(outcome.record_id)
        assert record.ledger_address == outcome.event_address
    assert ledger.closed


async def test_http_backend_keeps_local_journal():
    cfg = make_test_config(store_backend=StoreBackend.HTTP, api_url="http://127.0.0.1:1/api")
    rt = CoordinatorRuntime(cfg, ledger_client=MockLedgerClient(), uploader=MockUploader())

    assert isinstance(rt.store, HttpMetadataStore)
    assert rt.store is not rt.journal
    await rt.start()
    await rt.close()


async def test_no_secret_means_no_signer():
    rt = CoordinatorRuntime(
        make_test_config(keypair_secret=""),
        ledger_client=MockLedgerClient(),
        uploader=MockUploader(),
    )
    assert rt.public_key is None
