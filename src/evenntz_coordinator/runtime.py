"""Runtime wiring - builds the gateway, stores and coordinators from config."""

from __future__ import annotations

import logging

from stellar_sdk import Keypair

from evenntz_coordinator.coordinator.analytics import AnalyticsAggregator
from evenntz_coordinator.coordinator.publication import PublicationCoordinator
from evenntz_coordinator.coordinator.tickets import TicketLifecycleCoordinator
from evenntz_coordinator.interfaces.ledger import LedgerClient
from evenntz_coordinator.interfaces.store import MetadataStore
from evenntz_coordinator.interfaces.uploader import MediaUploader
from evenntz_coordinator.ipfs.uploader import KuboMediaUploader
from evenntz_coordinator.models.config import CoordinatorConfig, StoreBackend
from evenntz_coordinator.stellar.client import SorobanLedgerClient
from evenntz_coordinator.stellar.gateway import LedgerGateway
from evenntz_coordinator.storage.http import HttpMetadataStore
from evenntz_coordinator.storage.sqlite import SQLiteMetadataStore

log = logging.getLogger(__name__)


class CoordinatorRuntime:
    """Owns every collaborator for one process and the coordinators over them.

    The publication journal always lives in the local SQLite database; with
    the SQLite backend the same database also holds the event records.
    Collaborators can be injected, which is how the tests wire fakes in.
    """

    def __init__(
        self,
        cfg: CoordinatorConfig,
        *,
        ledger_client: LedgerClient | None = None,
        uploader: MediaUploader | None = None,
        store: MetadataStore | None = None,
    ) -> None:
        self.cfg = cfg
        signer = Keypair.from_secret(cfg.keypair_secret) if cfg.keypair_secret else None

        self.ledger_client = ledger_client or SorobanLedgerClient(
            cfg.rpc_url,
            cfg.network_passphrase,
            base_fee=cfg.base_fee,
            read_timeout=cfg.read_timeout,
            poll_interval=cfg.poll_interval,
        )
        self.gateway = LedgerGateway(self.ledger_client, cfg.factory_contract_id, signer)
        self.uploader = uploader or KuboMediaUploader(
            cfg.kubo_rpc_url, cfg.gateway_url, cfg.upload_timeout, cfg.max_upload_size,
        )

        self.journal = SQLiteMetadataStore(cfg.db_path)
        if store is not None:
            self.store = store
        elif cfg.store_backend is StoreBackend.HTTP:
            self.store = HttpMetadataStore(cfg.api_url, cfg.api_token, cfg.request_timeout)
        else:
            self.store = self.journal

        self.publication = PublicationCoordinator(
            self.gateway,
            self.uploader,
            self.store,
            journal=self.journal,
            retry=cfg.retry,
            confirmation_timeout=cfg.confirmation_timeout,
        )
        self.tickets = TicketLifecycleCoordinator(
            self.gateway, retry=cfg.retry, confirmation_timeout=cfg.confirmation_timeout,
        )
        self.analytics = AnalyticsAggregator(self.gateway)

    @property
    def public_key(self) -> str | None:
        signer = self.gateway.signer
        return signer.public_key if signer else None

    async def start(self) -> None:
        log.info("Starting evenntz coordinator")
        log.info("  Network: %s", self.cfg.network)
        log.info("  RPC: %s", self.cfg.rpc_url)
        log.info("  Factory: %s", self.cfg.factory_contract_id or "(not set)")
        log.info("  Store: %s", self.cfg.store_backend.value)
        await self.journal.initialize()
        if self.store is not self.journal:
            await self.store.initialize()

    async def close(self) -> None:
        if self.store is not self.journal:
            await self.store.close()
        await self.journal.close()
        await self.gateway.close()

    async def __aenter__(self) -> CoordinatorRuntime:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
