"""Configuration models for the coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class StoreBackend(str, Enum):
    """Where off-chain event metadata lives."""

    SQLITE = "sqlite"  # local aiosqlite database
    HTTP = "http"  # remote /api/events endpoint


@dataclass
class RetryConfig:
    """Bounded exponential backoff for pre-commitment transport errors."""

    upload_attempts: int = 3
    store_attempts: int = 3
    ledger_attempts: int = 3
    base_delay: float = 0.5  # seconds
    max_delay: float = 8.0  # seconds


@dataclass
class CoordinatorConfig:
    """Complete coordinator configuration."""

    # Coordinator
    log_level: str = "info"
    confirmation_timeout: float = 300.0  # seconds
    poll_interval: float = 2.0  # seconds between get_transaction polls

    # Stellar
    network: str = "testnet"
    rpc_url: str = "https://soroban-testnet.stellar.org"
    network_passphrase: str = "Test SDF Network ; September 2015"
    factory_contract_id: str = ""  # event factory contract ID
    keypair_secret: str = ""  # loaded from env var EVENNTZ_SECRET
    base_fee: int = 100  # stroops
    read_timeout: float = 30.0  # seconds

    # IPFS
    kubo_rpc_url: str = "http://127.0.0.1:5001"
    gateway_url: str = "https://ipfs.io"
    upload_timeout: float = 60.0  # seconds
    max_upload_size: int = 10_485_760  # 10 MiB

    # Metadata store
    store_backend: StoreBackend = StoreBackend.SQLITE
    db_path: str = "~/.evenntz/metadata.db"
    api_url: str = "http://127.0.0.1:3000/api"
    api_token: str = ""
    request_timeout: float = 15.0  # seconds

    # Retry policy
    retry: RetryConfig = field(default_factory=RetryConfig)
