"""Configuration loading: TOML file + environment variables + deployments.json."""

from __future__ import annotations

import json
import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from stellar_sdk import Network

from evenntz_coordinator.models.config import CoordinatorConfig, RetryConfig, StoreBackend

_MAINNET_RPC_URL = "https://mainnet.sorobanrpc.com"


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "EVENNTZ_",
) -> CoordinatorConfig:
    """Load coordinator configuration from TOML file, env vars, and deployments.json.

    Priority (highest wins):
        1. Environment variables (EVENNTZ_SECRET, etc.)
        2. TOML config file
        3. Defaults from CoordinatorConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = CoordinatorConfig()

    # ── Coordinator section ────────────────────────────────
    coordinator = raw.get("coordinator", {})
    if v := coordinator.get("log_level"):
        cfg.log_level = str(v)
    if v := coordinator.get("confirmation_timeout"):
        cfg.confirmation_timeout = float(v)
    if v := coordinator.get("poll_interval"):
        cfg.poll_interval = float(v)

    # ── Stellar section ────────────────────────────────────
    stellar = raw.get("stellar", {})
    if v := stellar.get("network"):
        cfg.network = str(v)
    if v := stellar.get("rpc_url"):
        cfg.rpc_url = str(v)
    if v := stellar.get("network_passphrase"):
        cfg.network_passphrase = str(v)
    if v := stellar.get("factory_contract_id"):
        cfg.factory_contract_id = str(v)
    if v := stellar.get("keypair_secret"):
        cfg.keypair_secret = str(v)
    if v := stellar.get("base_fee"):
        cfg.base_fee = int(v)
    if v := stellar.get("read_timeout"):
        cfg.read_timeout = float(v)

    # ── IPFS section ───────────────────────────────────────
    ipfs = raw.get("ipfs", {})
    if v := ipfs.get("kubo_rpc_url"):
        cfg.kubo_rpc_url = str(v)
    if v := ipfs.get("gateway_url"):
        cfg.gateway_url = str(v)
    if v := ipfs.get("upload_timeout"):
        cfg.upload_timeout = float(v)
    if v := ipfs.get("max_upload_size"):
        cfg.max_upload_size = int(v)

    # ── Store section ──────────────────────────────────────
    store = raw.get("store", {})
    if v := store.get("backend"):
        cfg.store_backend = StoreBackend(v)
    if v := store.get("db_path"):
        cfg.db_path = str(v)
    if v := store.get("api_url"):
        cfg.api_url = str(v)
    if v := store.get("api_token"):
        cfg.api_token = str(v)
    if v := store.get("request_timeout"):
        cfg.request_timeout = float(v)

    # ── Retry section ──────────────────────────────────────
    retry_raw = raw.get("retry", {})
    cfg.retry = RetryConfig(
        upload_attempts=retry_raw.get("upload_attempts", 3),
        store_attempts=retry_raw.get("store_attempts", 3),
        ledger_attempts=retry_raw.get("ledger_attempts", 3),
        base_delay=retry_raw.get("base_delay", 0.5),
        max_delay=retry_raw.get("max_delay", 8.0),
    )

    # ── Environment variable overrides (highest priority) ──
    if secret := os.environ.get(f"{env_prefix}SECRET"):
        cfg.keypair_secret = secret
    if net := os.environ.get(f"{env_prefix}NETWORK"):
        cfg.network = net
    if rpc := os.environ.get(f"{env_prefix}RPC_URL"):
        cfg.rpc_url = rpc
    if factory := os.environ.get(f"{env_prefix}FACTORY_ID"):
        cfg.factory_contract_id = factory
    if url := os.environ.get(f"{env_prefix}STORE_URL"):
        cfg.api_url = url
        cfg.store_backend = StoreBackend.HTTP
    if db := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = db

    # Mainnet defaults unless endpoints were given explicitly
    if cfg.network == "mainnet":
        if not stellar.get("network_passphrase"):
            cfg.network_passphrase = Network.PUBLIC_NETWORK_PASSPHRASE
        if not stellar.get("rpc_url") and not os.environ.get(f"{env_prefix}RPC_URL"):
            cfg.rpc_url = _MAINNET_RPC_URL

    # Load the factory ID from deployments.json if not explicitly set
    if not cfg.factory_contract_id:
        _load_deployments(cfg, stellar.get("deployments_path", "deployments.json"))

    # Expand ~ in paths
    cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg


def _load_deployments(cfg: CoordinatorConfig, deployments_path: str) -> None:
    """Load the event factory contract ID from a deployments.json file."""
    p = Path(deployments_path).expanduser()
    if not p.is_absolute():
        p = Path.cwd() / p
    if not p.exists():
        return

    with open(p) as f:
        data = json.load(f)

    factory = data.get("event_factory", {})
    if cid := factory.get("contract_id"):
        cfg.factory_contract_id = cid
