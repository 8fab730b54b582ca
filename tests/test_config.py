"""Configuration loading: TOML, environment overrides and deployments.json."""

from __future__ import annotations

import json

import pytest
from stellar_sdk import Network

from evenntz_coordinator.config import load_config
from evenntz_coordinator.models.config import StoreBackend
from tests.conftest import FACTORY_ID, TEST_SECRET

ENV_VARS = ("SECRET", "NETWORK", "RPC_URL", "FACTORY_ID", "STORE_URL", "DB_PATH")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(f"EVENNTZ_{name}", raising=False)
    monkeypatch.chdir(tmp_path)


def _write(tmp_path, text: str):
    path = tmp_path / "evenntz.toml"
    path.write_text(text)
    return path


def test_defaults_without_file(tmp_path):
    cfg = load_config(tmp_path / "missing.toml")

    assert cfg.network == "testnet"
    assert cfg.store_backend is StoreBackend.SQLITE
    assert cfg.factory_contract_id == ""
    assert cfg.retry.ledger_attempts == 3


def test_toml_sections(tmp_path):
    path = _write(tmp_path, f"""
[coordinator]
confirmation_timeout = 90

[stellar]
factory_contract_id = "{FACTORY_ID}"
base_fee = 300

[ipfs]
kubo_rpc_url = "http://kubo:5001"
max_upload_size = 2048

[store]
backend = "http"
api_url = "https://evenntz.example/api"

[retry]
store_attempts = 5
base_delay = 0.1
""")

    cfg = load_config(path)

    assert cfg.confirmation_timeout == 90.0
    assert cfg.factory_contract_id == FACTORY_ID
    assert cfg.base_fee == 300
    assert cfg.kubo_rpc_url == "http://kubo:5001"
    assert cfg.max_upload_size == 2048
    assert cfg.store_backend is StoreBackend.HTTP
    assert cfg.api_url == "https://evenntz.example/api"
    assert cfg.retry.store_attempts == 5
    assert cfg.retry.base_delay == 0.1


def test_env_overrides_file(tmp_path, monkeypatch):
    path = _write(tmp_path, '[stellar]\nfactory_contract_id = "CFROMFILE"\n')
    monkeypatch.setenv("EVENNTZ_FACTORY_ID", FACTORY_ID)
    monkeypatch.setenv("EVENNTZ_SECRET", TEST_SECRET)
    monkeypatch.setenv("EVENNTZ_STORE_URL", "https://api.example/api")

    cfg = load_config(path)

    assert cfg.factory_contract_id == FACTORY_ID
    assert cfg.keypair_secret == TEST_SECRET
    assert cfg.store_backend is StoreBackend.HTTP
    assert cfg.api_url == "https://api.example/api"


def test_mainnet_defaults(monkeypatch):
    monkeypatch.setenv("EVENNTZ_NETWORK", "mainnet")

    cfg = load_config()

    assert cfg.network_passphrase == Network.PUBLIC_NETWORK_PASSPHRASE
    assert "mainnet" in cfg.rpc_url


def test_mainnet_keeps_explicit_rpc(monkeypatch):
    monkeypatch.setenv("EVENNTZ_NETWORK", "mainnet")
    monkeypatch.setenv("EVENNTZ_RPC_URL", "https://rpc.private.example")

    assert load_config().rpc_url == "https://rpc.private.example"


def test_factory_from_deployments(tmp_path):
    (tmp_path / "deployments.json").write_text(
        json.dumps({"event_factory": {"contract_id": FACTORY_ID}})
    )

    assert load_config().factory_contract_id == FACTORY_ID


def test_db_path_expanded(monkeypatch):
    monkeypatch.setenv("EVENNTZ_DB_PATH", "~/evenntz/test.db")
    assert "~" not in load_config().db_path
