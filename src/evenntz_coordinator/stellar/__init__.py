"""Soroban ledger access: contract interfaces, RPC client and gateway."""

from evenntz_coordinator.stellar.abi import ROLE_ABIS, FunctionSpec, lookup
from evenntz_coordinator.stellar.client import SorobanLedgerClient, scval_to_native
from evenntz_coordinator.stellar.gateway import LedgerGateway

__all__ = [
    "ROLE_ABIS", "FunctionSpec", "lookup",
    "SorobanLedgerClient", "scval_to_native",
    "LedgerGateway",
]
