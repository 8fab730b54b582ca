"""LedgerClient protocol - signed contract calls, confirmation, reads."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from stellar_sdk import Keypair

from evenntz_coordinator.models.records import ConfirmationReceipt, TxHandle


class ContractRole(str, Enum):
    """Logical contract a call is aimed at."""

    FACTORY = "factory"
    EVENT = "event"  # per-event implementation contract
    TICKET = "ticket"  # per-event ticket NFT contract


@dataclass(frozen=True)
class ContractCall:
    """One contract invocation, already checked against its role's interface."""

    contract_address: str
    role: ContractRole
    function: str
    args: tuple[Any, ...] = ()
    value: int | None = None  # attached amount, payable functions only


class LedgerClient(Protocol):
    """Network-facing half of the ledger: submits, confirms and reads."""

    async def read(self, call: ContractCall) -> Any:
        """Simulate a read-only call and return the decoded value."""
        ...

    async def submit(self, call: ContractCall, signer: Keypair) -> TxHandle:
        """Sign and send a state-mutating call. Returns before confirmation."""
        ...

    async def await_confirmation(
        self, handle: TxHandle, timeout: float
    ) -> ConfirmationReceipt:
        """Block until the transaction is included or the timeout expires."""
        ...

    async def transaction_status(self, handle: TxHandle) -> ConfirmationReceipt | None:
        """Single poll. None while the transaction is still unknown to the ledger."""
        ...

    async def close(self) -> None:
        ...
