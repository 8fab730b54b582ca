"""Soroban ledger client - simulates reads, signs and sends writes, polls receipts."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import aiohttp
from stellar_sdk import Address, Keypair, SorobanServerAsync, StrKey, scval, xdr
from stellar_sdk.client.aiohttp_client import AiohttpClient
from stellar_sdk.contract import ContractClientAsync
from stellar_sdk.contract.exceptions import SimulationFailedError
from stellar_sdk.exceptions import ConnectionError as StellarConnectionError
from stellar_sdk.soroban_rpc import GetTransactionStatus, SendTransactionStatus

from evenntz_coordinator.errors import (
    ConfirmationTimeout,
    ContractInterfaceMismatch,
    LedgerTransportError,
    SubmittedOutcomeUnknown,
    TransactionRejected,
)
from evenntz_coordinator.interfaces.ledger import ContractCall
from evenntz_coordinator.models.records import ConfirmationReceipt, TxHandle
from evenntz_coordinator.stellar.abi import FunctionSpec, lookup

log = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (StellarConnectionError, aiohttp.ClientError, asyncio.TimeoutError, OSError)

# Host diagnostics for a call aimed at a contract or function that does not exist
_MISSING_INTERFACE_MARKERS = (
    "non-existent contract function",
    "MissingValue",
    "contract not found",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── SCVal encoding ────────────────────────────────────────


def _encode(value: Any, soroban_type: str) -> xdr.SCVal:
    """Encode a native value as the SCVal the contract parameter expects."""
    if soroban_type == "address":
        return scval.to_address(value)
    if soroban_type == "string":
        return scval.to_string(value)
    if soroban_type == "u32":
        return scval.to_uint32(int(value))
    if soroban_type == "u64":
        return scval.to_uint64(int(value))
    if soroban_type == "i128":
        return scval.to_int128(int(value))
    if soroban_type == "bool":
        return scval.to_bool(bool(value))
    if soroban_type == "vec<address>":
        return scval.to_vec([scval.to_address(v) for v in value])
    raise ValueError(f"unsupported parameter type {soroban_type}")


def encode_args(spec: FunctionSpec, call: ContractCall) -> list[xdr.SCVal]:
    if len(call.args) != spec.arity:
        raise ValueError(
            f"{spec.name}() takes {spec.arity} arguments, got {len(call.args)}"
        )
    params = [_encode(arg, t) for arg, (_, t) in zip(call.args, spec.params)]
    if spec.payable:
        params.append(scval.to_int128(int(call.value or 0)))
    return params


# ── SCVal decoding ────────────────────────────────────────


def _decode_key(val: xdr.SCVal) -> Any:
    if val.type == xdr.SCValType.SCV_SYMBOL:
        return scval.from_symbol(val)
    return scval_to_native(val)


def scval_to_native(val: xdr.SCVal) -> Any:
    """Decode an SCVal into plain Python: strkeys, ints, str, lists, dicts."""
    t = val.type
    if t == xdr.SCValType.SCV_VOID:
        return None
    if t == xdr.SCValType.SCV_BOOL:
        return scval.from_bool(val)
    if t == xdr.SCValType.SCV_U32:
        return scval.from_uint32(val)
    if t == xdr.SCValType.SCV_I32:
        return scval.from_int32(val)
    if t == xdr.SCValType.SCV_U64:
        return scval.from_uint64(val)
    if t == xdr.SCValType.SCV_I64:
        return scval.from_int64(val)
    if t == xdr.SCValType.SCV_U128:
        return scval.from_uint128(val)
    if t == xdr.SCValType.SCV_I128:
        return scval.from_int128(val)
    if t == xdr.SCValType.SCV_STRING:
        raw = scval.from_string(val)
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
    if t == xdr.SCValType.SCV_SYMBOL:
        return scval.from_symbol(val)
    if t == xdr.SCValType.SCV_BYTES:
        return scval.from_bytes(val)
    if t == xdr.SCValType.SCV_ADDRESS:
        addr = scval.from_address(val)
        return addr.address if isinstance(addr, Address) else str(addr)
    if t == xdr.SCValType.SCV_VEC:
        return [scval_to_native(v) for v in scval.from_vec(val)]
    if t == xdr.SCValType.SCV_MAP:
        entries = val.map.sc_map if val.map is not None else []
        return {_decode_key(e.key): scval_to_native(e.val) for e in entries}
    raise ValueError(f"cannot decode SCVal of type {t}")


def _return_value(result_meta_xdr: str | None) -> Any:
    """Extract the invocation's return value from TransactionMeta XDR."""
    if not result_meta_xdr:
        return None
    meta = xdr.TransactionMeta.from_xdr(result_meta_xdr)
    for version in ("v4", "v3"):
        body = getattr(meta, version, None)
        soroban_meta = getattr(body, "soroban_meta", None) if body is not None else None
        if soroban_meta is not None and soroban_meta.return_value is not None:
            return scval_to_native(soroban_meta.return_value)
    return None


def _failure_reason(result_xdr: str | None) -> str:
    if not result_xdr:
        return "transaction failed"
    try:
        result = xdr.TransactionResult.from_xdr(result_xdr)
        return result.result.code.name
    except Exception:
        return "transaction failed"


def _is_interface_mismatch(exc: Exception) -> bool:
    msg = str(exc)
    return any(marker in msg for marker in _MISSING_INTERFACE_MARKERS)


# ── Client ─────────────────────────────────────────────────


class SorobanLedgerClient:
    """LedgerClient over Soroban RPC.

    One aiohttp session is shared by the RPC server and every per-contract
    ContractClientAsync. Reads are simulate-only. Writes are simulated,
    assembled, signed locally and sent; confirmation is a separate poll.
    """

    def __init__(
        self,
        rpc_url: str,
        network_passphrase: str,
        *,
        base_fee: int = 100,
        read_timeout: float = 30.0,
        poll_interval: float = 2.0,
    ) -> None:
        self._rpc_url = rpc_url
        self._network_passphrase = network_passphrase
        self._base_fee = base_fee
        self._read_timeout = read_timeout
        self._poll_interval = poll_interval
        self._request_client = AiohttpClient()
        self._server = SorobanServerAsync(rpc_url, client=self._request_client)
        self._contracts: dict[str, ContractClientAsync] = {}

    async def close(self) -> None:
        """Close the underlying aiohttp session."""
        try:
            await self._server.close()
        except _TRANSPORT_ERRORS as exc:
            log.debug("closing soroban client: %s", exc)

    def _contract(self, address: str) -> ContractClientAsync:
        client = self._contracts.get(address)
        if client is None:
            client = ContractClientAsync(
                contract_id=address,
                rpc_url=self._rpc_url,
                network_passphrase=self._network_passphrase,
                request_client=self._request_client,
            )
            self._contracts[address] = client
        return client

    def _spec(self, call: ContractCall) -> FunctionSpec:
        spec = lookup(call.role, call.function)
        if spec is None:
            raise ContractInterfaceMismatch(call.contract_address, call.function)
        return spec

    # ── Reads ──────────────────────────────────────────────

    async def read(self, call: ContractCall) -> Any:
        spec = self._spec(call)
        try:
            params = encode_args(spec, call)
        except (ValueError, TypeError) as exc:
            raise ContractInterfaceMismatch(
                call.contract_address, call.function, str(exc)
            ) from exc

        try:
            tx = await asyncio.wait_for(
                self._contract(call.contract_address).invoke(
                    call.function,
                    params,
                    parse_result_xdr_fn=scval_to_native,
                ),
                timeout=self._read_timeout,
            )
            return tx.result()
        except SimulationFailedError as exc:
            if _is_interface_mismatch(exc):
                raise ContractInterfaceMismatch(
                    call.contract_address, call.function, str(exc)
                ) from exc
            raise TransactionRejected(
                f"{call.function}() simulation failed: {exc}"
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            raise LedgerTransportError(
                f"{call.function}() read failed: {exc}"
            ) from exc
        except (ValueError, TypeError) as exc:
            raise ContractInterfaceMismatch(
                call.contract_address, call.function, f"undecodable result: {exc}"
            ) from exc

    # ── Writes ─────────────────────────────────────────────

    async def submit(self, call: ContractCall, signer: Keypair) -> TxHandle:
        spec = self._spec(call)
        try:
            params = encode_args(spec, call)
        except (ValueError, TypeError) as exc:
            raise ContractInterfaceMismatch(
                call.contract_address, call.function, str(exc)
            ) from exc

        try:
            tx = await self._contract(call.contract_address).invoke(
                call.function,
                params,
                source=signer.public_key,
                signer=signer,
                base_fee=self._base_fee,
            )
        except SimulationFailedError as exc:
            if _is_interface_mismatch(exc):
                raise ContractInterfaceMismatch(
                    call.contract_address, call.function, str(exc)
                ) from exc
            log.warning("%s() simulation failed: %s", call.function, exc)
            raise TransactionRejected(
                f"{call.function}() simulation failed: {exc}", revert_reason=str(exc)
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            raise LedgerTransportError(
                f"{call.function}() could not be prepared: {exc}"
            ) from exc

        envelope = tx.built_transaction
        envelope.sign(signer)
        handle = TxHandle(
            tx_hash=envelope.hash_hex(),
            contract_address=call.contract_address,
            function=call.function,
            submitted_at=_now(),
        )

        try:
            response = await self._server.send_transaction(envelope)
        except _TRANSPORT_ERRORS as exc:
            log.error(
                "%s() send failed after signing (tx=%s): %s",
                call.function, handle.short(), exc,
            )
            raise SubmittedOutcomeUnknown(handle, str(exc)) from exc

        if response.status == SendTransactionStatus.ERROR:
            raise TransactionRejected(
                f"{call.function}() rejected by RPC",
                handle=handle,
                revert_reason=response.error_result_xdr,
            )
        if response.status == SendTransactionStatus.TRY_AGAIN_LATER:
            raise LedgerTransportError(f"{call.function}() not accepted, try again later")

        log.info(
            "Submitted %s() to %s (tx=%s)",
            call.function, call.contract_address[:16], handle.short(),
        )
        return handle

    # ── Confirmation ───────────────────────────────────────

    async def transaction_status(self, handle: TxHandle) -> ConfirmationReceipt | None:
        try:
            response = await self._server.get_transaction(handle.tx_hash)
        except _TRANSPORT_ERRORS as exc:
            raise LedgerTransportError(
                f"status of tx {handle.short()} unavailable: {exc}"
            ) from exc

        if response.status == GetTransactionStatus.NOT_FOUND:
            return None
        if response.status == GetTransactionStatus.FAILED:
            return ConfirmationReceipt(
                tx_hash=handle.tx_hash,
                success=False,
                ledger=response.ledger,
                revert_reason=_failure_reason(response.result_xdr),
            )

        value = _return_value(response.result_meta_xdr)
        confirmed_address = None
        if isinstance(value, str) and StrKey.is_valid_contract(value):
            confirmed_address = value
        return ConfirmationReceipt(
            tx_hash=handle.tx_hash,
            success=True,
            confirmed_address=confirmed_address,
            return_value=value,
            ledger=response.ledger,
        )

    async def await_confirmation(
        self, handle: TxHandle, timeout: float
    ) -> ConfirmationReceipt:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            try:
                receipt = await self.transaction_status(handle)
            except LedgerTransportError as exc:
                log.warning("Polling tx %s failed: %s", handle.short(), exc)
                receipt = None
            if receipt is not None:
                log.info(
                    "tx %s %s in ledger %s",
                    handle.short(),
                    "confirmed" if receipt.success else "failed",
                    receipt.ledger,
                )
                return receipt
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ConfirmationTimeout(handle, timeout)
            await asyncio.sleep(min(self._poll_interval, remaining))
