"""Ticket lifecycle - purchase, resale and attendee operations on one event."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from stellar_sdk import Keypair

from evenntz_coordinator.coordinator.retry import with_retries
from evenntz_coordinator.errors import (
    ConfirmationTimeout,
    ContractInterfaceMismatch,
    CoordinatorError,
    InvalidResalePrice,
    LedgerError,
    LedgerTransportError,
    NoSigningIdentity,
    ResaleNoLongerAvailable,
    SubmittedOutcomeUnknown,
    TransactionRejected,
    ValueMismatch,
)
from evenntz_coordinator.models.config import RetryConfig
from evenntz_coordinator.models.records import (
    TicketFailure,
    TicketOperation,
    TicketOutcome,
    TxHandle,
)
from evenntz_coordinator.stellar.gateway import LedgerGateway

log = logging.getLogger(__name__)

# Errors raised before submission mapped to their outcome failure kind
_PRE_SUBMIT_FAILURES: tuple[tuple[type[CoordinatorError], TicketFailure], ...] = (
    (NoSigningIdentity, TicketFailure.REQUIRES_WALLET),
    (ValueMismatch, TicketFailure.VALUE_MISMATCH),
    (InvalidResalePrice, TicketFailure.INVALID_RESALE_PRICE),
    (ResaleNoLongerAvailable, TicketFailure.RESALE_NO_LONGER_AVAILABLE),
    (ContractInterfaceMismatch, TicketFailure.CONTRACT_INTERFACE_MISMATCH),
    (LedgerTransportError, TicketFailure.LEDGER_UNAVAILABLE),
    (TransactionRejected, TicketFailure.LEDGER_REJECTED),
)


def _classify(exc: CoordinatorError) -> TicketFailure:
    for error_type, failure in _PRE_SUBMIT_FAILURES:
        if isinstance(exc, error_type):
            return failure
    return TicketFailure.LEDGER_REJECTED


class TicketLifecycleCoordinator:
    """Runs ticket operations against an event and its ticket contract.

    Every operation resolves the event's ticket contract first. Failures
    before a transaction hash exists (reads, simulation transport) are
    retried; once a hash exists nothing is resubmitted and an unknown result
    is reported as SUBMITTED_OUTCOME_UNKNOWN with the handle.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        retry: RetryConfig | None = None,
        confirmation_timeout: float = 300.0,
    ) -> None:
        self._gateway = gateway
        self._retry = retry or RetryConfig()
        self._confirmation_timeout = confirmation_timeout

    # ── Resale and purchase ───────────────────────────────

    async def purchase(
        self,
        event_address: str,
        metadata_uri: str,
        offered_value: int,
        *,
        confirm: bool = True,
        timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> TicketOutcome:
        """Buy a primary ticket. Paid events need the exact price, others zero."""

        async def check_value() -> None:
            event = await self._gateway.get_event(event_address)
            if offered_value != event.effective_price:
                raise ValueMismatch(offered_value, event.effective_price, "==")

        return await self._execute(
            TicketOperation.PURCHASE,
            event_address,
            lambda: self._gateway.buy_ticket(
                event_address, metadata_uri, offered_value, signer=signer,
            ),
            precheck=check_value,
            confirm=confirm,
            timeout=timeout,
            signer=signer,
        )

    async def list_for_resale(
        self,
        event_address: str,
        token_id: int,
        price: int,
        *,
        confirm: bool = True,
        timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> TicketOutcome:
        if price <= 0:
            return self._failed(
                TicketOperation.LIST_FOR_RESALE,
                event_address,
                InvalidResalePrice(f"resale price must be positive, got {price}"),
                token_id=token_id,
            )
        return await self._execute(
            TicketOperation.LIST_FOR_RESALE,
            event_address,
            lambda: self._gateway.list_for_resale(event_address, token_id, price, signer=signer),
            token_id=token_id,
            confirm=confirm,
            timeout=timeout,
            signer=signer,
        )

    async def buy_resale(
        self,
        event_address: str,
        token_id: int,
        offered_value: int,
        *,
        confirm: bool = True,
        timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> TicketOutcome:
        """Buy a listed ticket. The listing is re-read right before submission."""

        async def check_listing() -> None:
            listing = await self._gateway.get_resale_info(event_address, token_id)
            if not listing.listed:
                raise ResaleNoLongerAvailable(f"ticket {token_id} is not listed")
            if offered_value < listing.price:
                raise ValueMismatch(offered_value, listing.price, ">=")

        return await self._execute(
            TicketOperation.BUY_RESALE,
            event_address,
            lambda: self._gateway.buy_resale(event_address, token_id, offered_value, signer=signer),
            token_id=token_id,
            precheck=check_listing,
            rejected=TicketFailure.RESALE_NO_LONGER_AVAILABLE,
            confirm=confirm,
            timeout=timeout,
            signer=signer,
        )

    async def cancel_resale(
        self,
        event_address: str,
        token_id: int,
        *,
        confirm: bool = True,
        timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> TicketOutcome:
        return await self._execute(
            TicketOperation.CANCEL_RESALE,
            event_address,
            lambda: self._gateway.cancel_resale(event_address, token_id, signer=signer),
            token_id=token_id,
            confirm=confirm,
            timeout=timeout,
            signer=signer,
        )

    # ── Attendee management ───────────────────────────────

    async def check_in(
        self,
        event_address: str,
        token_id: int,
        *,
        confirm: bool = True,
        timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> TicketOutcome:
        return await self._execute(
            TicketOperation.CHECK_IN,
            event_address,
            lambda: self._gateway.check_in(event_address, token_id, signer=signer),
            token_id=token_id,
            confirm=confirm,
            timeout=timeout,
            signer=signer,
        )

    async def approve_attendee(
        self,
        event_address: str,
        user: str,
        *,
        confirm: bool = True,
        timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> TicketOutcome:
        return await self._execute(
            TicketOperation.APPROVE_ATTENDEE,
            event_address,
            lambda: self._gateway.approve_user(event_address, user, signer=signer),
            confirm=confirm,
            timeout=timeout,
            signer=signer,
        )

    async def revoke_attendee(
        self,
        event_address: str,
        user: str,
        *,
        confirm: bool = True,
        timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> TicketOutcome:
        return await self._execute(
            TicketOperation.REVOKE_ATTENDEE,
            event_address,
            lambda: self._gateway.revoke_user(event_address, user, signer=signer),
            confirm=confirm,
            timeout=timeout,
            signer=signer,
        )

    async def mint_for_user(
        self,
        event_address: str,
        user: str,
        metadata_uri: str,
        *,
        confirm: bool = True,
        timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> TicketOutcome:
        return await self._execute(
            TicketOperation.MINT_FOR_USER,
            event_address,
            lambda: self._gateway.mint_for_user(event_address, user, metadata_uri, signer=signer),
            confirm=confirm,
            timeout=timeout,
            signer=signer,
        )

    async def airdrop(
        self,
        event_address: str,
        users: list[str],
        metadata_uri: str,
        *,
        confirm: bool = True,
        timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> TicketOutcome:
        return await self._execute(
            TicketOperation.AIRDROP,
            event_address,
            lambda: self._gateway.airdrop_tickets(event_address, users, metadata_uri, signer=signer),
            confirm=confirm,
            timeout=timeout,
            signer=signer,
        )

    # ── Shared execution path ─────────────────────────────

    async def _execute(
        self,
        operation: TicketOperation,
        event_address: str,
        submit: Callable[[], Awaitable[TxHandle]],
        *,
        token_id: int | None = None,
        precheck: Callable[[], Awaitable[None]] | None = None,
        rejected: TicketFailure = TicketFailure.LEDGER_REJECTED,
        confirm: bool = True,
        timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> TicketOutcome:
        ticket_contract: str | None = None
        try:
            self._gateway.require_signer(signer)

            async def prepare() -> str:
                resolved = await self._gateway.resolve_ticket_contract(event_address)
                if precheck is not None:
                    await precheck()
                return resolved

            ticket_contract = await self._with_retries(prepare, f"{operation.value} preparation")
        except CoordinatorError as exc:
            return self._failed(operation, event_address, exc, token_id=token_id,
                                ticket_contract=ticket_contract)

        try:
            handle = await self._with_retries(submit, f"{operation.value} submission")
        except SubmittedOutcomeUnknown as exc:
            log.error("%s on %s submitted, outcome unknown: %s",
                      operation.value, event_address[:16], exc)
            return TicketOutcome(
                operation=operation,
                event_address=event_address,
                success=False,
                token_id=token_id,
                ticket_contract=ticket_contract,
                tx_handle=exc.handle,
                failure=TicketFailure.SUBMITTED_OUTCOME_UNKNOWN,
                error=str(exc),
            )
        except TransactionRejected as exc:
            return self._failed(operation, event_address, exc, token_id=token_id,
                                ticket_contract=ticket_contract, failure=rejected)
        except CoordinatorError as exc:
            return self._failed(operation, event_address, exc, token_id=token_id,
                                ticket_contract=ticket_contract)

        log.info("%s on event %s submitted (tx=%s)",
                 operation.value, event_address[:16], handle.short())
        if not confirm:
            return TicketOutcome(
                operation=operation,
                event_address=event_address,
                success=True,
                token_id=token_id,
                ticket_contract=ticket_contract,
                tx_handle=handle,
            )

        try:
            receipt = await self._gateway.await_confirmation(
                handle, self._confirmation_timeout if timeout is None else timeout,
            )
        except (ConfirmationTimeout, LedgerError) as exc:
            log.error("%s tx %s unresolved: %s", operation.value, handle.short(), exc)
            return TicketOutcome(
                operation=operation,
                event_address=event_address,
                success=False,
                token_id=token_id,
                ticket_contract=ticket_contract,
                tx_handle=handle,
                failure=TicketFailure.SUBMITTED_OUTCOME_UNKNOWN,
                error=str(exc),
            )

        if not receipt.success:
            return TicketOutcome(
                operation=operation,
                event_address=event_address,
                success=False,
                token_id=token_id,
                ticket_contract=ticket_contract,
                tx_handle=handle,
                receipt=receipt,
                failure=rejected,
                error=receipt.revert_reason or f"{operation.value} failed on-ledger",
            )

        if token_id is None and isinstance(receipt.return_value, int):
            token_id = receipt.return_value
        return TicketOutcome(
            operation=operation,
            event_address=event_address,
            success=True,
            token_id=token_id,
            ticket_contract=ticket_contract,
            tx_handle=handle,
            receipt=receipt,
        )

    async def _with_retries(self, fn, label: str):
        return await with_retries(
            fn,
            attempts=self._retry.ledger_attempts,
            base_delay=self._retry.base_delay,
            max_delay=self._retry.max_delay,
            retry_on=(LedgerTransportError,),
            label=label,
        )

    @staticmethod
    def _failed(
        operation: TicketOperation,
        event_address: str,
        exc: CoordinatorError,
        *,
        token_id: int | None = None,
        ticket_contract: str | None = None,
        failure: TicketFailure | None = None,
    ) -> TicketOutcome:
        failure = failure or _classify(exc)
        log.warning("%s on %s failed: %s (%s)",
                    operation.value, event_address[:16], failure.value, exc)
        return TicketOutcome(
            operation=operation,
            event_address=event_address,
            success=False,
            token_id=token_id,
            ticket_contract=ticket_contract,
            tx_handle=getattr(exc, "handle", None),
            failure=failure,
            error=str(exc),
        )
