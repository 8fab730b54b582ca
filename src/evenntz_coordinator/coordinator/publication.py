"""Event publication saga - upload, create on-ledger, persist metadata, compensate."""

from __future__ import annotations

import dataclasses
import logging
import uuid

from stellar_sdk import Keypair

from evenntz_coordinator.coordinator.retry import with_retries
from evenntz_coordinator.errors import (
    ConfirmationTimeout,
    ContractInterfaceMismatch,
    CoordinatorError,
    LedgerError,
    LedgerTransportError,
    NoSigningIdentity,
    RecordNotFound,
    StoreError,
    StoreUnavailable,
    SubmittedOutcomeUnknown,
    TransactionRejected,
    UploadError,
    UploadTransportError,
)
from evenntz_coordinator.interfaces.store import MetadataStore, PublicationJournal
from evenntz_coordinator.interfaces.uploader import MediaUploader
from evenntz_coordinator.models.config import RetryConfig
from evenntz_coordinator.models.domain import (
    EventKind,
    MetadataFields,
    metadata_from_dict,
    metadata_to_dict,
)
from evenntz_coordinator.models.records import (
    TERMINAL_STATES,
    CancelResult,
    ConfirmationReceipt,
    ContentIdentifier,
    JournalEntry,
    PublicationFailure,
    PublicationOutcome,
    PublicationRequest,
    PublicationState,
    PublicationStatus,
    TxHandle,
)
from evenntz_coordinator.stellar.gateway import LedgerGateway

log = logging.getLogger(__name__)

# States from which a cancel request is still honoured
_CANCELLABLE = frozenset({PublicationState.VALIDATING, PublicationState.UPLOADING})


def validate_request(request: PublicationRequest) -> list[str]:
    """Return every problem with the request; empty when it can be published."""
    problems = []
    if not request.name.strip():
        problems.append("name is empty")
    start, end = request.schedule.start, request.schedule.end
    if start.tzinfo is None or end.tzinfo is None:
        problems.append("schedule timestamps must be timezone-aware")
    elif end <= start:
        problems.append("schedule end must be after start")
    if any(t.quantity < 0 for t in request.tiers):
        problems.append("ticket tier quantities cannot be negative")
    if any(t.price < 0 for t in request.tiers):
        problems.append("ticket tier prices cannot be negative")
    if request.kind is EventKind.PAID and request.ticket_price <= 0:
        problems.append("paid events need a positive ticket price")
    if not request.media:
        problems.append("no media asset supplied")
    if not request.organization_id:
        problems.append("organization_id is required")
    return problems


class PublicationAttempt:
    """One publication intent moving through the saga states."""

    def __init__(self, request: PublicationRequest | None, attempt_id: str | None = None) -> None:
        self.attempt_id = attempt_id or uuid.uuid4().hex
        self.request = request
        self.state = PublicationState.VALIDATING
        self.history: list[str] = [self.state.value]
        self.content: ContentIdentifier | None = None
        self.tx_handle: TxHandle | None = None
        self._cancel_requested = False

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> CancelResult:
        """Request cancellation. Refused once create_event has been submitted."""
        if self.state in TERMINAL_STATES:
            return CancelResult.ALREADY_FINISHED
        if self.state not in _CANCELLABLE:
            return CancelResult.CANNOT_CANCEL_AFTER_SUBMISSION
        self._cancel_requested = True
        return CancelResult.CANCELLED

    def transition(self, state: PublicationState) -> None:
        log.info(
            "Publication %s: %s -> %s",
            self.attempt_id[:8], self.state.value, state.value,
        )
        self.state = state
        self.history.append(state.value)


class PublicationCoordinator:
    """Runs the publication saga across uploader, ledger and metadata store.

    Steps run strictly in order. Upload and store failures are retried with
    bounded backoff; a submitted create_event is never resubmitted. Once an
    event is confirmed, a metadata failure triggers exactly one deactivate_event
    write. Indeterminate and compensated-failure outcomes are journaled.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        uploader: MediaUploader,
        store: MetadataStore,
        journal: PublicationJournal | None = None,
        retry: RetryConfig | None = None,
        confirmation_timeout: float = 300.0,
    ) -> None:
        self._gateway = gateway
        self._uploader = uploader
        self._store = store
        self._journal = journal
        self._retry = retry or RetryConfig()
        self._confirmation_timeout = confirmation_timeout
        self._intents: dict[str, MetadataFields] = {}

    def _timeout(self, confirmation_timeout: float | None) -> float:
        if confirmation_timeout is None:
            return self._confirmation_timeout
        return confirmation_timeout

    # ── Entry points ──────────────────────────────────────

    def begin(self, request: PublicationRequest) -> PublicationAttempt:
        return PublicationAttempt(request)

    async def publish(
        self,
        request: PublicationRequest,
        confirmation_timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> PublicationOutcome:
        attempt = self.begin(request)
        return await self.run(attempt, confirmation_timeout=confirmation_timeout, signer=signer)

    async def run(
        self,
        attempt: PublicationAttempt,
        confirmation_timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> PublicationOutcome:
        timeout = self._timeout(confirmation_timeout)
        request = attempt.request
        if request is None:
            raise ValueError(f"attempt {attempt.attempt_id} has no request to publish")

        if attempt.cancel_requested:
            return await self._cancelled(attempt)

        # Validating
        problems = validate_request(request)
        if problems:
            log.info("Publication %s rejected: %s", attempt.attempt_id[:8], "; ".join(problems))
            return await self._finish(
                attempt,
                PublicationStatus.FAILED,
                PublicationState.FAILED,
                failure=PublicationFailure.INVALID_PUBLICATION_INPUT,
                error="; ".join(problems),
            )
        if attempt.cancel_requested:
            return await self._cancelled(attempt)

        # Uploading
        attempt.transition(PublicationState.UPLOADING)
        try:
            content = await with_retries(
                lambda: self._uploader.upload(request.media, request.media_filename),
                attempts=self._retry.upload_attempts,
                base_delay=self._retry.base_delay,
                max_delay=self._retry.max_delay,
                retry_on=(UploadTransportError,),
                label="media upload",
            )
        except UploadError as exc:
            return await self._finish(
                attempt,
                PublicationStatus.FAILED,
                PublicationState.FAILED,
                failure=PublicationFailure.MEDIA_UPLOAD_FAILED,
                error=str(exc),
            )
        attempt.content = content
        intent = MetadataFields(
            name=request.name,
            description=request.description,
            content_id=content.cid,
            media_url=content.url,
            schedule=request.schedule,
            location=request.location,
            organization_id=request.organization_id,
            ledger_address=None,
            tiers=list(request.tiers),
            tags=list(request.tags),
        )
        self._intents[attempt.attempt_id] = intent
        if attempt.cancel_requested:
            return await self._cancelled(attempt)

        # Ledger submitting (no cancellation from here on)
        attempt.transition(PublicationState.LEDGER_SUBMITTING)
        try:
            handle = await with_retries(
                lambda: self._gateway.create_event(
                    request.name,
                    request.kind,
                    request.ticket_price,
                    request.max_tickets,
                    signer=signer,
                ),
                attempts=self._retry.ledger_attempts,
                base_delay=self._retry.base_delay,
                max_delay=self._retry.max_delay,
                retry_on=(LedgerTransportError,),
                label="create_event submission",
            )
        except NoSigningIdentity as exc:
            return await self._finish(
                attempt,
                PublicationStatus.FAILED,
                PublicationState.FAILED,
                failure=PublicationFailure.PUBLICATION_REQUIRES_WALLET,
                content=content,
                error=str(exc),
            )
        except LedgerTransportError as exc:
            return await self._finish(
                attempt,
                PublicationStatus.FAILED,
                PublicationState.FAILED,
                failure=PublicationFailure.LEDGER_UNAVAILABLE,
                content=content,
                error=str(exc),
            )
        except (TransactionRejected, ContractInterfaceMismatch) as exc:
            return await self._finish(
                attempt,
                PublicationStatus.FAILED,
                PublicationState.FAILED,
                failure=PublicationFailure.LEDGER_REJECTED,
                content=content,
                tx_handle=getattr(exc, "handle", None),
                error=str(exc),
            )
        except SubmittedOutcomeUnknown as exc:
            attempt.tx_handle = exc.handle
            return await self._indeterminate(attempt, exc.handle, intent, str(exc))
        attempt.tx_handle = handle

        # Ledger confirming
        attempt.transition(PublicationState.LEDGER_CONFIRMING)
        try:
            receipt = await self._gateway.await_confirmation(handle, timeout)
        except ConfirmationTimeout as exc:
            return await self._indeterminate(attempt, handle, intent, str(exc))
        except LedgerError as exc:
            return await self._indeterminate(attempt, handle, intent, str(exc))

        return await self._after_confirmation(attempt, handle, receipt, intent, timeout, signer)

    # ── Saga steps ────────────────────────────────────────

    async def _after_confirmation(
        self,
        attempt: PublicationAttempt,
        handle: TxHandle,
        receipt: ConfirmationReceipt,
        intent: MetadataFields,
        timeout: float,
        signer: Keypair | None,
    ) -> PublicationOutcome:
        if not receipt.success:
            return await self._finish(
                attempt,
                PublicationStatus.FAILED,
                PublicationState.FAILED,
                failure=PublicationFailure.LEDGER_REJECTED,
                content_id=intent.content_id,
                tx_handle=handle,
                error=receipt.revert_reason or "create_event failed on-ledger",
            )
        if not receipt.confirmed_address:
            return await self._indeterminate(
                attempt, handle, intent, "confirmed create_event returned no event address",
            )

        address = receipt.confirmed_address
        log.info("Event %s confirmed (tx=%s)", address[:16], handle.short())

        # Metadata persisting
        attempt.transition(PublicationState.METADATA_PERSISTING)
        fields = dataclasses.replace(intent, ledger_address=address)
        try:
            record_id = await with_retries(
                lambda: self._persist(fields, address),
                attempts=self._retry.store_attempts,
                base_delay=self._retry.base_delay,
                max_delay=self._retry.max_delay,
                retry_on=(StoreUnavailable,),
                label="metadata write",
            )
        except StoreUnavailable as exc:
            return await self._compensate(
                attempt, address, handle, intent, PublicationFailure.STORE_UNAVAILABLE,
                str(exc), timeout, signer,
            )
        except StoreError as exc:
            return await self._compensate(
                attempt, address, handle, intent, PublicationFailure.METADATA_REJECTED,
                str(exc), timeout, signer,
            )

        return await self._published(attempt, address, record_id, handle, intent)

    async def _persist(self, fields: MetadataFields, address: str) -> str:
        """Create the record unless an earlier try already stored one for the event."""
        existing = await self._store.find_by_ledger_address(address)
        if existing is not None:
            log.info("Record %s already references event %s", existing.record_id[:8], address[:16])
            return existing.record_id
        return await self._store.create_record(fields)

    async def _published(
        self,
        attempt: PublicationAttempt,
        address: str,
        record_id: str,
        handle: TxHandle,
        intent: MetadataFields,
    ) -> PublicationOutcome:
        self._intents.pop(attempt.attempt_id, None)
        return await self._finish(
            attempt,
            PublicationStatus.PUBLISHED,
            PublicationState.PUBLISHED,
            event_address=address,
            record_id=record_id,
            content_id=intent.content_id,
            tx_handle=handle,
        )

    async def _compensate(
        self,
        attempt: PublicationAttempt,
        address: str,
        handle: TxHandle,
        intent: MetadataFields,
        failure: PublicationFailure,
        error: str,
        timeout: float,
        signer: Keypair | None,
    ) -> PublicationOutcome:
        """Issue exactly one deactivate_event for a confirmed event with no record."""
        try:
            existing = await self._store.find_by_ledger_address(address)
        except CoordinatorError as exc:
            log.warning("Could not check for a record of event %s: %s", address[:16], exc)
            existing = None
        if existing is not None:
            log.warning(
                "Record %s for event %s was stored despite: %s",
                existing.record_id[:8], address[:16], error,
            )
            return await self._published(attempt, address, existing.record_id, handle, intent)

        attempt.transition(PublicationState.COMPENSATING)
        comp_handle: TxHandle | None = None
        try:
            comp_handle = await self._gateway.deactivate_event(address, signer=signer)
            receipt = await self._gateway.await_confirmation(comp_handle, timeout)
            if not receipt.success:
                raise TransactionRejected(
                    "deactivate_event failed on-ledger",
                    handle=comp_handle,
                    revert_reason=receipt.revert_reason,
                )
        except CoordinatorError as exc:
            log.error(
                "Compensation failed, event %s is active without metadata: %s",
                address, exc,
            )
            return await self._finish(
                attempt,
                PublicationStatus.COMPENSATED_FAILURE,
                PublicationState.COMPENSATED_FAILURE,
                failure=failure,
                event_address=address,
                content_id=intent.content_id,
                tx_handle=handle,
                compensation_tx=comp_handle,
                uncompensated_address=address,
                error=f"{error}; compensation failed: {exc}",
                metadata=dataclasses.replace(intent, ledger_address=address),
            )

        log.info("Event %s deactivated after metadata failure", address[:16])
        self._intents.pop(attempt.attempt_id, None)
        return await self._finish(
            attempt,
            PublicationStatus.FAILED,
            PublicationState.COMPENSATED,
            failure=failure,
            event_address=address,
            content_id=intent.content_id,
            tx_handle=handle,
            compensated=True,
            compensation_tx=comp_handle,
            error=error,
        )

    async def _indeterminate(
        self,
        attempt: PublicationAttempt,
        handle: TxHandle,
        intent: MetadataFields,
        error: str,
    ) -> PublicationOutcome:
        log.error(
            "Publication %s indeterminate, create_event tx %s unresolved: %s",
            attempt.attempt_id[:8], handle.tx_hash, error,
        )
        return await self._finish(
            attempt,
            PublicationStatus.INDETERMINATE,
            PublicationState.INDETERMINATE,
            failure=PublicationFailure.PUBLICATION_INDETERMINATE,
            content_id=intent.content_id,
            tx_handle=handle,
            error=error,
            metadata=intent,
        )

    async def _cancelled(self, attempt: PublicationAttempt) -> PublicationOutcome:
        return await self._finish(
            attempt,
            PublicationStatus.CANCELLED,
            PublicationState.CANCELLED,
            failure=PublicationFailure.CANCELLED,
            content=attempt.content,
        )

    async def _finish(
        self,
        attempt: PublicationAttempt,
        status: PublicationStatus,
        state: PublicationState,
        *,
        content: ContentIdentifier | None = None,
        metadata: MetadataFields | None = None,
        **fields,
    ) -> PublicationOutcome:
        attempt.transition(state)
        if content is not None:
            fields.setdefault("content_id", content.cid)
        outcome = PublicationOutcome(
            attempt_id=attempt.attempt_id,
            status=status,
            state=state,
            history=list(attempt.history),
            **fields,
        )
        if outcome.needs_attention and metadata is not None:
            await self._journal_outcome(outcome, metadata)
        return outcome

    async def _journal_outcome(self, outcome: PublicationOutcome, metadata: MetadataFields) -> None:
        if self._journal is None:
            return
        try:
            await self._journal.record_outcome(outcome, metadata_to_dict(metadata))
        except CoordinatorError as exc:
            log.error("Could not journal publication %s: %s", outcome.attempt_id[:8], exc)

    async def _resolve_journal(self, attempt_id: str, status: PublicationStatus) -> None:
        if self._journal is None:
            return
        try:
            await self._journal.resolve(attempt_id, status.value)
        except CoordinatorError as exc:
            log.error("Could not resolve journal entry %s: %s", attempt_id[:8], exc)

    # ── Follow-up ─────────────────────────────────────────

    async def reconcile(
        self,
        target: PublicationOutcome | JournalEntry,
        confirmation_timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> PublicationOutcome:
        """Resolve an indeterminate or compensated-failure publication.

        Indeterminate: one status poll of the original create_event. Confirmed
        continues with metadata persisting; failed ends the attempt; unknown
        leaves it indeterminate. create_event is never resubmitted.
        Compensated failure: one more deactivate_event attempt.
        """
        timeout = self._timeout(confirmation_timeout)
        attempt_id = target.attempt_id
        status = PublicationStatus(target.status)
        intent = await self._intent_for(attempt_id, target)

        if status is PublicationStatus.COMPENSATED_FAILURE:
            address = (
                target.uncompensated_address
                if isinstance(target, PublicationOutcome)
                else target.event_address
            )
            if not address:
                raise RecordNotFound(f"attempt {attempt_id} has no event address to deactivate")
            attempt = PublicationAttempt(None, attempt_id=attempt_id)
            attempt.state = PublicationState.METADATA_PERSISTING
            handle = self._handle_for(target)
            failure = PublicationFailure(target.failure) if target.failure else (
                PublicationFailure.METADATA_REJECTED
            )
            outcome = await self._compensate(
                attempt, address, handle, intent, failure,
                target.error or "metadata write failed", timeout, signer,
            )
            if not outcome.needs_attention:
                await self._resolve_journal(attempt_id, outcome.status)
            return outcome

        if status is not PublicationStatus.INDETERMINATE:
            raise ValueError(f"attempt {attempt_id} is {status.value}, nothing to reconcile")

        handle = self._handle_for(target)
        attempt = PublicationAttempt(None, attempt_id=attempt_id)
        attempt.state = PublicationState.LEDGER_CONFIRMING
        attempt.tx_handle = handle
        try:
            receipt = await self._gateway.transaction_status(handle)
        except LedgerError as exc:
            log.warning("Status of tx %s unavailable: %s", handle.short(), exc)
            receipt = None
        if receipt is None:
            log.info("create_event tx %s still pending", handle.short())
            return PublicationOutcome(
                attempt_id=attempt_id,
                status=PublicationStatus.INDETERMINATE,
                state=PublicationState.INDETERMINATE,
                failure=PublicationFailure.PUBLICATION_INDETERMINATE,
                content_id=intent.content_id,
                tx_handle=handle,
                error="transaction still pending",
                history=list(attempt.history),
            )

        outcome = await self._after_confirmation(attempt, handle, receipt, intent, timeout, signer)
        if not outcome.needs_attention:
            await self._resolve_journal(attempt_id, outcome.status)
        return outcome

    def _handle_for(self, target: PublicationOutcome | JournalEntry) -> TxHandle:
        if isinstance(target, PublicationOutcome):
            if target.tx_handle is None:
                raise RecordNotFound(f"attempt {target.attempt_id} has no transaction handle")
            return target.tx_handle
        if not target.tx_hash:
            raise RecordNotFound(f"attempt {target.attempt_id} has no transaction hash")
        return TxHandle(
            tx_hash=target.tx_hash,
            contract_address=self._gateway.factory_address,
            function="create_event",
            submitted_at=target.created_at,
        )

    async def _intent_for(
        self, attempt_id: str, target: PublicationOutcome | JournalEntry
    ) -> MetadataFields:
        if isinstance(target, JournalEntry):
            return dataclasses.replace(metadata_from_dict(target.metadata), ledger_address=None)
        intent = self._intents.get(attempt_id)
        if intent is not None:
            return intent
        if self._journal is not None:
            entry = await self._journal.get_entry(attempt_id)
            if entry is not None:
                return dataclasses.replace(metadata_from_dict(entry.metadata), ledger_address=None)
        raise RecordNotFound(f"no recorded intent for attempt {attempt_id}")

    async def deactivate(
        self,
        event_address: str,
        confirmation_timeout: float | None = None,
        signer: Keypair | None = None,
    ) -> ConfirmationReceipt:
        """Deactivate a published event on-ledger, then mark its record."""
        timeout = self._timeout(confirmation_timeout)
        handle = await self._gateway.deactivate_event(event_address, signer=signer)
        receipt = await self._gateway.await_confirmation(handle, timeout)
        if not receipt.success:
            raise TransactionRejected(
                "deactivate_event failed on-ledger",
                handle=handle,
                revert_reason=receipt.revert_reason,
            )
        record = await self._store.find_by_ledger_address(event_address)
        if record is not None:
            await self._store.mark_record(record.record_id, "deactivated")
        else:
            log.warning("Deactivated event %s has no local record", event_address[:16])
        log.info("Event %s deactivated (tx=%s)", event_address[:16], handle.short())
        return receipt
