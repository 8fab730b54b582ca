"""Exception taxonomy shared by the gateway, uploader, stores and coordinators.

Collaborators raise these; the coordinators catch them at step boundaries and
turn them into outcome dataclasses. ``kind`` is stable and meant for branching,
the message is for humans.
"""

from __future__ import annotations

from evenntz_coordinator.models.records import TxHandle


class CoordinatorError(Exception):
    kind = "coordinator_error"
    retryable = False

    def __init__(self, message: str = "") -> None:
        self.message = message or self.kind
        super().__init__(self.message)


# ── Ledger ─────────────────────────────────────────────────


class LedgerError(CoordinatorError):
    kind = "ledger_error"


class NoSigningIdentity(LedgerError):
    kind = "no_signing_identity"

    def __init__(self, message: str = "No signing identity attached") -> None:
        super().__init__(message)


class ContractInterfaceMismatch(LedgerError):
    """The target address does not expose the expected contract function."""

    kind = "contract_interface_mismatch"

    def __init__(self, address: str, function: str, detail: str = "") -> None:
        self.address = address
        self.function = function
        msg = f"{address[:16]} does not expose {function}()"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class LedgerTransportError(LedgerError):
    """RPC failure before anything was sent. Safe to retry."""

    kind = "ledger_transport_error"
    retryable = True


class TransactionRejected(LedgerError):
    """The ledger refused the call (simulation failure or failed inclusion)."""

    kind = "transaction_rejected"

    def __init__(
        self,
        message: str,
        handle: TxHandle | None = None,
        revert_reason: str | None = None,
    ) -> None:
        self.handle = handle
        self.revert_reason = revert_reason
        super().__init__(message)


class ConfirmationTimeout(LedgerError):
    """Submitted but not seen on-ledger before the deadline. May still confirm."""

    kind = "confirmation_timeout"

    def __init__(self, handle: TxHandle, timeout: float) -> None:
        self.handle = handle
        self.timeout = timeout
        super().__init__(
            f"tx {handle.short()} not confirmed within {timeout:g}s"
        )


class SubmittedOutcomeUnknown(LedgerError):
    """A transaction hash exists but whether it landed is unknown."""

    kind = "submitted_outcome_unknown"

    def __init__(self, handle: TxHandle, detail: str = "") -> None:
        self.handle = handle
        msg = f"outcome of tx {handle.short()} unknown"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


# ── Content-addressed storage ──────────────────────────────


class UploadError(CoordinatorError):
    kind = "upload_error"


class UploadTransportError(UploadError):
    kind = "upload_transport_error"
    retryable = True


class PayloadTooLarge(UploadError):
    kind = "payload_too_large"

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"payload of {size} bytes exceeds limit of {limit} bytes")


# ── Metadata store ─────────────────────────────────────────


class StoreError(CoordinatorError):
    kind = "store_error"


class ValidationError(StoreError):
    kind = "validation_error"


class StoreUnavailable(StoreError):
    kind = "store_unavailable"
    retryable = True


class RecordNotFound(StoreError):
    kind = "record_not_found"


class StoreWriteUnconfirmed(StoreError):
    """The store acknowledged a write but the resulting record could not be identified."""

    kind = "store_write_unconfirmed"


# ── Caller input ───────────────────────────────────────────


class InputError(CoordinatorError):
    kind = "input_error"


class InvalidPublicationInput(InputError):
    kind = "invalid_publication_input"

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("; ".join(problems))


class ValueMismatch(InputError):
    kind = "value_mismatch"

    def __init__(self, offered: int, required: int, rule: str = "==") -> None:
        self.offered = offered
        self.required = required
        super().__init__(f"offered value {offered} must be {rule} {required}")


class InvalidResalePrice(InputError):
    kind = "invalid_resale_price"


# ── Ticket lifecycle / analytics ───────────────────────────


class ResaleNoLongerAvailable(CoordinatorError):
    kind = "resale_no_longer_available"


class AnalyticsUnavailable(CoordinatorError):
    kind = "analytics_unavailable"

    def __init__(self, event_address: str, failed: list[str], detail: str = "") -> None:
        self.event_address = event_address
        self.failed = failed
        msg = f"analytics for {event_address[:16]} unavailable ({', '.join(failed)} failed)"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
