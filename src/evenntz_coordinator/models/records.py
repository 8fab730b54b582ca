"""Transaction handles, operation requests and coordinator outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from evenntz_coordinator.models.domain import (
    EventKind,
    Location,
    Schedule,
    TicketTier,
)


# ---------------------------------------------------------------------------
# Ledger and storage primitives
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TxHandle:
    """A submitted (not necessarily confirmed) ledger transaction."""

    tx_hash: str
    contract_address: str
    function: str
    submitted_at: str = ""  # ISO 8601

    def short(self) -> str:
        return self.tx_hash[:16] if self.tx_hash else "?"


@dataclass(frozen=True)
class ConfirmationReceipt:
    """Result of awaiting a transaction's inclusion in the ledger."""

    tx_hash: str
    success: bool
    confirmed_address: str | None = None  # contract address returned by the call
    return_value: Any = None
    ledger: int | None = None
    revert_reason: str | None = None


@dataclass(frozen=True)
class ContentIdentifier:
    """Content-addressed storage identifier of an uploaded asset."""

    cid: str
    url: str
    size: int | None = None


# ---------------------------------------------------------------------------
# Publication saga
# ---------------------------------------------------------------------------


class PublicationState(str, Enum):
    VALIDATING = "validating"
    UPLOADING = "uploading"
    LEDGER_SUBMITTING = "ledger_submitting"
    LEDGER_CONFIRMING = "ledger_confirming"
    METADATA_PERSISTING = "metadata_persisting"
    PUBLISHED = "published"
    COMPENSATING = "compensating"
    COMPENSATED = "compensated"
    COMPENSATED_FAILURE = "compensated_failure"
    INDETERMINATE = "indeterminate"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({
    PublicationState.PUBLISHED,
    PublicationState.COMPENSATED,
    PublicationState.COMPENSATED_FAILURE,
    PublicationState.INDETERMINATE,
    PublicationState.CANCELLED,
    PublicationState.FAILED,
})


class PublicationStatus(str, Enum):
    """Top-level discriminator of a publication outcome."""

    PUBLISHED = "published"
    FAILED = "failed"  # no ledger effect left behind (possibly after compensation)
    INDETERMINATE = "indeterminate"  # create_event submitted, confirmation unknown
    COMPENSATED_FAILURE = "compensated_failure"  # confirmed event, deactivation failed
    CANCELLED = "cancelled"


class PublicationFailure(str, Enum):
    INVALID_PUBLICATION_INPUT = "invalid_publication_input"
    MEDIA_UPLOAD_FAILED = "media_upload_failed"
    PUBLICATION_REQUIRES_WALLET = "publication_requires_wallet"
    LEDGER_UNAVAILABLE = "ledger_unavailable"
    LEDGER_REJECTED = "ledger_rejected"
    PUBLICATION_INDETERMINATE = "publication_indeterminate"
    METADATA_REJECTED = "metadata_rejected"
    STORE_UNAVAILABLE = "store_unavailable"
    CANCELLED = "cancelled"


class CancelResult(str, Enum):
    CANCELLED = "cancelled"
    CANNOT_CANCEL_AFTER_SUBMISSION = "cannot_cancel_after_submission"
    ALREADY_FINISHED = "already_finished"


@dataclass
class PublicationRequest:
    """Everything a host supplies to publish one event."""

    name: str
    description: str
    media: bytes
    schedule: Schedule
    organization_id: str
    kind: EventKind = EventKind.FREE
    tiers: list[TicketTier] = field(default_factory=list)
    location: Location = field(default_factory=Location)
    tags: list[str] = field(default_factory=list)
    media_filename: str = "banner"

    @property
    def max_tickets(self) -> int:
        return sum(t.quantity for t in self.tiers)

    @property
    def ticket_price(self) -> int:
        """Initial on-ledger price: first tier's price, Paid events only."""
        if self.kind is not EventKind.PAID or not self.tiers:
            return 0
        return self.tiers[0].price


@dataclass
class PublicationOutcome:
    """Discriminated result of one publication attempt."""

    attempt_id: str
    status: PublicationStatus
    state: PublicationState
    failure: PublicationFailure | None = None
    event_address: str | None = None
    record_id: str | None = None
    content_id: str | None = None
    tx_handle: TxHandle | None = None
    compensated: bool = False
    compensation_tx: TxHandle | None = None
    uncompensated_address: str | None = None
    error: str | None = None
    history: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is PublicationStatus.PUBLISHED

    @property
    def compensated_failure(self) -> bool:
        return self.status is PublicationStatus.COMPENSATED_FAILURE

    @property
    def needs_attention(self) -> bool:
        """Outcomes an operator must follow up on (ledger effect uncertain or orphaned)."""
        return self.status in (
            PublicationStatus.INDETERMINATE,
            PublicationStatus.COMPENSATED_FAILURE,
        )


@dataclass
class JournalEntry:
    """A publication outcome persisted for operator follow-up."""

    attempt_id: str
    status: str
    failure: str | None
    tx_hash: str | None
    event_address: str | None
    content_id: str | None
    metadata: dict  # metadata_to_dict() of the intended record
    error: str | None = None
    resolved: bool = False
    created_at: str = ""
    updated_at: str = ""


# ---------------------------------------------------------------------------
# Ticket lifecycle
# ---------------------------------------------------------------------------


class TicketOperation(str, Enum):
    PURCHASE = "purchase"
    LIST_FOR_RESALE = "list_for_resale"
    BUY_RESALE = "buy_resale"
    CANCEL_RESALE = "cancel_resale"
    CHECK_IN = "check_in"
    APPROVE_ATTENDEE = "approve_attendee"
    REVOKE_ATTENDEE = "revoke_attendee"
    MINT_FOR_USER = "mint_for_user"
    AIRDROP = "airdrop"


class TicketFailure(str, Enum):
    VALUE_MISMATCH = "value_mismatch"
    INVALID_RESALE_PRICE = "invalid_resale_price"
    RESALE_NO_LONGER_AVAILABLE = "resale_no_longer_available"
    SUBMITTED_OUTCOME_UNKNOWN = "submitted_outcome_unknown"
    REQUIRES_WALLET = "requires_wallet"
    LEDGER_UNAVAILABLE = "ledger_unavailable"
    LEDGER_REJECTED = "ledger_rejected"
    CONTRACT_INTERFACE_MISMATCH = "contract_interface_mismatch"


@dataclass
class TicketOutcome:
    """Discriminated result of one ticket lifecycle operation."""

    operation: TicketOperation
    event_address: str
    success: bool
    token_id: int | None = None
    ticket_contract: str | None = None
    tx_handle: TxHandle | None = None
    receipt: ConfirmationReceipt | None = None
    failure: TicketFailure | None = None
    error: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.receipt is not None and self.receipt.success


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EventAnalytics:
    """Ledger-derived facts for one event.

    total_revenue is tickets_sold * unit_price: it assumes every sold ticket
    was bought at the event's single current price. Tiered or changed prices
    are not reflected; per-sale prices are not available from the ledger reads
    used here.
    """

    event_address: str
    tickets_sold: int
    check_ins: int
    unit_price: int
    total_revenue: int

    @property
    def check_in_rate(self) -> float:
        """Percentage of sold tickets that were checked in."""
        if self.tickets_sold <= 0:
            return 0.0
        return self.check_ins / self.tickets_sold * 100


@dataclass(frozen=True)
class OrganizerStats:
    organizer: str
    total_events: int
    total_tickets_sold: int
    total_check_ins: int
    total_revenue: int
    events: list[EventAnalytics] = field(default_factory=list)
