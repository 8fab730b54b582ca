"""Data models for the evenntz coordinator."""

from evenntz_coordinator.models.domain import (
    Event,
    EventKind,
    EventMetadataRecord,
    EventSummary,
    Location,
    MetadataFields,
    Organization,
    ResaleListing,
    Schedule,
    TicketPosition,
    TicketTier,
    metadata_from_dict,
    metadata_to_dict,
)
from evenntz_coordinator.models.records import (
    CancelResult,
    ConfirmationReceipt,
    ContentIdentifier,
    EventAnalytics,
    JournalEntry,
    OrganizerStats,
    PublicationFailure,
    PublicationOutcome,
    PublicationRequest,
    PublicationState,
    PublicationStatus,
    TicketFailure,
    TicketOperation,
    TicketOutcome,
    TxHandle,
)
from evenntz_coordinator.models.config import CoordinatorConfig, RetryConfig, StoreBackend

__all__ = [
    "Event", "EventKind", "EventMetadataRecord", "EventSummary", "Location",
    "MetadataFields", "Organization", "ResaleListing", "Schedule",
    "TicketPosition", "TicketTier", "metadata_from_dict", "metadata_to_dict",
    "CancelResult", "ConfirmationReceipt", "ContentIdentifier", "EventAnalytics",
    "JournalEntry", "OrganizerStats", "PublicationFailure", "PublicationOutcome",
    "PublicationRequest", "PublicationState", "PublicationStatus",
    "TicketFailure", "TicketOperation", "TicketOutcome", "TxHandle",
    "CoordinatorConfig", "RetryConfig", "StoreBackend",
]
