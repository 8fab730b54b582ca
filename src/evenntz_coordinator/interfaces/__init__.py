"""Protocol interfaces for the coordinator's external collaborators."""

from evenntz_coordinator.interfaces.ledger import ContractCall, ContractRole, LedgerClient
from evenntz_coordinator.interfaces.uploader import MediaUploader
from evenntz_coordinator.interfaces.store import MetadataStore, PublicationJournal

__all__ = [
    "ContractCall", "ContractRole", "LedgerClient",
    "MediaUploader",
    "MetadataStore", "PublicationJournal",
]
