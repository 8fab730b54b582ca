"""MetadataStore and PublicationJournal protocols - off-chain persistence."""

from __future__ import annotations

from typing import Protocol

from evenntz_coordinator.models.domain import EventMetadataRecord, MetadataFields
from evenntz_coordinator.models.records import JournalEntry, PublicationOutcome


class MetadataStore(Protocol):
    """Keyed store of off-chain event records.

    A create either fully succeeds (immediately queryable) or fully fails.
    There is no delete: records are only marked.
    """

    async def initialize(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def create_record(self, fields: MetadataFields) -> str:
        """Persist a record and return its id."""
        ...

    async def get_record(self, record_id: str) -> EventMetadataRecord:
        ...

    async def find_by_ledger_address(self, address: str) -> EventMetadataRecord | None:
        ...

    async def list_records(
        self, organization_id: str | None = None, status: str | None = None
    ) -> list[EventMetadataRecord]:
        ...

    async def mark_record(self, record_id: str, status: str) -> None:
        ...


class PublicationJournal(Protocol):
    """Durable list of publication outcomes needing operator follow-up."""

    async def record_outcome(
        self, outcome: PublicationOutcome, metadata: dict
    ) -> None:
        ...

    async def get_entry(self, attempt_id: str) -> JournalEntry | None:
        ...

    async def get_unresolved(self) -> list[JournalEntry]:
        ...

    async def resolve(self, attempt_id: str, status: str) -> None:
        ...
