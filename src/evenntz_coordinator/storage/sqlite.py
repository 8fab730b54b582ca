"""SQLite implementation of the MetadataStore and PublicationJournal protocols."""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Iterator

import aiosqlite

from evenntz_coordinator.errors import RecordNotFound, StoreUnavailable, ValidationError
from evenntz_coordinator.models.domain import (
    EventMetadataRecord,
    Location,
    MetadataFields,
    Schedule,
    TicketTier,
)
from evenntz_coordinator.models.records import JournalEntry, PublicationOutcome

log = logging.getLogger(__name__)

SCHEMA = """
-- Off-chain event records
CREATE TABLE IF NOT EXISTS event_records (
    record_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    content_id TEXT NOT NULL,
    media_url TEXT NOT NULL DEFAULT '',
    start_at TEXT NOT NULL,
    end_at TEXT NOT NULL,
    location TEXT NOT NULL DEFAULT '{}',
    tiers TEXT NOT NULL DEFAULT '[]',
    tags TEXT NOT NULL DEFAULT '[]',
    organization_id TEXT NOT NULL,
    ledger_address TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_records_ledger ON event_records(ledger_address);
CREATE INDEX IF NOT EXISTS idx_records_org ON event_records(organization_id);
CREATE INDEX IF NOT EXISTS idx_records_status ON event_records(status);

-- Publication outcomes awaiting operator follow-up
CREATE TABLE IF NOT EXISTS publication_journal (
    attempt_id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    failure TEXT,
    tx_hash TEXT,
    event_address TEXT,
    content_id TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    error TEXT,
    resolved INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_journal_resolved ON publication_journal(resolved);
"""

RECORD_STATUSES = ("active", "deactivated")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _db_errors() -> Iterator[None]:
    """Map sqlite failures onto the store error taxonomy."""
    try:
        yield
    except sqlite3.IntegrityError as exc:
        raise ValidationError(f"constraint violated: {exc}") from exc
    except sqlite3.OperationalError as exc:
        raise StoreUnavailable(f"database unavailable: {exc}") from exc


def _validate(fields: MetadataFields) -> None:
    problems = []
    if not fields.name.strip():
        problems.append("name is empty")
    if not fields.content_id:
        problems.append("content_id is empty")
    if not fields.organization_id:
        problems.append("organization_id is empty")
    if fields.schedule.end <= fields.schedule.start:
        problems.append("schedule end must be after start")
    if problems:
        raise ValidationError("; ".join(problems))


class SQLiteMetadataStore:
    """SQLite-backed MetadataStore that also keeps the publication journal."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path if db_path == ":memory:" else str(Path(db_path).expanduser())
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[aiosqlite.Connection]:
        """Commit on success, roll back when a statement or the commit fails."""
        try:
            yield self.db
            await self.db.commit()
        except sqlite3.Error:
            await self.db.rollback()
            raise

    # ── Event records ──────────────────────────────────────

    async def create_record(self, fields: MetadataFields) -> str:
        _validate(fields)
        record_id = uuid.uuid4().hex
        now = _now()
        loc = fields.location
        with _db_errors():
            async with self._write() as db:
                await db.execute(
                    "INSERT INTO event_records"
                    " (record_id, name, description, content_id, media_url, start_at, end_at,"
                    "  location, tiers, tags, organization_id, ledger_address, status,"
                    "  created_at, updated_at)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'active', ?, ?)",
                    (
                        record_id, fields.name, fields.description, fields.content_id,
                        fields.media_url,
                        fields.schedule.start.isoformat(), fields.schedule.end.isoformat(),
                        json.dumps({
                            "venue_name": loc.venue_name, "address": loc.address,
                            "label": loc.label, "lat": loc.lat, "lng": loc.lng,
                        }),
                        json.dumps([
                            {"name": t.name, "price": t.price, "quantity": t.quantity}
                            for t in fields.tiers
                        ]),
                        json.dumps(list(fields.tags)),
                        fields.organization_id, fields.ledger_address, now, now,
                    ),
                )
        log.info(
            "Stored record %s for event %s",
            record_id[:8], (fields.ledger_address or "?")[:16],
        )
        return record_id

    async def get_record(self, record_id: str) -> EventMetadataRecord:
        with _db_errors():
            async with self.db.execute(
                "SELECT * FROM event_records WHERE record_id=?", (record_id,)
            ) as cur:
                row = await cur.fetchone()
        if row is None:
            raise RecordNotFound(f"record {record_id} not found")
        return _row_to_record(row)

    async def find_by_ledger_address(self, address: str) -> EventMetadataRecord | None:
        with _db_errors():
            async with self.db.execute(
                "SELECT * FROM event_records WHERE ledger_address=?", (address,)
            ) as cur:
                row = await cur.fetchone()
        return _row_to_record(row) if row else None

    async def list_records(
        self, organization_id: str | None = None, status: str | None = None
    ) -> list[EventMetadataRecord]:
        query = "SELECT * FROM event_records WHERE 1=1"
        params: list = []
        if organization_id is not None:
            query += " AND organization_id=?"
            params.append(organization_id)
        if status is not None:
            query += " AND status=?"
            params.append(status)
        query += " ORDER BY start_at"
        with _db_errors():
            async with self.db.execute(query, params) as cur:
                rows = await cur.fetchall()
        return [_row_to_record(r) for r in rows]

    async def mark_record(self, record_id: str, status: str) -> None:
        if status not in RECORD_STATUSES:
            raise ValidationError(f"unknown record status {status!r}")
        with _db_errors():
            async with self._write() as db:
                cur = await db.execute(
                    "UPDATE event_records SET status=?, updated_at=? WHERE record_id=?",
                    (status, _now(), record_id),
                )
        if cur.rowcount == 0:
            raise RecordNotFound(f"record {record_id} not found")

    # ── Publication journal ────────────────────────────────

    async def record_outcome(self, outcome: PublicationOutcome, metadata: dict) -> None:
        now = _now()
        with _db_errors():
            async with self._write() as db:
                await db.execute(
                    "INSERT INTO publication_journal"
                    " (attempt_id, status, failure, tx_hash, event_address, content_id,"
                    "  metadata, error, resolved, created_at, updated_at)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)"
                    " ON CONFLICT(attempt_id) DO UPDATE SET"
                    " status=excluded.status, failure=excluded.failure,"
                    " tx_hash=excluded.tx_hash, event_address=excluded.event_address,"
                    " error=excluded.error, resolved=0, updated_at=excluded.updated_at",
                    (
                        outcome.attempt_id,
                        outcome.status.value,
                        outcome.failure.value if outcome.failure else None,
                        outcome.tx_handle.tx_hash if outcome.tx_handle else None,
                        outcome.uncompensated_address or outcome.event_address,
                        outcome.content_id,
                        json.dumps(metadata),
                        outcome.error,
                        now, now,
                    ),
                )

    async def get_entry(self, attempt_id: str) -> JournalEntry | None:
        with _db_errors():
            async with self.db.execute(
                "SELECT * FROM publication_journal WHERE attempt_id=?", (attempt_id,)
            ) as cur:
                row = await cur.fetchone()
        return _row_to_entry(row) if row else None

    async def get_unresolved(self) -> list[JournalEntry]:
        with _db_errors():
            async with self.db.execute(
                "SELECT * FROM publication_journal WHERE resolved=0 ORDER BY created_at"
            ) as cur:
                rows = await cur.fetchall()
        return [_row_to_entry(r) for r in rows]

    async def resolve(self, attempt_id: str, status: str) -> None:
        with _db_errors():
            async with self._write() as db:
                await db.execute(
                    "UPDATE publication_journal SET resolved=1, status=?, updated_at=?"
                    " WHERE attempt_id=?",
                    (status, _now(), attempt_id),
                )


# ── Row mappers ───────────────────────────────────────────


def _row_to_record(row: aiosqlite.Row) -> EventMetadataRecord:
    loc = json.loads(row["location"] or "{}")
    return EventMetadataRecord(
        record_id=row["record_id"],
        fields=MetadataFields(
            name=row["name"],
            description=row["description"],
            content_id=row["content_id"],
            media_url=row["media_url"],
            schedule=Schedule(
                start=datetime.fromisoformat(row["start_at"]),
                end=datetime.fromisoformat(row["end_at"]),
            ),
            location=Location(
                venue_name=loc.get("venue_name", ""),
                address=loc.get("address", ""),
                label=loc.get("label", ""),
                lat=loc.get("lat"),
                lng=loc.get("lng"),
            ),
            tiers=[
                TicketTier(name=t["name"], price=t["price"], quantity=t["quantity"])
                for t in json.loads(row["tiers"] or "[]")
            ],
            tags=json.loads(row["tags"] or "[]"),
            organization_id=row["organization_id"],
            ledger_address=row["ledger_address"],
        ),
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_entry(row: aiosqlite.Row) -> JournalEntry:
    return JournalEntry(
        attempt_id=row["attempt_id"],
        status=row["status"],
        failure=row["failure"],
        tx_hash=row["tx_hash"],
        event_address=row["event_address"],
        content_id=row["content_id"],
        metadata=json.loads(row["metadata"] or "{}"),
        error=row["error"],
        resolved=bool(row["resolved"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
