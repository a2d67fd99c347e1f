"""Record store: insert-many and find over the SQLite records table.

The store is the only place that touches the records table. It follows
ordered bulk-insert semantics: rows are written in sequence, the first
duplicate id stops the batch, and the rows written before the conflict
are kept and reported through DuplicateKeyError.n_inserted.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from bulkingest.db.models import CanonicalRecord
from bulkingest.db.sqlite import SQLiteDB

_INSERT_SQL = (
    "INSERT INTO records "
    "(id, firstname, lastname, email, email2, profession, createdAt) "
    "VALUES (?, ?, ?, ?, ?, ?, ?)"
)

_DUPLICATE_ERROR_NAMES = {"SQLITE_CONSTRAINT_PRIMARYKEY", "SQLITE_CONSTRAINT_UNIQUE"}


class StoreError(Exception):
    """A persistence failure other than a duplicate id."""


class DuplicateKeyError(StoreError):
    """An insert hit an id that is already stored.

    Attributes:
        n_inserted: Rows committed before the conflicting one.
        key: The conflicting id.
    """

    def __init__(self, n_inserted: int, key: str) -> None:
        super().__init__(f"Duplicate id '{key}' after {n_inserted} inserted rows")
        self.n_inserted = n_inserted
        self.key = key


@dataclass(frozen=True)
class WriteConcern:
    """Durability requested for a write.

    journal=False acknowledges once the write reaches the database without
    waiting for the journal to be synced to disk.
    """

    journal: bool = False

    @property
    def synchronous_mode(self) -> str:
        return "FULL" if self.journal else "NORMAL"


RELAXED = WriteConcern(journal=False)


def _is_duplicate_key(exc: sqlite3.IntegrityError) -> bool:
    name = getattr(exc, "sqlite_errorname", None)
    if name is not None:
        return name in _DUPLICATE_ERROR_NAMES
    return "UNIQUE constraint failed" in str(exc)


class RecordStore:
    """Repository for canonical records."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db
        self._synchronous: str | None = None

    def _apply_write_concern(self, write_concern: WriteConcern) -> None:
        # Caller holds the database lock; the cached mode is shared by worker threads.
        mode = write_concern.synchronous_mode
        if mode != self._synchronous:
            self._db.set_synchronous(mode)
            self._synchronous = mode

    def insert_many(
        self,
        records: Sequence[CanonicalRecord],
        write_concern: WriteConcern = RELAXED,
    ) -> int:
        """Insert records in order and return how many were stored.

        Raises:
            DuplicateKeyError: A record's id already exists. Rows before it
                are committed; rows from it onwards are not written.
            StoreError: Any other database failure. Nothing is committed.
        """
        if not records:
            return 0

        conflict: str | None = None
        inserted = 0
        try:
            with self._db.transaction() as conn:
                self._apply_write_concern(write_concern)
                for record in records:
                    try:
                        conn.execute(_INSERT_SQL, record.as_row())
                    except sqlite3.IntegrityError as exc:
                        if not _is_duplicate_key(exc):
                            raise
                        conflict = record.id
                        break
                    inserted += 1
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

        if conflict is not None:
            raise DuplicateKeyError(inserted, conflict)
        return inserted

    def find(self, limit: int = 10) -> list[dict[str, Any]]:
        """Return up to `limit` stored records in storage order."""
        try:
            return self._db.fetchall(
                "SELECT id, firstname, lastname, email, email2, profession, createdAt "
                "FROM records ORDER BY rowid LIMIT ?",
                (limit,),
            )
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    def count(self) -> int:
        """Return the number of stored records."""
        row = self._db.fetchone("SELECT COUNT(*) AS n FROM records")
        return row["n"] if row else 0
