"""Persistence layer — SQLite connection and the record store."""

from bulkingest.db.models import CanonicalRecord
from bulkingest.db.sqlite import SQLiteDB
from bulkingest.db.store import (
    DuplicateKeyError,
    RecordStore,
    StoreError,
    WriteConcern,
)

__all__ = [
    "SQLiteDB",
    "RecordStore",
    "WriteConcern",
    "StoreError",
    "DuplicateKeyError",
    "CanonicalRecord",
]
