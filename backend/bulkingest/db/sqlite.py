"""SQLite schema and connection manager for the ingestion service.

Provides the SQLiteDB class — the single entry point for relational
persistence. Enables WAL mode on connect and creates the records table
on initialization. The connection is shared with worker threads (batch
inserts run off the event loop), so every statement goes through a lock.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Sequence


_SCHEMA_SQL = """
-- Ingested records, one row per canonical CSV record
CREATE TABLE IF NOT EXISTS records (
    id TEXT PRIMARY KEY,
    firstname TEXT NOT NULL DEFAULT '',
    lastname TEXT NOT NULL DEFAULT '',
    email TEXT NOT NULL,
    email2 TEXT NOT NULL DEFAULT '',
    profession TEXT NOT NULL DEFAULT '',
    createdAt TEXT NOT NULL
);
"""

_SYNCHRONOUS_MODES = {"OFF", "NORMAL", "FULL", "EXTRA"}


class SQLiteDB:
    """SQLite connection manager with schema auto-creation.

    Usage:
        db = SQLiteDB("/path/to/db.sqlite")
        db.execute("INSERT INTO ...", params)
        rows = db.fetchall("SELECT * FROM ...")

    Or as a context manager:
        with SQLiteDB("/path/to/db.sqlite") as db:
            db.execute(...)
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._configure()
        self._create_schema()

    def _configure(self) -> None:
        """Enable WAL mode."""
        self._conn.execute("PRAGMA journal_mode=WAL")

    def _create_schema(self) -> None:
        """Create all tables if they don't exist."""
        self._conn.executescript(_SCHEMA_SQL)
        self._conn.commit()

    def set_synchronous(self, mode: str) -> None:
        """Set how eagerly commits are flushed to disk (OFF/NORMAL/FULL/EXTRA)."""
        mode = mode.upper()
        if mode not in _SYNCHRONOUS_MODES:
            raise ValueError(f"Unknown synchronous mode: '{mode}'")
        with self._lock:
            self._conn.execute(f"PRAGMA synchronous={mode}")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock for a unit of work; commit on success, roll back on error.

        Statements issued on the yielded connection are not committed one by
        one. A caller that wants to keep the rows written before an error
        commits explicitly before re-raising.
        """
        with self._lock:
            try:
                yield self._conn
            except BaseException:
                self._conn.rollback()
                raise
            else:
                self._conn.commit()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Execute a single SQL statement and commit."""
        with self._lock:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            return cursor

    def executemany(self, sql: str, params_seq: Sequence[Sequence[Any]]) -> sqlite3.Cursor:
        """Execute a SQL statement for each set of params and commit."""
        with self._lock:
            cursor = self._conn.executemany(sql, params_seq)
            self._conn.commit()
            return cursor

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        """Execute a query and return the first row as a dict, or None."""
        with self._lock:
            row = self._conn.execute(sql, params).fetchone()
        if row is None:
            return None
        return dict(row)

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute a query and return all rows as a list of dicts."""
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "SQLiteDB":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
