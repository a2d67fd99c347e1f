"""Batch sink: persists one detached batch and reports what happened.

No failure escapes write(). Every call returns a BatchOutcome so
the caller can fold all batches into the stats the same way.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from bulkingest.db.models import CanonicalRecord
from bulkingest.db.store import RELAXED, DuplicateKeyError, RecordStore, StoreError, WriteConcern

logger = logging.getLogger(__name__)


class BatchStatus(str, Enum):
    INSERTED = "inserted"
    PARTIAL_DUPLICATE = "partial_duplicate"
    FAILED = "failed"
    EMPTY = "empty"


@dataclass(frozen=True)
class BatchOutcome:
    """Result of writing one batch.

    Attributes:
        status: Which of the four outcomes occurred.
        submitted: Records handed to the store.
        inserted: Records actually stored.
        reason: Error message for duplicate and failed batches.
    """

    status: BatchStatus
    submitted: int
    inserted: int
    reason: str | None = None

    @property
    def lost(self) -> int:
        """Records submitted but not stored."""
        return self.submitted - self.inserted


class BatchSink:
    """Writes batches to a RecordStore with a fixed write concern."""

    def __init__(self, store: RecordStore, write_concern: WriteConcern = RELAXED) -> None:
        self._store = store
        self._write_concern = write_concern

    async def write(self, batch: Sequence[CanonicalRecord]) -> BatchOutcome:
        """Insert a batch; the blocking insert runs in a worker thread."""
        if not batch:
            return BatchOutcome(BatchStatus.EMPTY, submitted=0, inserted=0)

        try:
            inserted = await asyncio.to_thread(
                self._store.insert_many, batch, self._write_concern,
            )
        except DuplicateKeyError as exc:
            logger.warning(
                "Batch hit duplicate id %r: %d of %d records inserted",
                exc.key, exc.n_inserted, len(batch),
            )
            return BatchOutcome(
                BatchStatus.PARTIAL_DUPLICATE,
                submitted=len(batch),
                inserted=exc.n_inserted,
                reason=str(exc),
            )
        except StoreError as exc:
            logger.error("Batch of %d records failed: %s", len(batch), exc)
            return BatchOutcome(
                BatchStatus.FAILED, submitted=len(batch), inserted=0, reason=str(exc),
            )
        except Exception as exc:
            logger.error("Batch of %d records failed unexpectedly: %r", len(batch), exc)
            return BatchOutcome(
                BatchStatus.FAILED, submitted=len(batch), inserted=0, reason=repr(exc),
            )

        return BatchOutcome(BatchStatus.INSERTED, submitted=len(batch), inserted=inserted)
