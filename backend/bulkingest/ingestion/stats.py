"""Per-upload counters and their JSON rendering."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from bulkingest.ingestion.sink import BatchOutcome, BatchStatus


@dataclass
class IngestionStats:
    """Mutable accumulator for one upload.

    Only the event loop thread touches it: the parse loop bumps the read
    and error counters, and batch tasks fold their outcome via apply().

    Attributes:
        total_records_read: Rows produced by the parser.
        processed_records: Records actually stored.
        error_records: Rows rejected by validation.
        failed_records: Valid records lost to duplicate or failed batches.
        batches_dispatched: Non-empty batches handed to the sink.
    """

    total_records_read: int = 0
    processed_records: int = 0
    error_records: int = 0
    failed_records: int = 0
    batches_dispatched: int = 0
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None

    def apply(self, outcome: BatchOutcome) -> None:
        """Fold one batch outcome into the counters."""
        if outcome.status is BatchStatus.EMPTY:
            return
        self.processed_records += outcome.inserted
        self.failed_records += outcome.lost

    def finish(self) -> None:
        self.finished_at = time.monotonic()

    @property
    def elapsed_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    @property
    def records_per_second(self) -> int:
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return 0
        return round(self.processed_records / elapsed)

    def to_response(self) -> dict[str, Any]:
        """Stats block of a successful upload response."""
        return {
            "totalRecordsRead": self.total_records_read,
            "processedRecords": self.processed_records,
            "errorRecords": self.error_records,
            "failedRecords": self.failed_records,
            "batches": self.batches_dispatched,
            "processingTime": f"{round(self.elapsed_seconds, 3)}s",
            "recordsPerSecond": self.records_per_second,
        }

    def to_partial(self) -> dict[str, Any]:
        """Stats block of a failed upload response."""
        return {
            "processedRecords": self.processed_records,
            "errorRecords": self.error_records,
        }
