"""Streaming ingestion: parse, validate, batch and insert in one pass.

Full batches are written in background tasks so parsing never waits on
the database. Once the file is exhausted the trailing partial batch is
written directly and every background write is joined before the stats
are finalized, so the reported counts always cover every batch.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from bulkingest.db.models import CanonicalRecord
from bulkingest.ingestion.reader import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_ROW_BYTES, CSVStreamReader
from bulkingest.ingestion.sink import BatchOutcome, BatchSink
from bulkingest.ingestion.stats import IngestionStats
from bulkingest.ingestion.validator import validate_record

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10_000


class IngestionError(Exception):
    """The source stream failed; carries the stats gathered until then."""

    def __init__(self, message: str, stats: IngestionStats) -> None:
        super().__init__(message)
        self.stats = stats


class IngestionPipeline:
    """Drives one CSV file through the validator into the batch sink."""

    def __init__(
        self,
        sink: BatchSink,
        batch_size: int = DEFAULT_BATCH_SIZE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_row_bytes: int = DEFAULT_MAX_ROW_BYTES,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._sink = sink
        self.batch_size = batch_size
        self.chunk_size = chunk_size
        self.max_row_bytes = max_row_bytes

    async def run(self, path: Path) -> IngestionStats:
        """Ingest the CSV file at `path` and return the final stats.

        Raises:
            IngestionError: Reading the file failed. Batches already
                dispatched are still joined and counted first.
        """
        stats = IngestionStats()
        reader = CSVStreamReader(path, self.chunk_size, self.max_row_bytes)
        in_flight: set[asyncio.Task[BatchOutcome]] = set()
        batch: list[CanonicalRecord] = []

        try:
            async for raw in reader:
                stats.total_records_read += 1
                record = validate_record(raw)
                if record is None:
                    stats.error_records += 1
                    continue
                batch.append(record)
                if len(batch) >= self.batch_size:
                    full, batch = batch, []
                    in_flight.add(asyncio.create_task(self._write(full, stats)))
        except Exception as exc:
            logger.error("Reading %s failed after %d rows: %s", path, stats.total_records_read, exc)
            await self._join(in_flight)
            stats.finish()
            raise IngestionError(str(exc), stats) from exc

        if batch:
            await self._write(batch, stats)
        await self._join(in_flight)
        stats.finish()

        logger.info(
            "Ingested %s: read=%d processed=%d invalid=%d lost=%d batches=%d in %.3fs",
            Path(path).name,
            stats.total_records_read,
            stats.processed_records,
            stats.error_records,
            stats.failed_records,
            stats.batches_dispatched,
            stats.elapsed_seconds,
        )
        return stats

    async def _write(self, batch: list[CanonicalRecord], stats: IngestionStats) -> BatchOutcome:
        stats.batches_dispatched += 1
        outcome = await self._sink.write(batch)
        stats.apply(outcome)
        return outcome

    async def _join(self, in_flight: set[asyncio.Task[BatchOutcome]]) -> None:
        """Wait for every background batch write."""
        if not in_flight:
            return
        results = await asyncio.gather(*in_flight, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.error("Background batch write crashed: %r", result)
