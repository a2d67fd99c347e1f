"""Streaming CSV ingestion pipeline.

Reader -> validator -> batch sink, driven by IngestionPipeline.
"""

from bulkingest.ingestion.pipeline import IngestionError, IngestionPipeline
from bulkingest.ingestion.reader import CSVStreamReader
from bulkingest.ingestion.sink import BatchOutcome, BatchSink, BatchStatus
from bulkingest.ingestion.stats import IngestionStats
from bulkingest.ingestion.validator import validate_record

__all__ = [
    "IngestionPipeline",
    "IngestionError",
    "CSVStreamReader",
    "BatchSink",
    "BatchOutcome",
    "BatchStatus",
    "IngestionStats",
    "validate_record",
]
